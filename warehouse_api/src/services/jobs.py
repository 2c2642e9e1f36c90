from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.errors import NotFoundError, ValidationError
from src.db.models.jobs import Job, JobLine
from src.repositories.jobs import JobRepository
from src.services.audit import AuditService
from src.services.base import BaseService, format_document_number, utcnow
from src.services.workflow import JOB_FLOW

logger = logging.getLogger(__name__)

JOB_TYPES = ("RECEIVING", "PUTAWAY", "PICK", "PACK", "SHIP", "TRANSFER", "ADJUSTMENT", "COUNT", "MAINTENANCE", "OTHER")
JOB_PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")
JOB_LINE_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "SKIPPED")

_UPDATABLE_FIELDS = ("description", "priority", "assigned_to_user_id", "scheduled_date", "due_date", "notes")


# PUBLIC_INTERFACE
def summarize_job(lines: Iterable) -> dict:
    """Progress counters for a job's lines."""
    lines = list(lines)
    return {
        "total_lines": len(lines),
        "completed_lines": sum(1 for line in lines if line.status == "COMPLETED"),
        "pending_lines": sum(1 for line in lines if line.status == "PENDING"),
        "total_qty_ordered": sum(float(line.qty_ordered or 0) for line in lines),
        "total_qty_completed": sum(float(line.qty_completed or 0) for line in lines),
    }


class JobService(BaseService):
    """Warehouse job lifecycle."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = JobRepository(session)
        self.audit = AuditService(session)

    async def _get(self, job_id: UUID) -> Job:
        job = await self.repo.get_job(job_id)
        if not job:
            raise NotFoundError("Job")
        return job

    # PUBLIC_INTERFACE
    async def create_job(
        self,
        ctx: UserContext,
        *,
        site_id: UUID,
        job_type: str,
        priority: str = "NORMAL",
        status: str = "DRAFT",
        description: Optional[str] = None,
        assigned_to_user_id: Optional[UUID] = None,
        scheduled_date=None,
        due_date=None,
        notes: Optional[str] = None,
        lines: Optional[List[Dict[str, Any]]] = None,
    ) -> Job:
        """Create a job numbered JOB-nnnnnn; lines without an item are skipped."""
        ctx.ensure_site(site_id)
        if job_type not in JOB_TYPES:
            raise ValidationError(f"Invalid job type: {job_type}")
        if priority not in JOB_PRIORITIES:
            raise ValidationError(f"Invalid priority: {priority}")

        job_number = format_document_number("JOB", await self.repo.count_jobs())
        job = Job(
            site_id=site_id,
            job_number=job_number,
            job_type=job_type,
            status="OPEN" if status == "OPEN" else "DRAFT",
            priority=priority,
            description=description,
            assigned_to_user_id=assigned_to_user_id,
            scheduled_date=scheduled_date,
            due_date=due_date,
            notes=notes,
            created_by_user_id=ctx.user_id,
            lines=[],
        )
        for data in lines or []:
            if not data.get("item_id"):
                continue
            job.lines.append(
                JobLine(
                    item_id=data["item_id"],
                    from_location_id=data.get("from_location_id"),
                    to_location_id=data.get("to_location_id"),
                    qty_ordered=float(data.get("qty_ordered") or 0),
                    qty_completed=0.0,
                    uom=data.get("uom") or "EA",
                    status="PENDING",
                    notes=data.get("notes"),
                )
            )
        await self.repo.add(job)
        await self.repo.flush()
        await self.audit.record(ctx, "create", "job", job.id, {"job_number": job_number})
        await self.repo.commit()
        logger.info("Job created: %s type=%s lines=%d", job_number, job_type, len(job.lines))
        return job

    async def get_job(self, job_id: UUID) -> Job:
        return await self._get(job_id)

    async def list_jobs(
        self,
        ctx: UserContext,
        *,
        status: Optional[str] = None,
        job_type: Optional[str] = None,
        site_id: Optional[UUID] = None,
        assigned_to_me: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        return await self.repo.list_jobs(
            status=status,
            job_type=job_type,
            site_id=site_id,
            assigned_to=ctx.user_id if assigned_to_me else None,
            limit=limit,
            offset=offset,
        )

    # PUBLIC_INTERFACE
    async def update_job(self, ctx: UserContext, job_id: UUID, changes: Dict[str, Any]) -> Job:
        """Apply field changes and an optional status transition."""
        job = await self._get(job_id)
        ctx.ensure_site(job.site_id)
        if "priority" in changes and changes["priority"] is not None and changes["priority"] not in JOB_PRIORITIES:
            raise ValidationError(f"Invalid priority: {changes['priority']}")

        new_status = changes.get("status")
        if new_status and new_status != job.status:
            JOB_FLOW.validate(job.status, new_status)
            if new_status == "COMPLETED":
                open_lines = sum(1 for line in job.lines if line.status in ("PENDING", "IN_PROGRESS"))
                if open_lines:
                    raise ValidationError(f"{open_lines} lines are not completed")
                job.completed_at = utcnow()
            elif new_status == "IN_PROGRESS":
                job.started_at = utcnow()
            logger.info("Job %s status %s -> %s", job.job_number, job.status, new_status)
            job.status = new_status

        for field in _UPDATABLE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(job, field, changes[field])

        await self.audit.record(ctx, "update", "job", job.id, {k: v for k, v in changes.items() if v is not None})
        await self.repo.commit()
        return job

    # PUBLIC_INTERFACE
    async def complete_line(
        self,
        ctx: UserContext,
        job_id: UUID,
        line_id: UUID,
        qty_completed: float,
        notes: Optional[str] = None,
    ) -> JobLine:
        """Record progress on a line; an OPEN job moves to IN_PROGRESS."""
        job = await self._get(job_id)
        ctx.ensure_site(job.site_id)
        if job.status not in ("OPEN", "IN_PROGRESS"):
            raise ValidationError("Job must be OPEN or IN_PROGRESS to complete lines")
        line = next((line for line in job.lines if line.id == line_id), None)
        if line is None:
            raise NotFoundError("Job line")
        if qty_completed < 0:
            raise ValidationError("Completed quantity cannot be negative")

        if job.status == "OPEN":
            job.status = "IN_PROGRESS"
            job.started_at = utcnow()

        line.qty_completed = qty_completed
        if notes is not None:
            line.notes = notes
        if qty_completed >= float(line.qty_ordered):
            line.status = "COMPLETED"
            line.completed_at = utcnow()
        else:
            line.status = "IN_PROGRESS"
        await self.repo.commit()
        return line

    # PUBLIC_INTERFACE
    async def delete_job(self, ctx: UserContext, job_id: UUID) -> Job:
        """Soft delete: only DRAFT or CANCELLED jobs, which end up CANCELLED."""
        job = await self._get(job_id)
        ctx.ensure_site(job.site_id)
        if job.status not in ("DRAFT", "CANCELLED"):
            raise ValidationError("Only DRAFT or CANCELLED jobs can be deleted")
        job.status = "CANCELLED"
        await self.audit.record(ctx, "delete", "job", job.id)
        await self.repo.commit()
        return job
