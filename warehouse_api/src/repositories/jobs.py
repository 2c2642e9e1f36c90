from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select

from src.db.models.jobs import Job
from .base import BaseRepository


class JobRepository(BaseRepository):
    """Repository for warehouse jobs."""

    async def list_jobs(
        self,
        *,
        status: Optional[str],
        job_type: Optional[str],
        site_id: Optional[UUID],
        assigned_to: Optional[UUID],
        limit: int,
        offset: int,
    ) -> List[Job]:
        stmt = select(Job)
        if status:
            stmt = stmt.where(Job.status == status)
        if job_type:
            stmt = stmt.where(Job.job_type == job_type)
        if site_id:
            stmt = stmt.where(Job.site_id == site_id)
        if assigned_to:
            stmt = stmt.where(Job.assigned_to_user_id == assigned_to)
        stmt = stmt.order_by(Job.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_job(self, job_id: UUID) -> Optional[Job]:
        stmt = select(Job).where(Job.id == job_id)
        return await self.scalar_one_or_none(stmt)

    async def count_jobs(self) -> int:
        return await self.count(Job)

    async def count_by_status(self, statuses: Sequence[str]) -> int:
        stmt = select(func.count(Job.id)).where(Job.status.in_(list(statuses)))
        result = await self.execute(stmt)
        return int(result.scalar_one())
