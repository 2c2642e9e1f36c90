from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.context import UserContext
from src.core.deps import get_tenant_session, get_user_context, require_roles
from src.core.permissions import RoleName
from src.schemas.jobs import (
    CompleteLineRequest,
    JobCreate,
    JobDetail,
    JobLineRead,
    JobRead,
    JobSummary,
    JobType,
    JobUpdate,
)
from src.services.jobs import JobService, summarize_job

router = APIRouter(prefix="/jobs", tags=["Jobs"])

_PLANNERS = (RoleName.ADMIN, RoleName.SUPERVISOR, RoleName.INVENTORY)
_WORKERS = _PLANNERS + (RoleName.OPERATOR,)


def _detail(job) -> JobDetail:
    detail = JobDetail.model_validate(job)
    detail.summary = JobSummary(**summarize_job(job.lines))
    return detail


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=JobDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create job",
    description="Create a warehouse job numbered JOB-nnnnnn. Lines without an item are skipped.",
)
async def create_job(
    payload: JobCreate,
    ctx: UserContext = Depends(require_roles(*_PLANNERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> JobDetail:
    return _detail(await JobService(session).create_job(ctx, **payload.model_dump()))


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[JobRead],
    summary="List jobs",
)
async def list_jobs(
    ctx: UserContext = Depends(get_user_context),
    session: AsyncSession = Depends(get_tenant_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    job_type: Optional[JobType] = Query(None),
    site_id: Optional[UUID] = Query(None),
    assigned_to_me: bool = Query(False, description="Only jobs assigned to the caller"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[JobRead]:
    jobs = await JobService(session).list_jobs(
        ctx,
        status=status_filter,
        job_type=job_type,
        site_id=site_id,
        assigned_to_me=assigned_to_me,
        limit=limit,
        offset=offset,
    )
    return [JobRead.model_validate(j) for j in jobs]


# PUBLIC_INTERFACE
@router.get(
    "/{job_id}",
    response_model=JobDetail,
    summary="Get job",
    dependencies=[Depends(get_user_context)],
)
async def get_job(
    job_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> JobDetail:
    return _detail(await JobService(session).get_job(job_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{job_id}",
    response_model=JobDetail,
    summary="Update job",
    description="Change job fields and/or move it through DRAFT, OPEN, IN_PROGRESS, COMPLETED or CANCELLED.",
)
async def update_job(
    payload: JobUpdate,
    job_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_WORKERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> JobDetail:
    job = await JobService(session).update_job(ctx, job_id, payload.model_dump(exclude_unset=True))
    return _detail(job)


# PUBLIC_INTERFACE
@router.post(
    "/{job_id}/lines/{line_id}/complete",
    response_model=JobLineRead,
    summary="Complete job line",
)
async def complete_job_line(
    payload: CompleteLineRequest,
    job_id: UUID = Path(...),
    line_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(*_WORKERS)),
    session: AsyncSession = Depends(get_tenant_session),
) -> JobLineRead:
    line = await JobService(session).complete_line(ctx, job_id, line_id, payload.qty_completed, payload.notes)
    return JobLineRead.model_validate(line)


# PUBLIC_INTERFACE
@router.delete(
    "/{job_id}",
    response_model=JobRead,
    summary="Delete job",
    description="Only DRAFT or CANCELLED jobs; the job is marked CANCELLED.",
)
async def delete_job(
    job_id: UUID = Path(...),
    ctx: UserContext = Depends(require_roles(RoleName.ADMIN, RoleName.SUPERVISOR)),
    session: AsyncSession = Depends(get_tenant_session),
) -> JobRead:
    return JobRead.model_validate(await JobService(session).delete_job(ctx, job_id))
