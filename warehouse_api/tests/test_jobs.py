from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import AuthorizationError, ValidationError
from src.db.models.jobs import Job, JobLine
from src.services.jobs import JobService, summarize_job

from tests.fakes import OTHER_SITE_ID, SITE_ID, FakeRepo, make_ctx


def _service(audit, job=None, count=0):
    service = JobService(None)
    service.repo = FakeRepo(get_job=job, count_jobs=count)
    service.audit = audit
    return service


def _job(status="OPEN", lines=()):
    return Job(
        id=uuid4(),
        site_id=SITE_ID,
        job_number="JOB-000001",
        job_type="PICK",
        status=status,
        priority="NORMAL",
        lines=list(lines),
    )


def _line(qty=10.0, status="PENDING"):
    return JobLine(id=uuid4(), item_id=uuid4(), qty_ordered=qty, qty_completed=0.0, uom="EA", status=status)


async def test_create_job_numbers_and_skips_itemless_lines(supervisor_ctx, audit):
    service = _service(audit, count=3)
    item_id = uuid4()

    job = await service.create_job(
        supervisor_ctx,
        site_id=SITE_ID,
        job_type="PUTAWAY",
        status="OPEN",
        lines=[{"item_id": item_id, "qty_ordered": 5, "uom": "CASE"}, {"qty_ordered": 2}],
    )

    assert job.job_number == "JOB-000004"
    assert job.status == "OPEN"
    assert job.created_by_user_id == supervisor_ctx.user_id
    assert [(l.item_id, l.qty_ordered, l.uom, l.status) for l in job.lines] == [(item_id, 5.0, "CASE", "PENDING")]
    assert service.repo.commits == 1
    assert audit.records[0][:2] == ("create", "job")


async def test_create_job_defaults_to_draft(supervisor_ctx, audit):
    job = await _service(audit).create_job(supervisor_ctx, site_id=SITE_ID, job_type="COUNT", status="COMPLETED")
    assert job.status == "DRAFT"
    assert job.lines == []


@pytest.mark.parametrize("field, value", [("job_type", "DANCE"), ("priority", "WHENEVER")])
async def test_create_job_validates_codes(supervisor_ctx, audit, field, value):
    kwargs = {"site_id": SITE_ID, "job_type": "PICK", field: value}
    with pytest.raises(ValidationError):
        await _service(audit).create_job(supervisor_ctx, **kwargs)


async def test_create_job_checks_site(supervisor_ctx, audit):
    with pytest.raises(AuthorizationError):
        await _service(audit).create_job(supervisor_ctx, site_id=OTHER_SITE_ID, job_type="PICK")


async def test_status_changes_follow_the_job_flow(supervisor_ctx, audit):
    job = _job("DRAFT")
    service = _service(audit, job)

    with pytest.raises(ValidationError, match="Invalid status transition from DRAFT to COMPLETED"):
        await service.update_job(supervisor_ctx, job.id, {"status": "COMPLETED"})

    await service.update_job(supervisor_ctx, job.id, {"status": "OPEN", "priority": "HIGH", "notes": "dock 3"})
    assert job.status == "OPEN"
    assert job.priority == "HIGH"
    assert job.notes == "dock 3"


async def test_resending_the_current_status_only_updates_fields(supervisor_ctx, audit):
    job = _job("OPEN")
    service = _service(audit, job)

    await service.update_job(supervisor_ctx, job.id, {"status": "OPEN", "notes": "dock 4"})

    assert job.status == "OPEN"
    assert job.notes == "dock 4"


async def test_complete_requires_finished_lines(supervisor_ctx, audit):
    job = _job("IN_PROGRESS", [_line(status="COMPLETED"), _line(status="IN_PROGRESS")])
    service = _service(audit, job)

    with pytest.raises(ValidationError, match="1 lines are not completed"):
        await service.update_job(supervisor_ctx, job.id, {"status": "COMPLETED"})

    job.lines[1].status = "SKIPPED"
    await service.update_job(supervisor_ctx, job.id, {"status": "COMPLETED"})
    assert job.status == "COMPLETED"
    assert job.completed_at is not None


async def test_update_rejects_unknown_priority(supervisor_ctx, audit):
    with pytest.raises(ValidationError, match="Invalid priority"):
        await _service(audit, _job()).update_job(supervisor_ctx, uuid4(), {"priority": "ASAP"})


async def test_complete_line_starts_the_job(operator_ctx, audit):
    line = _line(qty=10)
    job = _job("OPEN", [line])
    service = _service(audit, job)

    await service.complete_line(operator_ctx, job.id, line.id, 4)
    assert job.status == "IN_PROGRESS"
    assert job.started_at is not None
    assert line.status == "IN_PROGRESS"

    await service.complete_line(operator_ctx, job.id, line.id, 10, notes="done")
    assert line.status == "COMPLETED"
    assert line.completed_at is not None
    assert line.notes == "done"


async def test_complete_line_needs_an_active_job(operator_ctx, audit):
    line = _line()
    with pytest.raises(ValidationError):
        await _service(audit, _job("DRAFT", [line])).complete_line(operator_ctx, uuid4(), line.id, 1)


async def test_delete_job(supervisor_ctx, audit):
    with pytest.raises(ValidationError):
        await _service(audit, _job("OPEN")).delete_job(supervisor_ctx, uuid4())

    job = _job("DRAFT")
    await _service(audit, job).delete_job(supervisor_ctx, job.id)
    assert job.status == "CANCELLED"


def test_summarize_job():
    lines = [
        SimpleNamespace(status="COMPLETED", qty_ordered=5, qty_completed=5),
        SimpleNamespace(status="PENDING", qty_ordered=3, qty_completed=0),
    ]
    assert summarize_job(lines) == {
        "total_lines": 2,
        "completed_lines": 1,
        "pending_lines": 1,
        "total_qty_ordered": 8.0,
        "total_qty_completed": 5.0,
    }


@pytest.mark.parametrize("operation", ["update", "complete_line", "delete"])
async def test_jobs_at_other_sites_are_off_limits(audit, operation):
    line = _line()
    job = _job("DRAFT" if operation == "delete" else "OPEN", [line])
    job.site_id = OTHER_SITE_ID
    service = _service(audit, job)
    ctx = make_ctx("Operator")

    with pytest.raises(AuthorizationError, match="Site access denied"):
        if operation == "update":
            await service.update_job(ctx, job.id, {"priority": "HIGH"})
        elif operation == "complete_line":
            await service.complete_line(ctx, job.id, line.id, 10)
        else:
            await service.delete_job(ctx, job.id)
    assert job.priority == "NORMAL"
    assert line.qty_completed == 0
    assert service.repo.commits == 0
