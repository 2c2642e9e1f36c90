from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import AuthorizationError, NotFoundError, ValidationError
from src.db.models.quality import Capa, Ncr
from src.services.quality import QualityService, check_ncr_closable

from tests.fakes import OTHER_SITE_ID, SITE_ID, FakeRepo, make_ctx


@pytest.fixture
def qc_ctx():
    return make_ctx("QC")


def _ncr(status="OPEN", disposition="PENDING", capa_required=False):
    return Ncr(
        id=uuid4(),
        site_id=SITE_ID,
        ncr_number="NCR-000001",
        issue_type="FOREIGN_MATTER",
        severity="MAJOR",
        description="Metal fragment in dough",
        qty_affected=40.0,
        uom="KG",
        status=status,
        disposition=disposition,
        capa_required=capa_required,
    )


def _service(audit, ncr=None, capa=None, capas=(), ncr_count=0, capa_count=0):
    service = QualityService(None)
    service.repo = FakeRepo(
        get_ncr=ncr, get_capa=capa, list_capas=list(capas), count_ncrs=ncr_count, count_capas=capa_count
    )
    service.audit = audit
    return service


def test_ncr_needs_disposition_and_capa_to_close():
    with pytest.raises(ValidationError, match="Disposition is required"):
        check_ncr_closable(SimpleNamespace(disposition="PENDING", capa_required=False), 0)
    with pytest.raises(ValidationError, match="CAPA is required"):
        check_ncr_closable(SimpleNamespace(disposition="SCRAP", capa_required=True), 0)
    check_ncr_closable(SimpleNamespace(disposition="SCRAP", capa_required=True), 1)
    check_ncr_closable(SimpleNamespace(disposition="USE_AS_IS", capa_required=False), 0)


async def test_create_ncr(qc_ctx, audit):
    service = _service(audit, ncr_count=6)

    ncr = await service.create_ncr(
        qc_ctx,
        site_id=SITE_ID,
        issue_type="FOREIGN_MATTER",
        severity="CRITICAL",
        description="Metal fragment in dough",
        qty_affected=40,
        uom="KG",
        capa_required=True,
    )

    assert ncr.ncr_number == "NCR-000007"
    assert (ncr.status, ncr.disposition) == ("OPEN", "PENDING")
    assert ncr.reported_by_user_id == qc_ctx.user_id
    assert service.repo.commits == 1
    assert audit.actions() == ["create"]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"severity": "SEVERE"}, "Invalid severity"),
        ({"qty_affected": 0}, "qty_affected"),
        ({"description": ""}, "required"),
    ],
)
async def test_create_ncr_validation(qc_ctx, audit, overrides, message):
    kwargs = dict(issue_type="LABEL", severity="MINOR", description="Smudged label", qty_affected=5, uom="EA")
    kwargs.update(overrides)
    with pytest.raises(ValidationError, match=message):
        await _service(audit).create_ncr(qc_ctx, **kwargs)


async def test_create_ncr_checks_site(qc_ctx, audit):
    with pytest.raises(AuthorizationError, match="Site access denied"):
        await _service(audit).create_ncr(
            qc_ctx, site_id=OTHER_SITE_ID, issue_type="LABEL", severity="MINOR", description="x", qty_affected=1, uom="EA"
        )


async def test_ncr_review_and_disposition(qc_ctx, audit):
    ncr = _ncr()
    service = _service(audit, ncr)

    await service.update_ncr(qc_ctx, ncr.id, {"status": "UNDER_REVIEW", "reviewed_by": "J. Park"})
    assert ncr.status == "UNDER_REVIEW"
    assert ncr.reviewed_at is not None

    await service.update_ncr(qc_ctx, ncr.id, {"status": "DISPOSITIONED", "disposition": "REWORK", "root_cause": "worn sieve"})
    assert ncr.disposition == "REWORK"
    assert ncr.disposition_date is not None
    assert ncr.root_cause == "worn sieve"

    with pytest.raises(ValidationError, match="Invalid disposition"):
        await service.update_ncr(qc_ctx, ncr.id, {"disposition": "IGNORE"})
    with pytest.raises(ValidationError, match="Invalid status transition from DISPOSITIONED to OPEN"):
        await service.update_ncr(qc_ctx, ncr.id, {"status": "OPEN"})


async def test_closing_checks_disposition_and_capas(qc_ctx, audit):
    ncr = _ncr("DISPOSITIONED", "SCRAP", capa_required=True)
    with pytest.raises(ValidationError, match="CAPA is required"):
        await _service(audit, ncr).update_ncr(qc_ctx, ncr.id, {"status": "CLOSED"})
    assert ncr.status == "DISPOSITIONED"

    capa = Capa(id=uuid4(), ncr_id=ncr.id, capa_number="CAPA-000001", status="OPEN")
    await _service(audit, ncr, capas=[capa]).update_ncr(qc_ctx, ncr.id, {"status": "CLOSED"})
    assert ncr.status == "CLOSED"
    assert ncr.closed_at is not None


async def test_closed_ncrs_are_locked(qc_ctx, audit):
    service = _service(audit, _ncr("CLOSED", "SCRAP"))
    with pytest.raises(ValidationError, match="Cannot edit CLOSED"):
        await service.update_ncr(qc_ctx, uuid4(), {"root_cause": "late finding"})
    with pytest.raises(ValidationError, match="Cannot add a CAPA"):
        await service.create_capa(qc_ctx, uuid4(), {"proposed_actions": "replace sieve"})


async def test_missing_ncr(qc_ctx, audit):
    with pytest.raises(NotFoundError, match="NCR not found"):
        await _service(audit).update_ncr(qc_ctx, uuid4(), {})


async def test_create_capa(qc_ctx, audit):
    ncr = _ncr("UNDER_REVIEW", capa_required=True)
    service = _service(audit, ncr, capa_count=2)

    capa = await service.create_capa(qc_ctx, ncr.id, {"proposed_actions": "replace sieve", "responsible_person": "M. Ortiz"})

    assert capa.capa_number == "CAPA-000003"
    assert capa.ncr_id == ncr.id
    assert capa.status == "OPEN"
    assert capa.proposed_actions == "replace sieve"
    assert service.repo.refreshed == [ncr]


async def test_capa_lifecycle_stamps_dates(qc_ctx, audit):
    capa = Capa(id=uuid4(), ncr_id=uuid4(), capa_number="CAPA-000001", status="IN_PROGRESS")
    service = _service(audit, capa=capa)

    await service.update_capa(qc_ctx, capa.id, {"status": "IMPLEMENTED"})
    assert capa.implemented_at is not None

    await service.update_capa(qc_ctx, capa.id, {"status": "VERIFIED", "verification_notes": "no recurrence in 30 days"})
    assert capa.status == "VERIFIED"
    assert capa.verified_at is not None
    assert capa.verified_by == "Test User"
    assert capa.verification_notes == "no recurrence in 30 days"

    with pytest.raises(ValidationError):
        await service.update_capa(qc_ctx, capa.id, {"status": "OPEN"})
