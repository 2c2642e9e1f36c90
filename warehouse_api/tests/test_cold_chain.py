from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.errors import ConflictError, ValidationError
from src.db.models.cold_chain import TemperatureExcursion, TemperatureReading, TemperatureZone
from src.services.cold_chain import ColdChainService, classify_reading, compliance_summary, validate_thresholds

from tests.fakes import SITE_ID, FakeRepo, make_ctx

T0 = datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)


def _zone():
    return TemperatureZone(
        id=uuid4(),
        site_id=SITE_ID,
        code="REFRIG-01",
        name="Walk-in cooler",
        min_temp=2.0,
        max_temp=8.0,
        unit="C",
        warning_min=1.0,
        warning_max=9.0,
        critical_min=0.0,
        critical_max=10.0,
        is_active=True,
    )


@pytest.mark.parametrize(
    "temperature, expected",
    [(4.0, "NORMAL"), (8.5, "NORMAL"), (9.0, "WARNING"), (1.0, "WARNING"), (10.0, "CRITICAL"), (-3.0, "CRITICAL")],
)
def test_classify_reading(temperature, expected):
    assert classify_reading(_zone(), temperature) == expected


def test_threshold_ordering():
    validate_thresholds(min_temp=2, max_temp=8, warning_min=1, warning_max=9, critical_min=0, critical_max=10)
    with pytest.raises(ValidationError, match="min_temp must be lower"):
        validate_thresholds(min_temp=8, max_temp=2, warning_min=1, warning_max=9, critical_min=0, critical_max=10)
    with pytest.raises(ValidationError, match="Lower thresholds"):
        validate_thresholds(min_temp=2, max_temp=8, warning_min=3, warning_max=9, critical_min=0, critical_max=10)
    with pytest.raises(ValidationError, match="Upper thresholds"):
        validate_thresholds(min_temp=2, max_temp=8, warning_min=1, warning_max=11, critical_min=0, critical_max=10)


def test_compliance_summary():
    readings = [SimpleNamespace(status=s) for s in ("NORMAL", "NORMAL", "NORMAL", "WARNING")]
    summary = compliance_summary(readings, excursion_count=1)
    assert summary["compliance_percentage"] == 75.0
    assert summary["warning_readings"] == 1
    assert summary["excursion_count"] == 1
    assert compliance_summary([])["compliance_percentage"] == 100.0


class FakeColdChainRepo(FakeRepo):
    """Treats the most recently added excursion as the zone's active one."""

    def __init__(self, zone, **returns):
        super().__init__(get_zone=zone, **returns)

    async def get_active_excursion(self, zone_id):
        excursions = self.added_of(TemperatureExcursion)
        return excursions[-1] if excursions else None


def _service(audit, repo):
    service = ColdChainService(None)
    service.repo = repo
    service.audit = audit
    return service


async def test_zone_codes_are_unique_per_site(audit):
    service = _service(audit, FakeRepo(get_zone_by_code=_zone()))
    data = dict(site_id=SITE_ID, code="REFRIG-01", name="Cooler", min_temp=2, max_temp=8,
                warning_min=1, warning_max=9, critical_min=0, critical_max=10)
    with pytest.raises(ConflictError):
        await service.create_zone(make_ctx("QC"), data)


async def test_excursion_opens_widens_and_ends(audit):
    ctx = make_ctx("Operator")
    zone = _zone()
    repo = FakeColdChainRepo(zone)
    service = _service(audit, repo)

    normal = await service.record_reading(ctx, zone_id=zone.id, temperature=4.0, recorded_at=T0)
    assert normal.status == "NORMAL"
    assert normal.alert_triggered is False
    assert repo.added_of(TemperatureExcursion) == []

    await service.record_reading(ctx, zone_id=zone.id, temperature=9.2, recorded_at=T0 + timedelta(minutes=5))
    (excursion,) = repo.added_of(TemperatureExcursion)
    assert (excursion.status, excursion.severity) == ("OPEN", "WARNING")
    assert excursion.start_time == T0 + timedelta(minutes=5)

    await service.record_reading(ctx, zone_id=zone.id, temperature=11.5, recorded_at=T0 + timedelta(minutes=10))
    assert len(repo.added_of(TemperatureExcursion)) == 1
    assert excursion.severity == "CRITICAL"
    assert (excursion.min_temp, excursion.max_temp) == (9.2, 11.5)

    await service.record_reading(ctx, zone_id=zone.id, temperature=5.0, recorded_at=T0 + timedelta(minutes=50))
    assert excursion.end_time == T0 + timedelta(minutes=50)
    assert excursion.duration_minutes == 45
    assert len(repo.added_of(TemperatureReading)) == 4

    # an alert after the excursion ended starts a new one
    await service.record_reading(ctx, zone_id=zone.id, temperature=0.5, recorded_at=T0 + timedelta(hours=2))
    assert len(repo.added_of(TemperatureExcursion)) == 2
    assert repo.added_of(TemperatureExcursion)[1].severity == "WARNING"


def _excursion(status="OPEN"):
    return TemperatureExcursion(
        id=uuid4(), zone_id=uuid4(), status=status, severity="WARNING", start_time=T0, min_temp=9.5, max_temp=9.5,
        affected_items=[],
    )


async def test_investigation_resolves_the_excursion(audit):
    excursion = _excursion()
    service = _service(audit, FakeRepo(get_excursion=excursion))
    lot = uuid4()

    await service.investigate(
        make_ctx("QC"),
        excursion.id,
        root_cause="door left open",
        corrective_action="door alarm fitted",
        affected_items=[{"item_id": lot, "qty": 12, "disposition": "QUARANTINE"}],
    )

    assert excursion.status == "RESOLVED"
    assert excursion.investigated_by == "Test User"
    assert excursion.affected_items == [{"item_id": str(lot), "qty": 12, "disposition": "QUARANTINE"}]


async def test_investigation_validates_dispositions(audit):
    service = _service(audit, FakeRepo(get_excursion=_excursion()))
    with pytest.raises(ValidationError, match="Invalid disposition"):
        await service.investigate(
            make_ctx("QC"), uuid4(), root_cause="x", corrective_action="y", affected_items=[{"disposition": "EAT"}]
        )


async def test_close_needs_a_resolved_excursion(audit):
    ctx = make_ctx("QC")
    with pytest.raises(ValidationError, match="Invalid status transition from OPEN to CLOSED"):
        await _service(audit, FakeRepo(get_excursion=_excursion())).close_excursion(ctx, uuid4())

    resolved = _excursion("RESOLVED")
    await _service(audit, FakeRepo(get_excursion=resolved)).close_excursion(ctx, resolved.id)
    assert resolved.status == "CLOSED"


async def test_compliance_report_per_zone(audit):
    zone, other = _zone(), _zone()
    readings = [SimpleNamespace(status="NORMAL"), SimpleNamespace(status="CRITICAL")]
    repo = FakeRepo(list_zones=[zone, other], list_readings=readings, list_excursions=[_excursion()])
    end = T0 + timedelta(days=1)

    report = await _service(audit, repo).compliance_report(zone_ids=[zone.id], end=end)

    assert len(report) == 1
    assert report[0]["zone_id"] == zone.id
    assert report[0]["start"] == end - timedelta(days=7)
    assert report[0]["compliance_percentage"] == 50.0
    assert report[0]["excursion_count"] == 1
