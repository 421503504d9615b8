"""Unit tests for damage intake and review."""

import pytest

from rental_core.core.exceptions import ConflictError, ValidationError
from rental_core.models.alert import AlertType
from rental_core.models.deposit import DamageSeverity, DamageStatus, LedgerCategory
from rental_core.services.alert_service import AlertService
from rental_core.services.deposit_service import DepositLedgerService
from rental_core.services.damage_service import DamageService, damage_withhold_amount

STAFF = "staff-1"


@pytest.mark.parametrize(
    "severity, estimate, expected",
    [
        (DamageSeverity.MINOR, None, 10000),
        (DamageSeverity.MODERATE, None, 25000),
        (DamageSeverity.SEVERE, None, 50000),
        (DamageSeverity.SEVERE, 12000, 12000),
        (DamageSeverity.MINOR, 80000, 10000),
    ],
)
def test_withhold_amount(severity, estimate, expected):
    assert damage_withhold_amount(severity, estimate) == expected


@pytest.mark.asyncio
async def test_damage_during_rental(test_session, clock, active_booking, notifications, dispatcher):
    intake = await DamageService(test_session, clock, notifications=notifications).create_damage_report(
        active_booking.id, "minor", "Chip in windshield", "windshield", STAFF, estimated_cost=6000
    )

    assert intake.withheld_amount == 6000
    assert intake.report.status == DamageStatus.UNDER_REVIEW.value
    assert intake.report.vehicle_id == active_booking.vehicle_id
    assert active_booking.return_is_exception
    assert active_booking.return_exception_reason == "Damage reported: minor - windshield"

    entries = await DepositLedgerService(test_session, clock).get_entries(active_booking.id)
    assert (entries[-1].action, entries[-1].category) == ("withhold", LedgerCategory.DAMAGE.value)

    alerts = await AlertService(test_session, clock).list_alerts(
        booking_id=active_booking.id, alert_type=AlertType.DAMAGE_REPORTED
    )
    assert len(alerts) == 1
    assert dispatcher.sent[-1].event_type == "damage_reported"


@pytest.mark.asyncio
async def test_severe_damage_is_capped_at_releasable(test_session, clock, active_booking, notifications):
    intake = await DamageService(test_session, clock, notifications=notifications).create_damage_report(
        active_booking.id, DamageSeverity.SEVERE, "Door crushed", "driver door", STAFF
    )

    balance = await DepositLedgerService(test_session, clock).get_balance(active_booking.id)
    assert intake.withheld_amount == 30000
    assert balance.releasable == 0
    assert active_booking.deposit_status == "withheld"


@pytest.mark.asyncio
async def test_damage_before_handover_does_not_flag_return(test_session, clock, pending_booking, notifications):
    intake = await DamageService(test_session, clock, notifications=notifications).create_damage_report(
        pending_booking.id, "moderate", "Dent", "rear door", STAFF
    )

    assert intake.withheld_amount == 0
    assert not pending_booking.return_is_exception


@pytest.mark.asyncio
async def test_damage_before_handover_keeps_authorized_deposit(test_session, clock, ready_booking, notifications):
    assert ready_booking.is_deposit_authorized

    intake = await DamageService(test_session, clock, notifications=notifications).create_damage_report(
        ready_booking.id, "moderate", "Dent", "rear door", STAFF
    )

    ledger = DepositLedgerService(test_session, clock)
    assert intake.withheld_amount == 0
    assert not ready_booking.return_is_exception
    assert [e.action for e in await ledger.get_entries(ready_booking.id)] == ["hold"]
    assert (await ledger.get_balance(ready_booking.id)).releasable == 30000

    alerts = await AlertService(test_session, clock).list_alerts(
        booking_id=ready_booking.id, alert_type=AlertType.DAMAGE_REPORTED
    )
    assert len(alerts) == 1


@pytest.mark.asyncio
async def test_unknown_severity(test_session, clock, pending_booking, notifications):
    with pytest.raises(ValidationError):
        await DamageService(test_session, clock, notifications=notifications).create_damage_report(
            pending_booking.id, "catastrophic", "?", "roof", STAFF
        )


@pytest.mark.asyncio
async def test_resolve_damage(test_session, clock, active_booking, notifications, booking_service):
    service = DamageService(test_session, clock, notifications=notifications)
    intake = await service.create_damage_report(active_booking.id, "minor", "Scratch", "hood", STAFF)

    resolved = await service.resolve_damage(intake.report.id, STAFF, "resolved")

    assert resolved.status == DamageStatus.RESOLVED.value
    assert await booking_service.count_unresolved_damage(active_booking.id) == 0

    with pytest.raises(ConflictError) as exc_info:
        await service.resolve_damage(intake.report.id, STAFF, "closed")
    assert exc_info.value.problem_details["code"] == "DAMAGE_NOT_UNDER_REVIEW"


@pytest.mark.asyncio
async def test_resolve_requires_closing_status(test_session, clock, active_booking, notifications):
    service = DamageService(test_session, clock, notifications=notifications)
    intake = await service.create_damage_report(active_booking.id, "minor", "Scratch", "hood", STAFF)

    with pytest.raises(ValidationError):
        await service.resolve_damage(intake.report.id, STAFF, "under_review")

    assert [r.id for r in await service.list_for_booking(active_booking.id)] == [intake.report.id]
