"""Unit tests for counter check-in."""

from datetime import date, datetime

import pytest

from rental_core.core.exceptions import NotAuthenticatedError, ValidationError
from rental_core.models.alert import AlertType
from rental_core.models.checkin import CheckInStatus, TimingStatus
from rental_core.services.alert_service import AlertService
from rental_core.services.checkin_service import (
    CheckInService,
    calculate_age,
    calculate_timing_status,
    is_license_expired,
    is_license_expired_for_rental,
    score_validations,
)

STAFF = "staff-1"

VERIFIED = {
    "identity_verified": True,
    "license_verified": True,
    "license_name_matches": True,
    "license_valid": True,
    "age_verified": True,
}


class TestCalculateAge:
    def test_birthday_passed(self):
        assert calculate_age(date(2000, 3, 1), date(2026, 6, 1)) == 26

    def test_birthday_not_yet_reached(self):
        assert calculate_age(date(2000, 6, 2), date(2026, 6, 1)) == 25

    def test_on_birthday(self):
        assert calculate_age(date(2005, 6, 1), date(2026, 6, 1)) == 21


class TestTimingStatus:
    start = datetime(2026, 6, 3, 10, 0)

    def test_within_window(self):
        assert calculate_timing_status(self.start, datetime(2026, 6, 3, 10, 30)) == TimingStatus.ON_TIME
        assert calculate_timing_status(self.start, datetime(2026, 6, 3, 9, 30)) == TimingStatus.ON_TIME

    def test_early(self):
        assert calculate_timing_status(self.start, datetime(2026, 6, 3, 9, 29)) == TimingStatus.EARLY

    def test_late(self):
        assert calculate_timing_status(self.start, datetime(2026, 6, 3, 10, 31)) == TimingStatus.LATE

    def test_custom_window(self):
        assert calculate_timing_status(self.start, datetime(2026, 6, 3, 10, 20), window_minutes=15) == TimingStatus.LATE


def test_license_expiry():
    assert is_license_expired(date(2026, 5, 31), date(2026, 6, 1))
    assert not is_license_expired(date(2026, 6, 1), date(2026, 6, 1))


def test_license_expiring_mid_rental():
    rental_end = datetime(2026, 6, 10, 10, 0)

    assert is_license_expired_for_rental(date(2026, 6, 9), rental_end)
    assert not is_license_expired_for_rental(date(2026, 6, 10), rental_end)


def test_score_validations_ignores_advisory_checks():
    from rental_core.services.checkin_service import CheckInValidation

    status, reason = score_validations([
        CheckInValidation("identity", "Government Photo ID", True, True),
        CheckInValidation("timing", "Within Booking Window", False, False),
    ])

    assert status == CheckInStatus.PASSED
    assert reason is None


@pytest.mark.asyncio
async def test_complete_check_in_passes(test_session, clock, pending_booking, notifications, dispatcher):
    service = CheckInService(test_session, clock, notifications=notifications)
    await service.record_check_in(
        pending_booking.id, {**VERIFIED, "customer_dob": date(1990, 1, 15)}, STAFF
    )

    record = await service.complete_check_in(pending_booking.id, STAFF)

    assert record.check_in_status == CheckInStatus.PASSED.value
    assert record.blocked_reason is None
    assert record.checked_in_by == STAFF
    assert record.checked_in_at == clock.now
    assert [r.event_type for r in dispatcher.sent] == ["checkin_complete"]


@pytest.mark.asyncio
async def test_underage_driver_needs_review(test_session, clock, pending_booking, notifications):
    service = CheckInService(test_session, clock, notifications=notifications)
    await service.record_check_in(pending_booking.id, {**VERIFIED, "customer_dob": date(2006, 1, 1)}, STAFF)

    record = await service.complete_check_in(pending_booking.id, STAFF)

    assert record.check_in_status == CheckInStatus.NEEDS_REVIEW.value
    assert "Age Requirement (21+)" in record.blocked_reason

    alerts = await AlertService(test_session, clock).list_alerts(booking_id=pending_booking.id)
    assert [a.alert_type for a in alerts] == [AlertType.VERIFICATION_PENDING.value]


@pytest.mark.asyncio
async def test_license_lapsing_during_rental_needs_review(test_session, clock, pending_booking, notifications):
    service = CheckInService(test_session, clock, notifications=notifications)
    lapses = pending_booking.start_at.date()
    await service.record_check_in(pending_booking.id, {**VERIFIED, "license_expiry_date": lapses}, STAFF)

    validations = {v.field: v.passed for v in await service.get_validations(pending_booking.id)}
    record = await service.complete_check_in(pending_booking.id, STAFF)

    assert validations["license_expiry"]
    assert not validations["license_rental_coverage"]
    assert record.check_in_status == CheckInStatus.NEEDS_REVIEW.value


@pytest.mark.asyncio
async def test_nothing_recorded_needs_review(test_session, clock, pending_booking, notifications):
    record = await CheckInService(test_session, clock, notifications=notifications).complete_check_in(
        pending_booking.id, STAFF
    )

    assert record.check_in_status == CheckInStatus.NEEDS_REVIEW.value
    assert "Government Photo ID" in record.blocked_reason


@pytest.mark.asyncio
async def test_arrival_time_sets_timing(test_session, clock, pending_booking, notifications):
    service = CheckInService(test_session, clock, notifications=notifications)

    record = await service.record_check_in(
        pending_booking.id, {"arrival_time": pending_booking.start_at}, STAFF
    )

    assert record.timing_status == TimingStatus.ON_TIME.value
    assert record.check_in_status == CheckInStatus.PENDING.value


@pytest.mark.asyncio
async def test_verdict_fields_cannot_be_recorded(test_session, clock, pending_booking, notifications):
    service = CheckInService(test_session, clock, notifications=notifications)

    with pytest.raises(ValidationError):
        await service.record_check_in(pending_booking.id, {"check_in_status": "passed"}, STAFF)


@pytest.mark.asyncio
async def test_record_requires_actor(test_session, clock, pending_booking, notifications):
    with pytest.raises(NotAuthenticatedError):
        await CheckInService(test_session, clock, notifications=notifications).record_check_in(
            pending_booking.id, VERIFIED, None
        )


@pytest.mark.asyncio
async def test_blocked_check_in_blocks_activation(
    test_session, clock, pending_booking, notifications, booking_service
):
    service = CheckInService(test_session, clock, notifications=notifications)
    await service.record_check_in(pending_booking.id, VERIFIED, STAFF)

    record = await service.block_check_in(pending_booking.id, "Customer refused ID scan", STAFF)
    snapshot = await booking_service.build_snapshot(pending_booking)

    assert record.check_in_status == CheckInStatus.BLOCKED.value
    assert record.blocked_reason == "Customer refused ID scan"
    assert snapshot.check_in_started
    assert not snapshot.checked_in


@pytest.mark.asyncio
async def test_block_requires_reason(test_session, clock, pending_booking, notifications):
    with pytest.raises(ValidationError):
        await CheckInService(test_session, clock, notifications=notifications).block_check_in(
            pending_booking.id, "", STAFF
        )
