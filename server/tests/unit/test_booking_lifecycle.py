"""Unit tests for the booking lifecycle state machine."""

from uuid import uuid4

import pytest

from rental_core.core.exceptions import (
    ActivationBlockedError,
    ConflictError,
    IllegalTransitionError,
    NotAuthenticatedError,
    NotFoundError,
    NotificationDispatchError,
    ValidationError,
    VehicleConflictError,
)
from rental_core.models.alert import AlertType
from rental_core.models.booking import BookingStatus, DepositStatus
from rental_core.models.deposit import LedgerCategory
from rental_core.services.alert_service import AlertService
from rental_core.services.audit_service import AuditService
from rental_core.services.booking_service import BookingService, allowed_targets, can_transition
from rental_core.services.damage_service import DamageService
from rental_core.services.deposit_service import DepositLedgerService
from rental_core.services.notification_service import NotificationService

STAFF = "staff-1"


class FailingDispatcher:
    async def dispatch(self, request):
        raise NotificationDispatchError(request.event_type, "connection refused")


class TestTransitionTable:
    def test_allowed_targets(self):
        assert allowed_targets("pending") == ["confirmed", "cancelled"]
        assert allowed_targets("confirmed") == ["active", "cancelled"]
        assert allowed_targets("active") == ["completed", "cancelled"]

    def test_final_statuses_have_no_successors(self):
        assert allowed_targets("completed") == []
        assert allowed_targets("cancelled") == []

    def test_steps_cannot_be_skipped(self):
        assert not can_transition("pending", "active")
        assert not can_transition("confirmed", "completed")
        assert not can_transition("pending", "completed")

    def test_no_backward_edges(self):
        assert not can_transition("active", "confirmed")
        assert not can_transition("confirmed", "pending")
        assert not can_transition("completed", "active")


@pytest.mark.asyncio
async def test_confirm_records_audit(test_session, clock, pending_booking, booking_service):
    outcome = await booking_service.transition(pending_booking.id, "confirmed", STAFF, notes="paid online")

    assert outcome.booking.status == BookingStatus.CONFIRMED.value
    assert outcome.from_status == "pending"
    assert not outcome.degraded

    entries = await AuditService(test_session, clock).list_for_entity("booking", pending_booking.id)
    status_changes = [e for e in entries if e.action == "booking_status_changed"]
    assert len(status_changes) == 1
    assert status_changes[0].actor == STAFF
    assert status_changes[0].old_data == {"status": "pending"}
    assert status_changes[0].new_data == {"status": "confirmed", "notes": "paid online"}


@pytest.mark.asyncio
async def test_illegal_transition_leaves_status_unchanged(test_session, pending_booking, booking_service):
    with pytest.raises(IllegalTransitionError) as exc_info:
        await booking_service.transition(pending_booking.id, "completed", STAFF)

    problem = exc_info.value.problem_details
    assert problem["status"] == 409
    assert problem["code"] == "ILLEGAL_TRANSITION"
    assert problem["conflicting_resource"]["allowed"] == ["confirmed", "cancelled"]

    booking = await booking_service.get_booking(pending_booking.id)
    assert booking.status == BookingStatus.PENDING.value


@pytest.mark.asyncio
async def test_final_status_is_final(pending_booking, booking_service):
    await booking_service.transition(pending_booking.id, "cancelled", STAFF)

    for target in ("pending", "confirmed", "active", "completed", "cancelled"):
        with pytest.raises(IllegalTransitionError):
            await booking_service.transition(pending_booking.id, target, STAFF)


@pytest.mark.asyncio
async def test_transition_requires_actor(pending_booking, booking_service):
    with pytest.raises(NotAuthenticatedError):
        await booking_service.transition(pending_booking.id, "confirmed", None)


@pytest.mark.asyncio
async def test_unknown_target_status(pending_booking, booking_service):
    with pytest.raises(ValidationError):
        await booking_service.transition(pending_booking.id, "archived", STAFF)


@pytest.mark.asyncio
async def test_unknown_booking(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.transition(uuid4(), "confirmed", STAFF)


@pytest.mark.asyncio
async def test_activation_blocked_names_the_open_step(pending_booking, booking_service):
    await booking_service.transition(pending_booking.id, "confirmed", STAFF)

    with pytest.raises(ActivationBlockedError) as exc_info:
        await booking_service.transition(pending_booking.id, "active", STAFF)

    problem = exc_info.value.problem_details
    assert problem["code"] == "ACTIVATION_BLOCKED"
    # Converted bookings still need a unit assigned
    assert problem["conflicting_resource"]["next_step"] == "vehicle"

    booking = await booking_service.get_booking(pending_booking.id)
    assert booking.status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_walk_in_skips_vehicle_assignment(clock, vehicle, rental_range, booking_service):
    booking = await booking_service.create_walk_in_booking(vehicle.id, "cust-9", *rental_range, actor=STAFF)
    await booking_service.transition(booking.id, "confirmed", STAFF)

    step = await booking_service.get_next_step(booking.id)

    assert booking.vehicle_assigned_at == clock.now
    assert step.id == "prep"


@pytest.mark.asyncio
async def test_walk_in_conflicts_with_existing_booking(vehicle, rental_range, pending_booking, booking_service):
    with pytest.raises(VehicleConflictError):
        await booking_service.create_walk_in_booking(vehicle.id, "cust-9", *rental_range, actor=STAFF)


@pytest.mark.asyncio
async def test_activate_ready_booking(ready_booking, booking_service, dispatcher):
    outcome = await booking_service.transition(ready_booking.id, "active", STAFF)

    assert outcome.booking.status == BookingStatus.ACTIVE.value
    assert outcome.booking.actual_return_at is None
    assert not outcome.degraded
    assert "rental_activated" in [r.event_type for r in dispatcher.sent]


@pytest.mark.asyncio
async def test_completion_releases_clean_deposit(test_session, clock, active_booking, booking_service, dispatcher):
    clock.advance(days=5)
    outcome = await booking_service.transition(active_booking.id, "completed", STAFF)

    booking = outcome.booking
    assert booking.status == BookingStatus.COMPLETED.value
    assert booking.actual_return_at == clock.now
    assert booking.deposit_status == DepositStatus.RELEASED.value

    ledger = DepositLedgerService(test_session, clock)
    balance = await ledger.get_balance(booking.id)
    assert balance.held == 30000
    assert balance.released == 30000
    assert balance.releasable == 0

    entries = await ledger.get_entries(booking.id)
    assert entries[-1].category == LedgerCategory.COMPLETION.value
    assert entries[-1].created_by == STAFF

    events = [r.event_type for r in dispatcher.sent]
    assert "return_completed" in events
    assert "deposit_released" in events


@pytest.mark.asyncio
async def test_completion_with_damage_keeps_deposit_for_review(
    test_session, clock, active_booking, booking_service, notifications
):
    await booking_service.start_return(active_booking.id, STAFF)
    await DamageService(test_session, clock, notifications=notifications).create_damage_report(
        active_booking.id, "moderate", "Scraped bumper", "rear bumper", STAFF
    )

    outcome = await booking_service.transition(active_booking.id, "completed", STAFF)

    booking = outcome.booking
    assert booking.return_is_exception
    assert booking.deposit_status == DepositStatus.AUTHORIZED.value

    balance = await DepositLedgerService(test_session, clock).get_balance(booking.id)
    assert balance.withheld == 25000
    assert balance.released == 0
    assert balance.releasable == 5000

    alerts = await AlertService(test_session, clock).list_alerts(
        booking_id=booking.id, alert_type=AlertType.PAYMENT_PENDING
    )
    assert [a.title for a in alerts] == ["Deposit review required"]


@pytest.mark.asyncio
async def test_completion_after_deposit_is_fully_withheld(
    test_session, clock, active_booking, booking_service, notifications
):
    damages = DamageService(test_session, clock, notifications=notifications)
    await booking_service.start_return(active_booking.id, STAFF)
    intake = await damages.create_damage_report(
        active_booking.id, "severe", "Door crushed", "driver door", STAFF
    )
    await damages.resolve_damage(intake.report.id, STAFF)

    outcome = await booking_service.transition(active_booking.id, "completed", STAFF)

    assert outcome.booking.deposit_status == DepositStatus.WITHHELD.value
    balance = await DepositLedgerService(test_session, clock).get_balance(active_booking.id)
    assert balance.releasable == 0

    alerts = await AlertService(test_session, clock).list_alerts(
        booking_id=active_booking.id, alert_type=AlertType.PAYMENT_PENDING
    )
    assert alerts == []


@pytest.mark.asyncio
async def test_cancellation_raises_alerts(test_session, clock, ready_booking, booking_service):
    await booking_service.transition(ready_booking.id, "cancelled", STAFF, notes="customer no-show")

    alerts = await AlertService(test_session, clock).list_alerts(booking_id=ready_booking.id)
    by_type = {a.alert_type: a for a in alerts}

    assert "customer no-show" in by_type[AlertType.CUSTOMER_ISSUE.value].message
    # The authorized deposit is not released automatically on cancellation
    assert AlertType.PAYMENT_PENDING.value in by_type
    balance = await DepositLedgerService(test_session, clock).get_balance(ready_booking.id)
    assert balance.releasable == 30000


@pytest.mark.asyncio
async def test_cancellation_without_deposit_raises_one_alert(test_session, clock, vehicle, rental_range):
    bookings = BookingService(test_session, clock)
    booking = await bookings.create_walk_in_booking(vehicle.id, "cust-9", *rental_range, actor=STAFF)

    await bookings.transition(booking.id, "cancelled", STAFF)

    alerts = await AlertService(test_session, clock).list_alerts(booking_id=booking.id)
    assert [a.alert_type for a in alerts] == [AlertType.CUSTOMER_ISSUE.value]


@pytest.mark.asyncio
async def test_failed_notification_degrades_but_commits(test_session, clock, ready_booking):
    notifications = NotificationService(test_session, dispatcher=FailingDispatcher(), clock=clock)
    bookings = BookingService(test_session, clock, notifications=notifications)

    outcome = await bookings.transition(ready_booking.id, "active", STAFF)

    assert outcome.degraded
    assert outcome.notification_failures == ["rental_activated"]
    booking = await bookings.get_booking(ready_booking.id)
    assert booking.status == BookingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_assign_vehicle_checks_the_new_unit(test_session, clock, pending_booking, other_vehicle, booking_service):
    booking_id, other_id = pending_booking.id, other_vehicle.id
    await booking_service.create_walk_in_booking(
        other_id, "cust-9", pending_booking.start_at, pending_booking.end_at, actor=STAFF
    )

    with pytest.raises(VehicleConflictError):
        await booking_service.assign_vehicle(booking_id, other_id, STAFF)

    booking = await booking_service.get_booking(booking_id)
    assert booking.vehicle_id != other_id
    assert booking.vehicle_assigned_at is None


@pytest.mark.asyncio
async def test_assign_vehicle_after_handover_is_rejected(active_booking, other_vehicle, booking_service):
    with pytest.raises(ConflictError) as exc_info:
        await booking_service.assign_vehicle(active_booking.id, other_vehicle.id, STAFF)

    assert exc_info.value.problem_details["code"] == "BOOKING_NOT_OPEN"


@pytest.mark.asyncio
async def test_start_return_requires_active_booking(pending_booking, booking_service):
    with pytest.raises(ConflictError) as exc_info:
        await booking_service.start_return(pending_booking.id, STAFF)

    assert exc_info.value.problem_details["code"] == "BOOKING_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_update_preparation_rejects_unknown_items(pending_booking, booking_service):
    with pytest.raises(ValidationError):
        await booking_service.update_preparation(pending_booking.id, STAFF, prep_items=["polish_rims"])


@pytest.mark.asyncio
async def test_update_preparation_accumulates(pending_booking, booking_service):
    await booking_service.update_preparation(pending_booking.id, STAFF, prep_items=["interior_clean"])
    prep = await booking_service.update_preparation(
        pending_booking.id, STAFF, prep_items=["fuel_verified"], photos=["front"]
    )

    assert prep.completed_prep_items == ["fuel_verified", "interior_clean"]
    assert prep.captured_photos == ["front"]
