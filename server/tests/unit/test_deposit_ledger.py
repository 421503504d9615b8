"""Unit tests for the deposit ledger."""

import pytest

from rental_core.core.exceptions import NotAuthenticatedError, ValidationError
from rental_core.models.booking import DepositStatus
from rental_core.models.deposit import LedgerAction, LedgerCategory
from rental_core.services.audit_service import AuditService
from rental_core.services.deposit_service import DepositBalance, DepositLedgerService, fold_entries
from rental_core.services.payment_service import PaymentService

STAFF = "staff-1"


class TestFold:
    def test_empty_ledger(self):
        balance = fold_entries([])

        assert balance == DepositBalance()
        assert balance.releasable == 0
        assert balance.status(0) == "not_required"
        assert balance.status(30000) == DepositStatus.DUE.value

    def test_hold_then_partial_withhold(self):
        balance = fold_entries([("hold", 30000), ("withhold", 10000)])

        assert balance.balance == 40000
        assert balance.releasable == 20000
        assert balance.status(30000) == "held"

    def test_fully_released(self):
        balance = fold_entries([("hold", 30000), ("release", 30000)])

        assert balance.balance == 0
        assert balance.releasable == 0
        assert balance.status(30000) == DepositStatus.RELEASED.value

    def test_fully_withheld(self):
        balance = fold_entries([("hold", 30000), ("withhold", 30000)])

        assert balance.status(30000) == DepositStatus.WITHHELD.value

    def test_partial_release(self):
        balance = fold_entries([("hold", 30000), ("withhold", 5000), ("release", 10000)])

        assert balance.releasable == 15000
        assert balance.entry_count == 3
        assert balance.status(30000) == DepositStatus.PARTIALLY_RELEASED.value

    def test_unknown_action(self):
        with pytest.raises(ValueError):
            fold_entries([("refund", 100)])


async def authorize(session, clock, booking):
    return await PaymentService(session, clock).record_payment_update(
        booking.id, STAFF, deposit_status=DepositStatus.AUTHORIZED
    )


@pytest.mark.asyncio
async def test_authorization_appends_one_hold(test_session, clock, pending_booking):
    await authorize(test_session, clock, pending_booking)
    await authorize(test_session, clock, pending_booking)

    ledger = DepositLedgerService(test_session, clock)
    entries = await ledger.get_entries(pending_booking.id)

    assert [(e.action, e.amount, e.category) for e in entries] == [
        ("hold", 30000, LedgerCategory.AUTHORIZATION.value),
    ]
    assert (await ledger.get_balance(pending_booking.id)).releasable == 30000


@pytest.mark.asyncio
async def test_entries_are_audited(test_session, clock, pending_booking):
    await authorize(test_session, clock, pending_booking)
    await DepositLedgerService(test_session, clock).append_entry(
        pending_booking.id, LedgerAction.WITHHOLD, 4000, "Late return", LedgerCategory.MANUAL, STAFF, commit=True
    )

    actions = [e.action for e in await AuditService(test_session, clock).list_for_entity("booking", pending_booking.id)]

    assert "deposit_hold" in actions
    assert "deposit_withhold" in actions


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100])
async def test_non_positive_amount_is_rejected(test_session, clock, pending_booking, amount):
    with pytest.raises(ValidationError):
        await DepositLedgerService(test_session, clock).append_entry(
            pending_booking.id, LedgerAction.HOLD, amount, "bad", LedgerCategory.MANUAL, STAFF
        )


@pytest.mark.asyncio
async def test_cannot_take_more_than_releasable(test_session, clock, pending_booking):
    await authorize(test_session, clock, pending_booking)
    ledger = DepositLedgerService(test_session, clock)

    with pytest.raises(ValidationError) as exc_info:
        await ledger.append_entry(
            pending_booking.id, LedgerAction.WITHHOLD, 30001, "Too much", LedgerCategory.MANUAL, STAFF
        )

    assert exc_info.value.problem_details["errors"]["releasable"] == 30000
    assert (await ledger.get_balance(pending_booking.id)).withheld == 0


@pytest.mark.asyncio
async def test_ledger_requires_actor(test_session, clock, pending_booking):
    with pytest.raises(NotAuthenticatedError):
        await DepositLedgerService(test_session, clock).append_entry(
            pending_booking.id, LedgerAction.HOLD, 100, "no actor", LedgerCategory.MANUAL, None
        )


@pytest.mark.asyncio
async def test_staff_release_settles_status(test_session, clock, pending_booking):
    await authorize(test_session, clock, pending_booking)
    ledger = DepositLedgerService(test_session, clock)

    partial = await ledger.release_deposit(pending_booking.id, STAFF, amount=10000)
    assert partial.category == LedgerCategory.MANUAL.value
    assert pending_booking.deposit_status == DepositStatus.AUTHORIZED.value

    rest = await ledger.release_deposit(pending_booking.id, STAFF)
    assert rest.amount == 20000

    booking = await ledger.get_booking_or_raise(pending_booking.id)
    assert booking.deposit_status == DepositStatus.RELEASED.value


@pytest.mark.asyncio
async def test_release_with_nothing_left(test_session, clock, pending_booking):
    with pytest.raises(ValidationError):
        await DepositLedgerService(test_session, clock).release_deposit(pending_booking.id, STAFF)


@pytest.mark.asyncio
async def test_settled_deposit_ignores_processor_updates(test_session, clock, pending_booking):
    await authorize(test_session, clock, pending_booking)
    await DepositLedgerService(test_session, clock).release_deposit(pending_booking.id, STAFF)

    booking = await PaymentService(test_session, clock).record_payment_update(
        pending_booking.id, STAFF, deposit_status="hold_created"
    )

    assert booking.deposit_status == DepositStatus.RELEASED.value


@pytest.mark.asyncio
async def test_unknown_processor_status(test_session, clock, pending_booking):
    with pytest.raises(ValidationError):
        await PaymentService(test_session, clock).record_payment_update(
            pending_booking.id, STAFF, deposit_status="pending_review"
        )
