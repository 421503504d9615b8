"""Property-based tests for reservation, lifecycle and deposit invariants."""

from datetime import datetime, timedelta

from hypothesis import given
from hypothesis import strategies as st

from rental_core.models.booking import BookingStatus, DepositStatus
from rental_core.models.deposit import LedgerAction
from rental_core.services.booking_service import ALLOWED_TRANSITIONS, allowed_targets, can_transition
from rental_core.services.conflict_service import intervals_overlap
from rental_core.services.deposit_service import fold_entries
from rental_core.services.fuel_service import calculate_fuel_shortage
from rental_core.services.readiness import (
    PREP_CHECKLIST_ITEMS,
    REQUIRED_PHOTOS,
    BookingSnapshot,
    ChecklistStatus,
    intake_checklist,
    is_ready,
    next_step,
)

# Strategies for generating test data
EPOCH = datetime(2026, 1, 1)
instants = st.integers(min_value=0, max_value=24 * 60).map(lambda m: EPOCH + timedelta(minutes=m))
amounts = st.integers(min_value=1, max_value=100_000)
statuses = st.sampled_from([s.value for s in BookingStatus])
levels = st.integers(min_value=0, max_value=100)


@st.composite
def ranges(draw):
    start = draw(instants)
    length = draw(st.integers(min_value=1, max_value=24 * 60))
    return start, start + timedelta(minutes=length)


@st.composite
def ledger_histories(draw):
    """Entries as the ledger service would accept them: one hold, then bounded withholds and releases."""
    held = draw(amounts)
    entries = [(LedgerAction.HOLD.value, held)]
    releasable = held
    for action in draw(st.lists(st.sampled_from([LedgerAction.WITHHOLD.value, LedgerAction.RELEASE.value]), max_size=10)):
        if releasable == 0:
            break
        amount = draw(st.integers(min_value=1, max_value=releasable))
        entries.append((action, amount))
        releasable -= amount
    return entries


@st.composite
def snapshots(draw):
    deposit_required = draw(st.booleans())
    return BookingSnapshot(
        status=BookingStatus.CONFIRMED.value,
        vehicle_assigned=draw(st.booleans()),
        prep_done=draw(st.integers(min_value=0, max_value=len(PREP_CHECKLIST_ITEMS))),
        photos_done=draw(st.integers(min_value=0, max_value=len(REQUIRED_PHOTOS))),
        checked_in=draw(st.booleans()),
        payment_complete=draw(st.booleans()),
        # A booking without a deposit counts as collected
        deposit_collected=draw(st.booleans()) if deposit_required else True,
        deposit_required=deposit_required,
        agreement_signed=draw(st.booleans()),
        walkaround_complete=draw(st.booleans()),
        walkaround_acknowledged=draw(st.booleans()),
    )


@given(first=ranges(), second=ranges())
def test_overlap_is_symmetric(first, second):
    assert intervals_overlap(*first, *second) == intervals_overlap(*second, *first)


@given(first=ranges(), gap=st.integers(min_value=0, max_value=600))
def test_back_to_back_ranges_never_overlap(first, gap):
    start, end = first
    later = end + timedelta(minutes=gap)
    assert not intervals_overlap(start, end, later, later + timedelta(hours=1))


@given(outer=ranges(), data=st.data())
def test_contained_range_overlaps(outer, data):
    start, end = outer
    minutes = int((end - start).total_seconds() // 60)
    offset = data.draw(st.integers(min_value=0, max_value=minutes - 1))
    length = data.draw(st.integers(min_value=1, max_value=minutes - offset))
    inner_start = start + timedelta(minutes=offset)
    assert intervals_overlap(start, end, inner_start, inner_start + timedelta(minutes=length))


@given(entries=ledger_histories())
def test_folded_balance_accounts_for_every_cent(entries):
    balance = fold_entries(entries)

    assert balance.releasable >= 0
    assert balance.held == balance.withheld + balance.released + balance.releasable
    assert balance.balance == balance.held + balance.withheld - balance.released
    assert balance.entry_count == len(entries)


@given(entries=ledger_histories())
def test_settled_status_only_when_nothing_releasable(entries):
    balance = fold_entries(entries)
    status = balance.status(deposit_amount=entries[0][1])

    settled = status in (DepositStatus.RELEASED.value, DepositStatus.WITHHELD.value)
    assert settled == (balance.releasable == 0)
    if status == DepositStatus.RELEASED.value:
        assert balance.released > 0


@given(entries=ledger_histories())
def test_fold_is_prefix_monotonic(entries):
    """Appending entries never raises what is still releasable."""
    releasable = [fold_entries(entries[:n]).releasable for n in range(1, len(entries) + 1)]
    assert releasable == sorted(releasable, reverse=True)


@given(start=statuses, choices=st.lists(st.integers(min_value=0, max_value=10), max_size=10))
def test_walks_follow_lifecycle_edges(start, choices):
    """Any walk along allowed edges reaches a final status in at most three steps."""
    status = start
    steps = 0
    for choice in choices:
        targets = allowed_targets(status)
        if not targets:
            break
        nxt = targets[choice % len(targets)]
        assert can_transition(status, nxt)
        assert nxt != BookingStatus.PENDING.value
        status = nxt
        steps += 1

    assert steps <= 3


@given(from_status=statuses, to_status=statuses)
def test_final_statuses_absorb(from_status, to_status):
    if not ALLOWED_TRANSITIONS[BookingStatus(from_status)]:
        assert not can_transition(from_status, to_status)
    assert not can_transition(from_status, from_status)


@given(snapshot=snapshots())
def test_gate_agrees_with_checklist(snapshot):
    """Ready to activate exactly when every required checklist item is complete."""
    required_complete = all(
        item.status == ChecklistStatus.COMPLETE
        for item in intake_checklist(snapshot)
        if item.required
    )

    assert is_ready(snapshot) == required_complete
    assert next_step(snapshot) is not None


@given(pickup=levels, returned=levels, tank=st.integers(min_value=1, max_value=200))
def test_fuel_charge_covers_the_shortfall(pickup, returned, tank):
    charge = calculate_fuel_shortage(pickup, returned, tank, price_per_liter_cents=185, service_fee_cents=2500)

    if returned >= pickup:
        assert charge is None
    else:
        assert charge.liters_short > 0
        assert charge.fuel_cost >= charge.liters_short * 185 - 1e-6
        assert charge.total == charge.fuel_cost + 2500
