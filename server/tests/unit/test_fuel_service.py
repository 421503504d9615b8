"""Unit tests for fuel settlement."""

import pytest

from rental_core.core.exceptions import ConflictError, ValidationError
from rental_core.models.alert import AlertType
from rental_core.models.deposit import LedgerCategory
from rental_core.models.vehicle import Vehicle
from rental_core.services.alert_service import AlertService
from rental_core.services.damage_service import DamageService
from rental_core.services.deposit_service import DepositLedgerService
from rental_core.services.fuel_service import FuelService, calculate_fuel_shortage
from rental_core.services.vehicle_service import VehicleService

STAFF = "staff-1"


class TestCalculateFuelShortage:
    def test_no_shortfall(self):
        assert calculate_fuel_shortage(100, 100, 60) is None
        assert calculate_fuel_shortage(50, 75, 60) is None

    def test_quarter_tank_short(self):
        charge = calculate_fuel_shortage(100, 75, 60)

        assert charge.liters_short == 15.0
        assert charge.fuel_cost == 2775
        assert charge.service_fee == 2500
        assert charge.total == 5275

    def test_fractional_liters_round_up(self):
        charge = calculate_fuel_shortage(100, 99, 45, price_per_liter_cents=185, service_fee_cents=0)

        # 0.45 L at 185 cents is 83.25 cents
        assert charge.fuel_cost == 84
        assert charge.total == 84

    @pytest.mark.parametrize("pickup, returned", [(101, 50), (100, -1)])
    def test_levels_must_be_percentages(self, pickup, returned):
        with pytest.raises(ValidationError):
            calculate_fuel_shortage(pickup, returned, 60)


@pytest.mark.parametrize(
    "category, expected",
    [
        ("Economy", 45),
        ("Compact SUV", 50),
        ("Full-size SUV", 75),
        ("Minivan", 75),
        ("Cargo Van", 80),
        ("Pickup Truck", 90),
        ("Convertible", 60),
    ],
)
def test_tank_capacity_by_category(category, expected):
    vehicle = Vehicle(name="Unit", category=category, tank_capacity_liters=None)

    assert VehicleService(db=None).get_tank_capacity(vehicle) == expected


def test_own_tank_capacity_wins():
    vehicle = Vehicle(name="Unit", category="Luxury", tank_capacity_liters=52)

    assert VehicleService(db=None).get_tank_capacity(vehicle) == 52


@pytest.mark.asyncio
async def test_shortfall_is_withheld_from_deposit(test_session, clock, active_booking):
    settlement = await FuelService(test_session, clock).settle_fuel(active_booking.id, 100, 50, STAFF)

    # Corolla fixture has a 50 L tank: 25 L at 185 plus the refuel fee
    assert settlement.charge.total == 4625 + 2500
    assert settlement.withheld_amount == 7125
    assert settlement.outstanding == 0

    ledger = DepositLedgerService(test_session, clock)
    entries = await ledger.get_entries(active_booking.id)
    assert entries[-1].category == LedgerCategory.FUEL.value
    assert (await ledger.get_balance(active_booking.id)).releasable == 30000 - 7125


@pytest.mark.asyncio
async def test_no_shortfall_changes_nothing(test_session, clock, active_booking):
    settlement = await FuelService(test_session, clock).settle_fuel(active_booking.id, 75, 80, STAFF)

    assert settlement.charge is None
    assert settlement.outstanding == 0
    assert len(await DepositLedgerService(test_session, clock).get_entries(active_booking.id)) == 1


@pytest.mark.asyncio
async def test_charge_beyond_deposit_goes_to_staff(test_session, clock, active_booking, notifications):
    await DamageService(test_session, clock, notifications=notifications).create_damage_report(
        active_booking.id, "severe", "Door crushed", "driver door", STAFF
    )

    settlement = await FuelService(test_session, clock).settle_fuel(active_booking.id, 100, 0, STAFF)

    assert settlement.withheld_amount == 0
    assert settlement.outstanding == settlement.charge.total

    alerts = await AlertService(test_session, clock).list_alerts(
        booking_id=active_booking.id, alert_type=AlertType.PAYMENT_PENDING
    )
    assert [a.title for a in alerts] == ["Fuel charge outstanding"]


@pytest.mark.asyncio
async def test_fuel_is_charged_once(test_session, clock, active_booking):
    service = FuelService(test_session, clock)
    await service.settle_fuel(active_booking.id, 100, 50, STAFF)

    with pytest.raises(ConflictError) as exc_info:
        await service.settle_fuel(active_booking.id, 100, 50, STAFF)
    assert exc_info.value.problem_details["code"] == "FUEL_ALREADY_SETTLED"

    ledger = DepositLedgerService(test_session, clock)
    fuel = [e.amount for e in await ledger.get_entries(active_booking.id) if e.category == LedgerCategory.FUEL.value]
    assert fuel == [7125]
    assert (await ledger.get_balance(active_booking.id)).releasable == 30000 - 7125


@pytest.mark.asyncio
async def test_no_shortfall_leaves_fuel_open(test_session, clock, active_booking):
    service = FuelService(test_session, clock)
    await service.settle_fuel(active_booking.id, 75, 75, STAFF)

    settlement = await service.settle_fuel(active_booking.id, 75, 50, STAFF)

    assert settlement.withheld_amount > 0


@pytest.mark.asyncio
async def test_fuel_needs_a_return(test_session, clock, pending_booking):
    with pytest.raises(ConflictError) as exc_info:
        await FuelService(test_session, clock).settle_fuel(pending_booking.id, 100, 0, STAFF)
    assert exc_info.value.problem_details["code"] == "BOOKING_NOT_IN_RETURN"


@pytest.mark.asyncio
async def test_fuel_before_handover_keeps_deposit(test_session, clock, ready_booking):
    with pytest.raises(ConflictError):
        await FuelService(test_session, clock).settle_fuel(ready_booking.id, 100, 0, STAFF)

    entries = await DepositLedgerService(test_session, clock).get_entries(ready_booking.id)
    assert [e.category for e in entries] == [LedgerCategory.AUTHORIZATION.value]
