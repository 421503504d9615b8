"""Unit tests for availability search."""

from datetime import timedelta

import pytest

from rental_core.core.exceptions import ValidationError
from rental_core.services.booking_service import BookingService
from rental_core.services.vehicle_service import VehicleService

STAFF = "staff-1"


@pytest.mark.asyncio
async def test_booking_blocks_its_cleaning_buffer(test_session, clock, pending_booking, other_vehicle):
    # The fixture vehicle keeps the default two hour buffer
    start = pending_booking.end_at + timedelta(hours=1)

    available = await VehicleService(test_session, clock).search_available(start, start + timedelta(days=1))

    assert [v.id for v in available] == [other_vehicle.id]


@pytest.mark.asyncio
async def test_range_after_the_buffer_is_free(test_session, clock, pending_booking, vehicle, other_vehicle):
    start = pending_booking.end_at + timedelta(hours=2)

    available = await VehicleService(test_session, clock).search_available(start, start + timedelta(days=1))

    assert {v.id for v in available} == {vehicle.id, other_vehicle.id}


@pytest.mark.asyncio
async def test_buffer_is_per_vehicle(test_session, clock, rental_range):
    vehicles = VehicleService(test_session, clock)
    quick = await vehicles.create_vehicle(name="Kia Picanto", category="Economy", cleaning_buffer_hours=0)
    slow = await vehicles.create_vehicle(name="Mercedes Sprinter", category="Cargo Van", cleaning_buffer_hours=6)

    bookings = BookingService(test_session, clock)
    for unit in (quick, slow):
        await bookings.create_walk_in_booking(unit.id, "cust-1", *rental_range, actor=STAFF)

    start = rental_range[1] + timedelta(hours=3)
    available = await vehicles.search_available(start, start + timedelta(days=1))

    assert [v.id for v in available] == [quick.id]


@pytest.mark.asyncio
async def test_search_filters_by_category(test_session, clock, rental_range, vehicle, other_vehicle):
    available = await VehicleService(test_session, clock).search_available(*rental_range, category="Van")

    assert [v.id for v in available] == [other_vehicle.id]


@pytest.mark.asyncio
async def test_search_rejects_inverted_range(test_session, clock, rental_range):
    start, end = rental_range

    with pytest.raises(ValidationError):
        await VehicleService(test_session, clock).search_available(end, start)
