"""Test configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone

# The application engine is created at import time; point it at in-memory SQLite
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rental_core.core.config import settings
from rental_core.core.database import Base, engine_options, get_db
from rental_core.models import *  # noqa: F403 - Import all models
from rental_core.models.checkin import CheckInStatus
from rental_core.services.booking_service import BookingService
from rental_core.services.checkin_service import CheckInService
from rental_core.services.hold_service import HoldService
from rental_core.services.notification_service import NotificationRequest, NotificationService
from rental_core.services.payment_service import PaymentService
from rental_core.services.readiness import PREP_CHECKLIST_ITEMS, REQUIRED_PHOTOS
from rental_core.services.vehicle_service import VehicleService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STAFF = "staff-1"


class FakeClock:
    """Settable clock handed to services in place of utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingDispatcher:
    """Dispatcher that keeps every request it delivers."""

    def __init__(self):
        self.sent: list[NotificationRequest] = []

    async def dispatch(self, request: NotificationRequest) -> None:
        self.sent.append(request)


async def create_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **engine_options(TEST_DATABASE_URL))

    await create_tables(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 6, 1, 9, 0))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """The real application with its database dependency pointed at the test session."""
    from rental_core.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    """Bearer token signed the way the identity provider signs them."""
    token = jwt.encode({"sub": STAFF, "username": "counter"}, settings.bearer_token_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def vehicle(test_session):
    return await VehicleService(test_session).create_vehicle(
        name="Toyota Corolla",
        category="Compact",
        license_plate="RC-1001",
        tank_capacity_liters=50,
    )


@pytest_asyncio.fixture
async def other_vehicle(test_session):
    return await VehicleService(test_session).create_vehicle(
        name="Ford Transit",
        category="Van",
        license_plate="RC-2002",
    )


@pytest.fixture
def rental_range(clock):
    """A three-day rental starting two days after the fixed clock."""
    start = clock.now + timedelta(days=2)
    return start, start + timedelta(days=3)


@pytest_asyncio.fixture
async def pending_booking(test_session, clock, vehicle, rental_range):
    """Booking converted from a hold, with a rental total and a deposit."""
    holds = HoldService(test_session, clock)
    hold = await holds.create_hold(vehicle.id, "cust-1", *rental_range, customer_name="Ada Driver")
    return await holds.convert_hold(hold.id, total_amount=45000, deposit_amount=30000)


@pytest.fixture
def notifications(test_session, clock, dispatcher):
    return NotificationService(test_session, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def booking_service(test_session, clock, notifications):
    return BookingService(test_session, clock, notifications=notifications)


@pytest_asyncio.fixture
async def ready_booking(test_session, clock, pending_booking, notifications, booking_service):
    """Confirmed booking with every handover step done; the next step is activation."""
    booking = pending_booking
    checkins = CheckInService(test_session, clock, notifications=notifications)

    await booking_service.transition(booking.id, "confirmed", STAFF)
    await booking_service.assign_vehicle(booking.id, booking.vehicle_id, STAFF)
    await booking_service.update_preparation(
        booking.id,
        STAFF,
        prep_items=list(PREP_CHECKLIST_ITEMS),
        photos=list(REQUIRED_PHOTOS),
    )
    await checkins.record_check_in(
        booking.id,
        {
            "identity_verified": True,
            "license_verified": True,
            "license_name_matches": True,
            "license_valid": True,
            "age_verified": True,
        },
        STAFF,
    )
    record = await checkins.complete_check_in(booking.id, STAFF)
    assert record.check_in_status == CheckInStatus.PASSED.value

    await PaymentService(test_session, clock).record_payment_update(
        booking.id, STAFF, amount_paid=booking.total_amount, deposit_status="authorized"
    )
    await booking_service.update_preparation(
        booking.id,
        STAFF,
        agreement_signed=True,
        walkaround_completed=True,
        walkaround_acknowledged=True,
    )
    return booking


@pytest_asyncio.fixture
async def active_booking(ready_booking, booking_service):
    """Booking that has been handed over, with its deposit authorized."""
    outcome = await booking_service.transition(ready_booking.id, "active", STAFF)
    return outcome.booking


@pytest.fixture
def api_range():
    """ISO range in the future of the wall clock, for requests through the API."""

    def make(days_ahead: int = 30, length_days: int = 2) -> dict:
        start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=days_ahead)
        end = start + timedelta(days=length_days)
        return {"start_at": start.isoformat(), "end_at": end.isoformat()}

    return make
