"""Vehicle catalog service: lookups, per-vehicle locking and availability search."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.database import is_postgres
from ..core.exceptions import NotFoundError, ValidationError
from ..models.booking import OCCUPYING_BOOKING_STATUSES, Booking, HoldStatus, ReservationHold
from ..models.vehicle import Vehicle

logger = logging.getLogger(__name__)

# Tank size in liters by category keyword, used when a unit has no capacity of its own
TANK_SIZES: dict[str, int] = {
    "economy": 45,
    "compact": 50,
    "midsize": 60,
    "fullsize": 65,
    "luxury": 70,
    "suv": 75,
    "minivan": 75,
    "van": 80,
    "truck": 90,
}


class VehicleService:
    """Service for vehicle catalog operations."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def create_vehicle(
        self,
        name: str,
        category: str,
        license_plate: str | None = None,
        tank_capacity_liters: int | None = None,
        cleaning_buffer_hours: int = 2,
    ) -> Vehicle:
        """Register a vehicle in the catalog."""
        vehicle = Vehicle(
            name=name,
            category=category,
            license_plate=license_plate,
            tank_capacity_liters=tank_capacity_liters,
            cleaning_buffer_hours=cleaning_buffer_hours,
            is_available=True,
        )
        self.db.add(vehicle)
        await self.db.commit()
        await self.db.refresh(vehicle)

        logger.info(
            "Vehicle created successfully",
            extra={
                "vehicle_id": str(vehicle.id),
                "vehicle_name": name,
                "category": category,
            }
        )

        return vehicle

    async def get_vehicle_by_id(self, vehicle_id: UUID) -> Vehicle | None:
        """Get vehicle by ID."""
        stmt = select(Vehicle).where(Vehicle.id == vehicle_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_vehicle_by_id_or_raise(self, vehicle_id: UUID) -> Vehicle:
        """Get vehicle by ID or raise NotFoundError."""
        vehicle = await self.get_vehicle_by_id(vehicle_id)
        if not vehicle:
            logger.warning(
                "Vehicle not found",
                extra={"vehicle_id": str(vehicle_id)}
            )
            raise NotFoundError(
                resource_type="vehicle",
                resource_id=str(vehicle_id)
            )
        return vehicle

    async def get_vehicle_with_lock(self, vehicle_id: UUID) -> Vehicle:
        """
        Get vehicle by ID while holding its write lock until the transaction ends.

        Every write that can change the vehicle's calendar takes this lock
        first, so the conflict re-check and the insert that follows it see a
        calendar no concurrent writer can change.

        Raises:
            NotFoundError: If vehicle not found
        """
        if is_postgres(self.db):
            await self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:vehicle_id))"),
                {"vehicle_id": str(vehicle_id)}
            )
        else:
            # Touching the row takes the database write lock for the rest of the transaction
            await self.db.execute(
                update(Vehicle)
                .where(Vehicle.id == vehicle_id)
                .values(updated_at=self.clock())
                .execution_options(synchronize_session=False)
            )

        vehicle = await self.get_vehicle_by_id_or_raise(vehicle_id)

        logger.debug(
            "Acquired lock for vehicle",
            extra={"vehicle_id": str(vehicle_id)}
        )

        return vehicle

    def get_tank_capacity(self, vehicle: Vehicle) -> int:
        """Tank capacity in liters: the unit's own, else by category keyword, else the default."""
        if vehicle.tank_capacity_liters:
            return vehicle.tank_capacity_liters

        category = (vehicle.category or "").lower()
        for keyword, size in TANK_SIZES.items():
            if keyword in category:
                return size

        return settings.default_tank_capacity_liters

    async def search_available(
        self,
        start_at: datetime,
        end_at: datetime,
        category: str | None = None,
    ) -> list[Vehicle]:
        """
        Vehicles free for the whole range, honoring each vehicle's cleaning buffer.

        This is an advisory read for showing availability. It takes no lock;
        hold creation re-checks at write time.
        """
        if start_at >= end_at:
            raise ValidationError(detail="start_at must be before end_at")

        now = self.clock()

        stmt = select(Vehicle).where(Vehicle.is_available.is_(True))
        if category:
            stmt = stmt.where(Vehicle.category == category)
        stmt = stmt.order_by(Vehicle.name)
        vehicles = list((await self.db.execute(stmt)).scalars())
        if not vehicles:
            return []

        vehicle_ids = [v.id for v in vehicles]
        occupying = [s.value for s in OCCUPYING_BOOKING_STATUSES]

        # Widest possible buffer; refined per vehicle below
        max_buffer = max(v.cleaning_buffer_hours for v in vehicles)
        booking_stmt = select(Booking.vehicle_id, Booking.start_at, Booking.end_at).where(
            Booking.vehicle_id.in_(vehicle_ids),
            Booking.status.in_(occupying),
            Booking.start_at < end_at,
            Booking.end_at > start_at - timedelta(hours=max_buffer),
        )
        hold_stmt = select(ReservationHold.vehicle_id).where(
            ReservationHold.vehicle_id.in_(vehicle_ids),
            ReservationHold.status == HoldStatus.ACTIVE.value,
            ReservationHold.expires_at > now,
            ReservationHold.start_at < end_at,
            ReservationHold.end_at > start_at,
        )

        buffers = {v.id: timedelta(hours=v.cleaning_buffer_hours) for v in vehicles}
        blocked: set[UUID] = set()

        for vehicle_id, booked_start, booked_end in (await self.db.execute(booking_stmt)).all():
            if booked_start < end_at and booked_end + buffers[vehicle_id] > start_at:
                blocked.add(vehicle_id)

        blocked.update(row[0] for row in (await self.db.execute(hold_stmt)).all())

        available = [v for v in vehicles if v.id not in blocked]

        logger.info(
            "Availability search completed",
            extra={
                "start_at": start_at.isoformat(),
                "end_at": end_at.isoformat(),
                "category": category,
                "candidates": len(vehicles),
                "available": len(available),
            }
        )

        return available
