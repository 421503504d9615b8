"""Date-range conflict detection over holds and bookings."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import ValidationError
from ..models.booking import OCCUPYING_BOOKING_STATUSES, Booking, HoldStatus, ReservationHold


def intervals_overlap(
    start1: datetime,
    end1: datetime,
    start2: datetime,
    end2: datetime,
) -> bool:
    """Half-open overlap: a return at 10:00 and a pickup at 10:00 do not collide."""
    return start1 < end2 and start2 < end1


@dataclass(frozen=True)
class Conflict:
    """A hold or booking that occupies part of a requested range."""

    kind: str
    id: UUID
    start_at: datetime
    end_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": str(self.id),
            "start_at": self.start_at.isoformat() + "Z",
            "end_at": self.end_at.isoformat() + "Z",
        }


class ConflictService:
    """
    Read-only overlap checks for a vehicle's calendar.

    The occupying set is every hold with status ``active`` whose
    ``expires_at`` is still in the future, plus every booking in
    ``pending``, ``confirmed`` or ``active``. An active hold past its expiry
    is treated as absent even before anything flips its status.
    """

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    @staticmethod
    def validate_range(start_at: datetime, end_at: datetime) -> None:
        if start_at >= end_at:
            raise ValidationError(
                detail="start_at must be before end_at",
                errors={"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
            )

    async def find_hold_conflicts(
        self,
        vehicle_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_hold_id: UUID | None = None,
    ) -> list[Conflict]:
        """Live holds on the vehicle overlapping the range."""
        self.validate_range(start_at, end_at)

        stmt = select(ReservationHold).where(
            ReservationHold.vehicle_id == vehicle_id,
            ReservationHold.status == HoldStatus.ACTIVE.value,
            ReservationHold.expires_at > self.clock(),
            ReservationHold.start_at < end_at,
            ReservationHold.end_at > start_at,
        )
        if exclude_hold_id:
            stmt = stmt.where(ReservationHold.id != exclude_hold_id)

        result = await self.db.execute(stmt)
        return [
            Conflict(kind="hold", id=hold.id, start_at=hold.start_at, end_at=hold.end_at)
            for hold in result.scalars()
        ]

    async def find_booking_conflicts(
        self,
        vehicle_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: UUID | None = None,
    ) -> list[Conflict]:
        """Occupying bookings on the vehicle overlapping the range."""
        self.validate_range(start_at, end_at)

        stmt = select(Booking).where(
            Booking.vehicle_id == vehicle_id,
            Booking.status.in_([s.value for s in OCCUPYING_BOOKING_STATUSES]),
            Booking.start_at < end_at,
            Booking.end_at > start_at,
        )
        if exclude_booking_id:
            stmt = stmt.where(Booking.id != exclude_booking_id)

        result = await self.db.execute(stmt)
        return [
            Conflict(kind="booking", id=booking.id, start_at=booking.start_at, end_at=booking.end_at)
            for booking in result.scalars()
        ]

    async def find_conflicts(
        self,
        vehicle_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: UUID | None = None,
        exclude_hold_id: UUID | None = None,
    ) -> list[Conflict]:
        """Every hold and booking blocking the range."""
        holds = await self.find_hold_conflicts(vehicle_id, start_at, end_at, exclude_hold_id)
        bookings = await self.find_booking_conflicts(vehicle_id, start_at, end_at, exclude_booking_id)
        return holds + bookings

    async def has_hold_conflict(self, vehicle_id: UUID, start_at: datetime, end_at: datetime) -> bool:
        return bool(await self.find_hold_conflicts(vehicle_id, start_at, end_at))

    async def has_conflict(
        self,
        vehicle_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: UUID | None = None,
        exclude_hold_id: UUID | None = None,
    ) -> bool:
        """True if any live hold or occupying booking overlaps the range."""
        conflicts = await self.find_conflicts(
            vehicle_id,
            start_at,
            end_at,
            exclude_booking_id=exclude_booking_id,
            exclude_hold_id=exclude_hold_id,
        )
        return bool(conflicts)
