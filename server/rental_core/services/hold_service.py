"""Reservation hold service: create, read, expire and convert holds."""

import logging
import secrets
import string
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import ConflictError, HoldExpiredError, NotFoundError, ValidationError, VehicleConflictError
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus, DepositStatus, HoldStatus, ReservationHold
from .conflict_service import ConflictService
from .vehicle_service import VehicleService

logger = logging.getLogger(__name__)


def generate_booking_code(length: int = 8) -> str:
    """Generate a random booking confirmation code."""
    alphabet = string.ascii_uppercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


class HoldService:
    """Service for reservation hold operations."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.conflicts = ConflictService(db, clock)
        self.vehicle_service = VehicleService(db, clock)

    async def create_hold(
        self,
        vehicle_id: UUID,
        customer_id: str,
        start_at: datetime,
        end_at: datetime,
        customer_name: str | None = None,
        idempotency_key: str | None = None,
    ) -> ReservationHold:
        """
        Reserve a vehicle for a date range for the hold TTL.

        The vehicle lock is taken before the conflict check, and the check
        and the insert commit together.

        Raises:
            ValidationError: If the range is empty or inverted
            NotFoundError: If the vehicle does not exist
            VehicleConflictError: If the range overlaps a live hold or occupying booking
        """
        self.conflicts.validate_range(start_at, end_at)

        await self.vehicle_service.get_vehicle_with_lock(vehicle_id)

        now = self.clock()
        await self.expire_lapsed_holds(vehicle_id, now)

        conflicts = await self.conflicts.find_conflicts(vehicle_id, start_at, end_at)
        if conflicts:
            # Keep the opportunistic expiry flips; nothing else was written
            await self.db.commit()
            metrics_collector.record_conflict("create_hold")
            logger.warning(
                "Hold creation failed - vehicle already reserved",
                extra={
                    "vehicle_id": str(vehicle_id),
                    "customer_id": customer_id,
                    "start_at": start_at.isoformat(),
                    "end_at": end_at.isoformat(),
                    "conflicts": [c.to_dict() for c in conflicts],
                    "idempotency_key": idempotency_key
                }
            )
            raise VehicleConflictError(
                vehicle_id=str(vehicle_id),
                start_at=start_at,
                end_at=end_at,
                conflicts=[c.to_dict() for c in conflicts],
            )

        expires_at = now + timedelta(minutes=settings.hold_ttl_minutes)

        hold = ReservationHold(
            vehicle_id=vehicle_id,
            customer_id=customer_id,
            customer_name=customer_name,
            start_at=start_at,
            end_at=end_at,
            expires_at=expires_at,
            status=HoldStatus.ACTIVE.value,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        self.db.add(hold)

        await self.db.commit()
        await self.db.refresh(hold)

        metrics_collector.record_hold_created()

        logger.info(
            "Hold created successfully",
            extra={
                "hold_id": str(hold.id),
                "vehicle_id": str(vehicle_id),
                "customer_id": customer_id,
                "start_at": start_at.isoformat(),
                "end_at": end_at.isoformat(),
                "expires_at": expires_at.isoformat(),
                "idempotency_key": idempotency_key
            }
        )

        return hold

    async def get_hold(self, hold_id: UUID) -> ReservationHold:
        """
        Get a hold, reporting a lapsed active hold as expired.

        Raises:
            NotFoundError: If hold not found
        """
        hold = await self.get_hold_by_id_or_raise(hold_id)
        if self._is_lapsed(hold, self.clock()):
            return await self.expire_hold(hold_id)
        return hold

    async def expire_hold(self, hold_id: UUID) -> ReservationHold:
        """
        Flip a hold from active to expired.

        Safe to repeat: an expired or converted hold is returned unchanged.

        Raises:
            NotFoundError: If hold not found
        """
        stmt = (
            update(ReservationHold)
            .where(
                ReservationHold.id == hold_id,
                ReservationHold.status == HoldStatus.ACTIVE.value,
            )
            .values(status=HoldStatus.EXPIRED.value, updated_at=self.clock())
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        hold = await self.get_hold_by_id_or_raise(hold_id)
        await self.db.refresh(hold)

        if result.rowcount:
            metrics_collector.record_holds_expired()
            logger.info(
                "Hold expired",
                extra={
                    "hold_id": str(hold_id),
                    "vehicle_id": str(hold.vehicle_id),
                    "expires_at": hold.expires_at.isoformat()
                }
            )
        else:
            logger.debug(
                "Hold already inactive - expire is a no-op",
                extra={"hold_id": str(hold_id), "status": hold.status}
            )

        return hold

    async def convert_hold(
        self,
        hold_id: UUID,
        total_amount: int = 0,
        deposit_amount: int = 0,
        notes: str | None = None,
    ) -> Booking:
        """
        Turn a live hold into a pending booking for the same vehicle and dates.

        The hold flip is a conditional write guarded on the hold still being
        active and unexpired, so a lapsed hold can never be converted even if
        nothing has expired it yet.

        Raises:
            NotFoundError: If hold not found
            HoldExpiredError: If the hold lapsed or was expired
            ConflictError: If the hold was already consumed by another request
            VehicleConflictError: If an occupying booking appeared on the range
        """
        if total_amount < 0 or deposit_amount < 0:
            raise ValidationError(detail="Amounts must not be negative")

        hold = await self.get_hold_by_id_or_raise(hold_id)

        if hold.status == HoldStatus.CONVERTED.value:
            existing_booking = await self.get_booking_by_hold_id(hold_id)
            if existing_booking:
                logger.info(
                    "Booking already exists for hold - returning existing booking",
                    extra={
                        "hold_id": str(hold_id),
                        "booking_id": str(existing_booking.id)
                    }
                )
                return existing_booking

        now = self.clock()
        if hold.status == HoldStatus.EXPIRED.value or self._is_lapsed(hold, now):
            await self.expire_hold(hold_id)
            logger.warning(
                "Hold conversion failed - hold expired",
                extra={
                    "hold_id": str(hold_id),
                    "expired_at": hold.expires_at.isoformat(),
                    "current_time": now.isoformat()
                }
            )
            raise HoldExpiredError(str(hold_id), hold.expires_at)

        await self.vehicle_service.get_vehicle_with_lock(hold.vehicle_id)

        stmt = (
            update(ReservationHold)
            .where(
                ReservationHold.id == hold_id,
                ReservationHold.status == HoldStatus.ACTIVE.value,
                ReservationHold.expires_at > now,
            )
            .values(status=HoldStatus.CONVERTED.value, updated_at=now)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            await self.db.rollback()
            hold = await self.get_hold_by_id_or_raise(hold_id)
            logger.warning(
                "Hold conversion lost a race",
                extra={"hold_id": str(hold_id), "hold_status": hold.status}
            )
            if hold.status == HoldStatus.CONVERTED.value:
                raise ConflictError(
                    detail=f"Hold {hold_id} has already been converted",
                    code="HOLD_ALREADY_CONVERTED",
                )
            raise HoldExpiredError(str(hold_id), hold.expires_at)

        conflicts = await self.conflicts.find_booking_conflicts(hold.vehicle_id, hold.start_at, hold.end_at)
        if conflicts:
            error = VehicleConflictError(
                vehicle_id=str(hold.vehicle_id),
                start_at=hold.start_at,
                end_at=hold.end_at,
                conflicts=[c.to_dict() for c in conflicts],
            )
            await self.db.rollback()
            metrics_collector.record_conflict("convert_hold")
            raise error

        booking = Booking(
            hold_id=hold.id,
            vehicle_id=hold.vehicle_id,
            code=await self.generate_unique_code(),
            customer_id=hold.customer_id,
            customer_name=hold.customer_name,
            status=BookingStatus.PENDING.value,
            start_at=hold.start_at,
            end_at=hold.end_at,
            total_amount=total_amount,
            deposit_amount=deposit_amount,
            deposit_status=DepositStatus.DUE.value if deposit_amount else None,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.db.add(booking)

        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Hold converted to booking",
            extra={
                "hold_id": str(hold_id),
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "vehicle_id": str(booking.vehicle_id)
            }
        )

        return booking

    async def get_hold_by_id(self, hold_id: UUID) -> ReservationHold | None:
        """Get hold by ID."""
        stmt = select(ReservationHold).where(ReservationHold.id == hold_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_hold_by_id_or_raise(self, hold_id: UUID) -> ReservationHold:
        """Get hold by ID or raise NotFoundError."""
        hold = await self.get_hold_by_id(hold_id)
        if not hold:
            logger.warning(
                "Hold not found",
                extra={"hold_id": str(hold_id)}
            )
            raise NotFoundError(
                resource_type="hold",
                resource_id=str(hold_id)
            )
        return hold

    async def get_booking_by_hold_id(self, hold_id: UUID) -> Booking | None:
        """Get booking by hold ID."""
        stmt = select(Booking).where(Booking.hold_id == hold_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def generate_unique_code(self) -> str:
        """Booking code not yet used by any booking."""
        code = generate_booking_code()
        while await self._code_exists(code):
            code = generate_booking_code()
        return code

    async def _code_exists(self, code: str) -> bool:
        stmt = select(Booking.id).where(Booking.code == code)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def expire_lapsed_holds(self, vehicle_id: UUID, now: datetime) -> int:
        """Flip active holds on the vehicle whose TTL has passed. Does not commit."""
        stmt = (
            update(ReservationHold)
            .where(
                ReservationHold.vehicle_id == vehicle_id,
                ReservationHold.status == HoldStatus.ACTIVE.value,
                ReservationHold.expires_at <= now,
            )
            .values(status=HoldStatus.EXPIRED.value, updated_at=now)
        )
        result = await self.db.execute(stmt)
        expired_count = result.rowcount or 0

        if expired_count:
            metrics_collector.record_holds_expired(expired_count)
            logger.info(
                "Expired lapsed holds on vehicle",
                extra={"vehicle_id": str(vehicle_id), "expired_count": expired_count}
            )

        return expired_count

    @staticmethod
    def _is_lapsed(hold: ReservationHold, now: datetime) -> bool:
        return hold.status == HoldStatus.ACTIVE.value and hold.expires_at <= now
