"""Counter check-in: record verification facts and score them."""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import NotAuthenticatedError, NotFoundError, ValidationError
from ..models.alert import AlertType
from ..models.booking import Booking
from ..models.checkin import CheckInRecord, CheckInStatus, TimingStatus
from ..models.vehicle import Vehicle
from .alert_service import AlertService
from .audit_service import AuditService
from .notification_service import NotificationRequest, NotificationService

logger = logging.getLogger(__name__)

# Fields staff may set through record_check_in
RECORD_FIELDS = (
    "identity_verified",
    "license_verified",
    "license_name_matches",
    "license_valid",
    "license_expiry_date",
    "age_verified",
    "customer_dob",
    "arrival_time",
)


@dataclass(frozen=True)
class CheckInValidation:
    """One named check-in check."""

    field: str
    label: str
    required: bool
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def calculate_age(dob: date, today: date) -> int:
    """Whole years between ``dob`` and ``today``."""
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def calculate_timing_status(
    start_at: datetime,
    arrival_time: datetime,
    window_minutes: int | None = None,
) -> TimingStatus:
    """Early or late when the arrival falls outside the window around pickup."""
    window = window_minutes if window_minutes is not None else settings.arrival_window_minutes
    diff_minutes = (arrival_time - start_at).total_seconds() / 60

    if diff_minutes < -window:
        return TimingStatus.EARLY
    if diff_minutes > window:
        return TimingStatus.LATE
    return TimingStatus.ON_TIME


def is_license_expired(expiry_date: date, today: date) -> bool:
    return expiry_date < today


def is_license_expired_for_rental(expiry_date: date, rental_end: datetime) -> bool:
    """True when the license lapses before the rental ends."""
    return expiry_date < rental_end.date()


def build_validations(
    record: CheckInRecord,
    booking: Booking,
    today: date,
    now: datetime,
) -> list[CheckInValidation]:
    """
    Score a check-in record against its booking.

    Unknown expiry or birth dates defer to the staff flag for that check.
    Timing is advisory and never required.
    """
    expiry = record.license_expiry_date
    license_current = record.license_valid and (
        expiry is None or not is_license_expired(expiry, today)
    )
    covers_rental = expiry is None or not is_license_expired_for_rental(expiry, booking.end_at)

    old_enough = record.age_verified and (
        record.customer_dob is None
        or calculate_age(record.customer_dob, today) >= settings.minimum_driver_age
    )

    timing = calculate_timing_status(booking.start_at, record.arrival_time or now)

    return [
        CheckInValidation("identity", "Government Photo ID", True, record.identity_verified),
        CheckInValidation(
            "license",
            "Driver's License Reviewed",
            True,
            record.license_verified and record.license_name_matches,
        ),
        CheckInValidation("license_expiry", "License Not Expired", True, license_current),
        CheckInValidation(
            "license_rental_coverage",
            "License Valid Through Rental",
            True,
            covers_rental,
        ),
        CheckInValidation(
            "age",
            f"Age Requirement ({settings.minimum_driver_age}+)",
            True,
            old_enough,
        ),
        CheckInValidation(
            "timing",
            "Within Booking Window",
            False,
            timing in (TimingStatus.ON_TIME, TimingStatus.EARLY),
        ),
    ]


def score_validations(validations: list[CheckInValidation]) -> tuple[CheckInStatus, str | None]:
    """Verdict and blocked reason for a set of validations."""
    failed = [v.label for v in validations if v.required and not v.passed]
    if failed:
        return CheckInStatus.NEEDS_REVIEW, ", ".join(failed)
    return CheckInStatus.PASSED, None


class CheckInService:
    """Service for booking check-in operations."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utcnow,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db, clock)
        self.alerts = AlertService(db, clock)
        self.notifications = notifications or NotificationService(db, clock=clock)

    async def get_check_in(self, booking_id: UUID) -> CheckInRecord | None:
        stmt = select(CheckInRecord).where(CheckInRecord.booking_id == booking_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def record_check_in(
        self,
        booking_id: UUID,
        updates: dict[str, Any],
        actor: str | None,
    ) -> CheckInRecord:
        """
        Create or update the booking's check-in record.

        Only verification fields are accepted; the verdict is set by
        :meth:`complete_check_in` and :meth:`block_check_in`. A new arrival
        time recomputes the timing status.

        Raises:
            NotAuthenticatedError: If no actor is given
            NotFoundError: If the booking does not exist
            ValidationError: If an unknown field is given
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to record a check-in")

        unknown = sorted(set(updates) - set(RECORD_FIELDS))
        if unknown:
            raise ValidationError(
                detail=f"Unknown check-in fields: {', '.join(unknown)}",
                errors={"fields": unknown},
            )

        booking = await self._get_booking_or_raise(booking_id)
        record = await self._get_or_create_record(booking_id)

        for key, value in updates.items():
            setattr(record, key, value)

        if "arrival_time" in updates and record.arrival_time is not None:
            record.timing_status = calculate_timing_status(booking.start_at, record.arrival_time).value

        record.updated_at = self.clock()

        await self.audit.record(
            action="checkin_updated",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            new_data={key: _jsonable(value) for key, value in updates.items()},
        )

        await self.db.commit()
        await self.db.refresh(record)

        logger.info(
            "Check-in record updated",
            extra={
                "booking_id": str(booking_id),
                "fields": sorted(updates),
                "actor": actor,
            }
        )

        return record

    async def get_validations(self, booking_id: UUID) -> list[CheckInValidation]:
        """Validations computed from the stored record; empty record if none yet."""
        booking = await self._get_booking_or_raise(booking_id)
        record = await self.get_check_in(booking_id) or CheckInRecord(
            booking_id=booking_id,
            identity_verified=False,
            license_verified=False,
            license_name_matches=False,
            license_valid=False,
            age_verified=False,
        )
        now = self.clock()
        return build_validations(record, booking, now.date(), now)

    async def complete_check_in(
        self,
        booking_id: UUID,
        actor: str | None,
        validations: list[CheckInValidation] | None = None,
    ) -> CheckInRecord:
        """
        Score the check-in and record the verdict.

        ``passed`` when every required validation passed, else
        ``needs_review`` with the failed labels as the blocked reason and a
        verification alert for staff. When no validations are given they
        are computed from the stored record.

        Raises:
            NotAuthenticatedError: If no actor is given
            NotFoundError: If the booking does not exist
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to complete a check-in")

        booking = await self._get_booking_or_raise(booking_id)
        if validations is None:
            validations = await self.get_validations(booking_id)

        status, blocked_reason = score_validations(validations)

        record = await self._get_or_create_record(booking_id)
        old_status = record.check_in_status
        now = self.clock()
        record.check_in_status = status.value
        record.blocked_reason = blocked_reason
        record.checked_in_by = actor
        record.checked_in_at = now
        record.updated_at = now

        if status == CheckInStatus.NEEDS_REVIEW:
            await self.alerts.create_alert(
                AlertType.VERIFICATION_PENDING,
                title="Check-in needs review",
                message=f"Failed checks: {blocked_reason}",
                booking_id=booking_id,
                vehicle_id=booking.vehicle_id,
            )

        await self.audit.record(
            action="checkin_completed",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data={"check_in_status": old_status},
            new_data={
                "status": status.value,
                "validations": [{"field": v.field, "passed": v.passed} for v in validations],
            },
        )

        await self.db.commit()
        await self.db.refresh(record)

        logger.info(
            "Check-in completed",
            extra={
                "booking_id": str(booking_id),
                "check_in_status": status.value,
                "blocked_reason": blocked_reason,
                "actor": actor,
            }
        )

        if status == CheckInStatus.PASSED:
            vehicle = await self.db.get(Vehicle, booking.vehicle_id)
            await self.notifications.notify(
                NotificationRequest(
                    event_type="checkin_complete",
                    booking_id=str(booking.id),
                    booking_code=booking.code,
                    customer_name=booking.customer_name,
                    vehicle_name=vehicle.name if vehicle else None,
                )
            )

        return record

    async def block_check_in(self, booking_id: UUID, reason: str, actor: str | None) -> CheckInRecord:
        """
        Mark the check-in blocked. A blocked check-in does not count as checked in.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If no reason is given
            NotFoundError: If the booking does not exist
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to block a check-in")
        if not reason or not reason.strip():
            raise ValidationError(detail="A reason is required to block a check-in")

        await self._get_booking_or_raise(booking_id)
        record = await self._get_or_create_record(booking_id)
        old_status = record.check_in_status

        record.check_in_status = CheckInStatus.BLOCKED.value
        record.blocked_reason = reason.strip()
        record.updated_at = self.clock()

        await self.audit.record(
            action="checkin_blocked",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data={"check_in_status": old_status},
            new_data={"check_in_status": record.check_in_status, "reason": record.blocked_reason},
        )

        await self.db.commit()
        await self.db.refresh(record)

        logger.warning(
            "Check-in blocked",
            extra={"booking_id": str(booking_id), "reason": record.blocked_reason, "actor": actor}
        )

        return record

    async def _get_or_create_record(self, booking_id: UUID) -> CheckInRecord:
        record = await self.get_check_in(booking_id)
        if record is None:
            now = self.clock()
            record = CheckInRecord(
                booking_id=booking_id,
                identity_verified=False,
                license_verified=False,
                license_name_matches=False,
                license_valid=False,
                age_verified=False,
                check_in_status=CheckInStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            self.db.add(record)
            await self.db.flush()
        return record

    async def _get_booking_or_raise(self, booking_id: UUID) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
