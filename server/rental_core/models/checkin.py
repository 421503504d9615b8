"""Check-in record model definition."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class CheckInStatus(str, Enum):
    """Check-in verdict enumeration."""
    PENDING = "pending"
    PASSED = "passed"
    NEEDS_REVIEW = "needs_review"
    BLOCKED = "blocked"


class TimingStatus(str, Enum):
    """Arrival timing relative to the scheduled pickup."""
    ON_TIME = "on_time"
    EARLY = "early"
    LATE = "late"
    NO_SHOW = "no_show"


class CheckInRecord(Base):
    """Counter check-in for a single booking, created on the first write."""

    __tablename__ = "checkin_records"

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        primary_key=True
    )

    identity_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    license_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    license_name_matches: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    license_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    license_expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    age_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    customer_dob: Mapped[date | None] = mapped_column(Date, nullable=True)

    arrival_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    timing_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    check_in_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CheckInStatus.PENDING.value
    )
    blocked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    checked_in_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<CheckInRecord(booking_id={self.booking_id}, "
            f"status={self.check_in_status}, timing={self.timing_status})>"
        )
