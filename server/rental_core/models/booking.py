"""Reservation hold, booking and preparation model definitions."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    ACTIVE = "active"
    EXPIRED = "expired"
    CONVERTED = "converted"


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses whose date range keeps the vehicle unavailable to anyone else
OCCUPYING_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.ACTIVE,
)


class DepositStatus(str, Enum):
    """Deposit status strings reported by the payment processor or set by the ledger."""
    DUE = "due"
    AUTHORIZED = "authorized"
    HOLD_CREATED = "hold_created"
    CAPTURED = "captured"
    PARTIALLY_RELEASED = "partially_released"
    RELEASED = "released"
    WITHHELD = "withheld"


AUTHORIZED_DEPOSIT_STATUSES = (DepositStatus.AUTHORIZED, DepositStatus.HOLD_CREATED)


class ReservationHold(Base):
    """Time-boxed provisional reservation of a vehicle for a date range."""

    __tablename__ = "reservation_holds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    vehicle_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("vehicles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=HoldStatus.ACTIVE.value,
        index=True
    )

    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

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

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_hold_range_valid"),
        CheckConstraint("length(customer_id) > 0", name="ck_hold_customer_id_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReservationHold(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"start_at={self.start_at}, end_at={self.end_at}, "
            f"status={self.status}, expires_at={self.expires_at})>"
        )


class Booking(Base):
    """Booking entity driven through the rental lifecycle."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Null for walk-in bookings
    hold_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("reservation_holds.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        index=True
    )

    vehicle_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("vehicles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING.value,
        index=True
    )

    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actual_return_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Amounts in minor units
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_paid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    vehicle_assigned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    return_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    return_is_exception: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    return_exception_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

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

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_booking_range_valid"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("amount_paid >= 0", name="ck_booking_paid_non_negative"),
        CheckConstraint("deposit_amount >= 0", name="ck_booking_deposit_non_negative"),
        CheckConstraint("length(code) > 0", name="ck_booking_code_not_empty"),
    )

    @property
    def is_deposit_authorized(self) -> bool:
        return self.deposit_status in {s.value for s in AUTHORIZED_DEPOSIT_STATUSES}

    @property
    def in_return_flow(self) -> bool:
        return self.status == BookingStatus.ACTIVE.value or self.return_state is not None

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code='{self.code}', vehicle_id={self.vehicle_id}, "
            f"status={self.status}, start_at={self.start_at}, end_at={self.end_at})>"
        )


class BookingPreparation(Base):
    """Pre-handover sub-records the readiness checklist is computed from."""

    __tablename__ = "booking_preparations"

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        primary_key=True
    )

    completed_prep_items: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    captured_photos: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    agreement_signed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    walkaround_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    walkaround_acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<BookingPreparation(booking_id={self.booking_id}, "
            f"prep_items={len(self.completed_prep_items or [])}, "
            f"photos={len(self.captured_photos or [])})>"
        )
