"""Deposit ledger and damage report model definitions."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class LedgerAction(str, Enum):
    """Deposit ledger entry kinds."""
    HOLD = "hold"
    WITHHOLD = "withhold"
    RELEASE = "release"


class LedgerCategory(str, Enum):
    """Why a ledger entry was appended."""
    AUTHORIZATION = "authorization"
    DAMAGE = "damage"
    FUEL = "fuel"
    COMPLETION = "completion"
    MANUAL = "manual"


class DamageSeverity(str, Enum):
    """Damage severity enumeration."""
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class DamageStatus(str, Enum):
    """Damage report review status."""
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"


UNRESOLVED_DAMAGE_STATUSES = (DamageStatus.UNDER_REVIEW,)


class DepositLedgerEntry(Base):
    """Append-only deposit movement; rows are never updated or deleted."""

    __tablename__ = "deposit_ledger_entries"

    # Autoincrement id gives the fold its insertion order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    action: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_amount_positive"),
        CheckConstraint("action IN ('hold', 'withhold', 'release')", name="ck_ledger_action_valid"),
        CheckConstraint("length(created_by) > 0", name="ck_ledger_created_by_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<DepositLedgerEntry(id={self.id}, booking_id={self.booking_id}, "
            f"action={self.action}, amount={self.amount}, category={self.category})>"
        )


class DamageReport(Base):
    """Damage found on a vehicle during or after a rental."""

    __tablename__ = "damage_reports"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    vehicle_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("vehicles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_on_vehicle: Mapped[str] = mapped_column(String(128), nullable=False)
    estimated_cost: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DamageStatus.UNDER_REVIEW.value,
        index=True
    )

    reported_by: Mapped[str] = mapped_column(String(128), nullable=False)
    resolved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
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
        CheckConstraint("estimated_cost IS NULL OR estimated_cost >= 0", name="ck_damage_cost_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<DamageReport(id={self.id}, booking_id={self.booking_id}, "
            f"severity={self.severity}, status={self.status})>"
        )
