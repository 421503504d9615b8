"""Staff alert model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class AlertType(str, Enum):
    """Alert type enumeration."""
    VERIFICATION_PENDING = "verification_pending"
    PAYMENT_PENDING = "payment_pending"
    DAMAGE_REPORTED = "damage_reported"
    CUSTOMER_ISSUE = "customer_issue"
    RETURN_DUE_SOON = "return_due_soon"
    LATE_RETURN = "late_return"
    HOLD_EXPIRING = "hold_expiring"
    CLEANING_REQUIRED = "cleaning_required"


class AlertStatus(str, Enum):
    """Alert status enumeration."""
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Alert(Base):
    """Item on the operations alert board; never auto-deleted."""

    __tablename__ = "alerts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    alert_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AlertStatus.PENDING.value,
        index=True
    )

    booking_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    vehicle_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    acknowledged_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Alert(id={self.id}, type={self.alert_type}, status={self.status})>"
