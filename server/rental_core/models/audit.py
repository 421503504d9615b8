"""Audit log and notification log model definitions."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class AuditLogEntry(Base):
    """Append-only record of a state change and who made it."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor: Mapped[str] = mapped_column(String(128), nullable=False)
    old_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogEntry(id={self.id}, action='{self.action}', "
            f"entity={self.entity_type}:{self.entity_id}, actor='{self.actor}')>"
        )


class NotificationStatus(str, Enum):
    """Delivery status of a notification request."""
    SENT = "sent"
    FAILED = "failed"
    ABANDONED = "abandoned"


class NotificationLog(Base):
    """Outcome of each notification request, used for out-of-band retries."""

    __tablename__ = "notification_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    booking_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

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
            f"<NotificationLog(id={self.id}, event_type='{self.event_type}', "
            f"status={self.status}, attempts={self.attempts})>"
        )
