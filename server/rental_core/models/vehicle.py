"""Vehicle model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from ..core.clock import utcnow
from ..core.database import Base


class Vehicle(Base):
    """Rentable vehicle unit as exposed by the fleet catalog."""

    __tablename__ = "vehicles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    license_plate: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True)

    # Null falls back to the category table, then the configured default
    tank_capacity_liters: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cleaning_buffer_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=expression.true()
    )

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
        CheckConstraint("length(name) > 0", name="ck_vehicle_name_not_empty"),
        CheckConstraint("cleaning_buffer_hours >= 0", name="ck_vehicle_buffer_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id}, name='{self.name}', category='{self.category}')>"
