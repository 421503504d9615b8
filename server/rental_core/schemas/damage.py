"""Damage report Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.deposit import DamageSeverity, DamageStatus


class CreateDamageRequest(BaseModel):
    """Request schema for reporting damage."""

    booking_id: UUID = Field(..., description="Booking the damage was found on")
    severity: DamageSeverity = Field(..., description="minor, moderate or severe")
    description: str = Field(..., min_length=1, max_length=4000)
    location_on_vehicle: str = Field(..., min_length=1, max_length=128)
    estimated_cost: int | None = Field(None, ge=0, description="Repair estimate in minor units")


class ResolveDamageRequest(BaseModel):
    damage_id: UUID = Field(..., description="Damage report to resolve")
    status: DamageStatus = Field(DamageStatus.RESOLVED, description="resolved or closed")


class DamageReport(BaseModel):
    """Damage report response schema."""

    id: UUID
    booking_id: UUID
    vehicle_id: UUID
    severity: DamageSeverity
    description: str
    location_on_vehicle: str
    estimated_cost: int | None = None
    status: DamageStatus
    reported_by: str
    resolved_by: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class DamageIntakeResponse(BaseModel):
    report: DamageReport
    withheld_amount: int = Field(0, description="Deposit withheld for this report")
