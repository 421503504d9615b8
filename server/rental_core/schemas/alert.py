"""Alert Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.alert import AlertStatus, AlertType


class ListAlertsRequest(BaseModel):
    """Request schema for listing alerts."""

    booking_id: UUID | None = Field(None, description="Only alerts for this booking")
    status: AlertStatus | None = Field(None, description="Only alerts in this status")
    alert_type: AlertType | None = Field(None, description="Only alerts of this type")
    limit: int = Field(50, ge=1, le=500)


class AlertRef(BaseModel):
    alert_id: UUID = Field(..., description="Alert to act on")


class Alert(BaseModel):
    """Alert response schema."""

    id: UUID
    alert_type: AlertType
    title: str
    message: str | None = None
    status: AlertStatus
    booking_id: UUID | None = None
    vehicle_id: UUID | None = None
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class AlertList(BaseModel):
    alerts: list[Alert]
