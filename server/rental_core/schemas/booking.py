"""Hold and booking Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.booking import BookingStatus, HoldStatus
from .common import UtcDatetime


class DateRange(BaseModel):
    """Half-open rental range shared by hold and walk-in requests."""

    start_at: UtcDatetime = Field(..., description="Pickup time (ISO 8601, UTC)")
    end_at: UtcDatetime = Field(..., description="Return time (ISO 8601, UTC), exclusive")

    @model_validator(mode="after")
    def check_range(self):
        if self.start_at >= self.end_at:
            raise ValueError("start_at must be before end_at")
        return self


class CreateHoldRequest(DateRange):
    """Request schema for creating a hold."""

    vehicle_id: UUID = Field(..., description="Vehicle to reserve")
    customer_id: str = Field(..., min_length=1, max_length=128, description="Customer reference")
    customer_name: str | None = Field(None, max_length=255, description="Customer display name")


class HoldRef(BaseModel):
    """Request schema for operations addressed to one hold."""

    hold_id: UUID = Field(..., description="Hold to act on")


class ConvertHoldRequest(HoldRef):
    """Request schema for converting a hold into a booking."""

    total_amount: int = Field(0, ge=0, description="Rental total in minor units")
    deposit_amount: int = Field(0, ge=0, description="Security deposit in minor units")
    notes: str | None = Field(None, max_length=2000, description="Booking notes")


class Hold(BaseModel):
    """Hold response schema."""

    id: UUID = Field(..., description="Unique hold ID")
    vehicle_id: UUID = Field(..., description="Reserved vehicle ID")
    customer_id: str = Field(..., description="Customer reference")
    customer_name: str | None = Field(None, description="Customer display name")
    start_at: datetime = Field(..., description="Pickup time (ISO 8601)")
    end_at: datetime = Field(..., description="Return time (ISO 8601)")
    status: HoldStatus = Field(..., description="Hold status")
    expires_at: datetime = Field(..., description="Hold expiration time (ISO 8601)")

    class Config:
        from_attributes = True


class WalkInBookingRequest(DateRange):
    """Request schema for a staff walk-in booking."""

    vehicle_id: UUID = Field(..., description="Vehicle handed over")
    customer_id: str = Field(..., min_length=1, max_length=128, description="Customer reference")
    customer_name: str | None = Field(None, max_length=255, description="Customer display name")
    total_amount: int = Field(0, ge=0, description="Rental total in minor units")
    deposit_amount: int = Field(0, ge=0, description="Security deposit in minor units")
    notes: str | None = Field(None, max_length=2000, description="Booking notes")


class TransitionRequest(BaseModel):
    """Request schema for moving a booking to another status."""

    booking_id: UUID = Field(..., description="Booking to transition")
    target_status: BookingStatus = Field(..., description="Status to move to")
    notes: str | None = Field(None, max_length=2000, description="Reason or notes for the audit log")


class AssignVehicleRequest(BaseModel):
    """Request schema for assigning a vehicle to a booking."""

    booking_id: UUID = Field(..., description="Booking to assign")
    vehicle_id: UUID = Field(..., description="Vehicle to assign")


class StartReturnRequest(BaseModel):
    """Request schema for starting the return of an active rental."""

    booking_id: UUID = Field(..., description="Booking being returned")
    return_state: str = Field("initiated", min_length=1, max_length=32, description="Return flow state")


class PreparationRequest(BaseModel):
    """Request schema for recording handover preparation."""

    booking_id: UUID = Field(..., description="Booking being prepared")
    prep_items: list[str] | None = Field(None, description="Prep checklist items completed")
    photos: list[str] | None = Field(None, description="Pre-inspection photo angles captured")
    agreement_signed: bool | None = Field(None, description="Rental agreement signed")
    walkaround_completed: bool | None = Field(None, description="Walkaround inspection done")
    walkaround_acknowledged: bool | None = Field(None, description="Customer acknowledged walkaround")


class Booking(BaseModel):
    """Booking response schema."""

    id: UUID = Field(..., description="Unique booking ID")
    code: str = Field(..., description="Booking confirmation code")
    hold_id: UUID | None = Field(None, description="Originating hold, null for walk-ins")
    vehicle_id: UUID = Field(..., description="Assigned vehicle ID")
    customer_id: str = Field(..., description="Customer reference")
    customer_name: str | None = Field(None, description="Customer display name")
    status: BookingStatus = Field(..., description="Booking status")
    start_at: datetime = Field(..., description="Pickup time (ISO 8601)")
    end_at: datetime = Field(..., description="Return time (ISO 8601)")
    actual_return_at: datetime | None = Field(None, description="When the booking closed")
    total_amount: int = Field(..., description="Rental total in minor units")
    amount_paid: int = Field(..., description="Amount paid in minor units")
    deposit_amount: int = Field(..., description="Security deposit in minor units")
    deposit_status: str | None = Field(None, description="Deposit status")
    vehicle_assigned_at: datetime | None = Field(None, description="When staff assigned the vehicle")
    return_state: str | None = Field(None, description="Return flow state")
    return_is_exception: bool = Field(False, description="Return flagged for review")
    return_exception_reason: str | None = Field(None, description="Why the return was flagged")
    notes: str | None = Field(None, description="Booking notes")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    """Response schema for a committed status change."""

    booking: Booking
    from_status: BookingStatus = Field(..., description="Status before the change")
    degraded: bool = Field(False, description="True when a notification could not be sent")
    notification_failures: list[str] = Field(default_factory=list, description="Notifications that failed")


class Preparation(BaseModel):
    """Handover preparation response schema."""

    booking_id: UUID
    completed_prep_items: list[str] = Field(default_factory=list)
    captured_photos: list[str] = Field(default_factory=list)
    agreement_signed_at: datetime | None = None
    walkaround_completed_at: datetime | None = None
    walkaround_acknowledged_at: datetime | None = None

    class Config:
        from_attributes = True


class NextStep(BaseModel):
    """The most relevant action for a booking."""

    id: str
    title: str
    description: str
    action: str
    missing_count: int | None = None


class NextStepResponse(BaseModel):
    booking_id: UUID
    status: BookingStatus
    next_step: NextStep | None = Field(None, description="Null once the booking is past handover")


class ChecklistItem(BaseModel):
    id: str
    label: str
    status: str
    required: bool
    details: list[str] = Field(default_factory=list)


class ChecklistResponse(BaseModel):
    booking_id: UUID
    ready: bool = Field(..., description="True when the booking can be activated")
    items: list[ChecklistItem]
