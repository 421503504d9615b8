"""Check-in Pydantic schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.checkin import CheckInStatus, TimingStatus
from .common import UtcDatetime


class RecordCheckInRequest(BaseModel):
    """Request schema for recording check-in verification facts.

    Omitted fields are left unchanged.
    """

    booking_id: UUID = Field(..., description="Booking being checked in")
    identity_verified: bool | None = Field(None, description="Government photo ID checked")
    license_verified: bool | None = Field(None, description="Driver's license reviewed by staff")
    license_name_matches: bool | None = Field(None, description="License name matches the booking")
    license_valid: bool | None = Field(None, description="License judged valid by staff")
    license_expiry_date: date | None = Field(None, description="License expiry date")
    age_verified: bool | None = Field(None, description="Age checked by staff")
    customer_dob: date | None = Field(None, description="Customer date of birth")
    arrival_time: UtcDatetime | None = Field(None, description="When the customer arrived")

    def updates(self) -> dict:
        return self.model_dump(exclude={"booking_id"}, exclude_unset=True)


class Validation(BaseModel):
    field: str
    label: str
    required: bool
    passed: bool


class CompleteCheckInRequest(BaseModel):
    """Request schema for completing a check-in.

    Validations computed by the caller are used as given; without them the
    stored record is scored.
    """

    booking_id: UUID = Field(..., description="Booking being checked in")
    validations: list[Validation] | None = Field(None, description="Validations to score")


class BlockCheckInRequest(BaseModel):
    booking_id: UUID = Field(..., description="Booking to block")
    reason: str = Field(..., min_length=1, max_length=2000, description="Why the check-in is blocked")


class CheckIn(BaseModel):
    """Check-in record response schema."""

    booking_id: UUID
    identity_verified: bool
    license_verified: bool
    license_name_matches: bool
    license_valid: bool
    license_expiry_date: date | None = None
    age_verified: bool
    customer_dob: date | None = None
    arrival_time: datetime | None = None
    timing_status: TimingStatus | None = None
    check_in_status: CheckInStatus
    blocked_reason: str | None = None
    checked_in_by: str | None = None
    checked_in_at: datetime | None = None

    class Config:
        from_attributes = True


class CheckInResponse(BaseModel):
    check_in: CheckIn | None = Field(None, description="Null until the first check-in write")
    validations: list[Validation] = Field(default_factory=list)
