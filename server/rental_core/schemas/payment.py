"""Payment processor callback schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from ..models.booking import DepositStatus


class PaymentWebhookRequest(BaseModel):
    """Payment processor callback body."""

    booking_id: UUID = Field(..., description="Booking the payment belongs to")
    amount_paid: int | None = Field(None, ge=0, description="Total paid so far in minor units")
    deposit_status: DepositStatus | None = Field(None, description="Deposit status reported by the processor")
