"""Deposit ledger Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.deposit import LedgerAction, LedgerCategory


class AppendEntryRequest(BaseModel):
    """Request schema for appending a deposit ledger entry."""

    booking_id: UUID = Field(..., description="Booking whose deposit moves")
    action: LedgerAction = Field(..., description="hold, withhold or release")
    amount: int = Field(..., gt=0, description="Amount in minor units")
    reason: str = Field(..., min_length=1, max_length=2000, description="Reason recorded on the entry")
    category: LedgerCategory = Field(LedgerCategory.MANUAL, description="Why the entry was appended")


class ReleaseDepositRequest(BaseModel):
    """Request schema for a staff deposit release."""

    booking_id: UUID = Field(..., description="Booking whose deposit is released")
    amount: int | None = Field(None, gt=0, description="Amount to release; everything releasable if omitted")
    reason: str = Field("Deposit released by staff", min_length=1, max_length=2000)


class FuelSettlementRequest(BaseModel):
    """Request schema for settling fuel at return."""

    booking_id: UUID = Field(..., description="Booking being returned")
    pickup_level: int = Field(..., ge=0, le=100, description="Tank percentage at pickup")
    return_level: int = Field(..., ge=0, le=100, description="Tank percentage at return")


class LedgerEntry(BaseModel):
    """Deposit ledger entry response schema."""

    id: int
    booking_id: UUID
    action: LedgerAction
    amount: int
    reason: str
    category: LedgerCategory
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class DepositBalance(BaseModel):
    """Deposit state folded from the ledger."""

    booking_id: UUID
    deposit_amount: int
    held: int
    withheld: int
    released: int
    balance: int
    releasable: int
    status: str
    entries: list[LedgerEntry] = Field(default_factory=list)


class FuelCharge(BaseModel):
    liters_short: float
    fuel_cost: int
    service_fee: int
    total: int


class FuelSettlementResponse(BaseModel):
    booking_id: UUID
    charge: FuelCharge | None = Field(None, description="Null when there is no shortfall")
    withheld_amount: int = 0
    outstanding: int = 0
