"""Vehicle catalog Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from .booking import DateRange


class CreateVehicleRequest(BaseModel):
    """Request schema for registering a vehicle."""

    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=64)
    license_plate: str | None = Field(None, max_length=32)
    tank_capacity_liters: int | None = Field(None, gt=0)
    cleaning_buffer_hours: int = Field(2, ge=0, le=72)


class SearchVehiclesRequest(DateRange):
    """Request schema for an availability search."""

    category: str | None = Field(None, max_length=64)


class Vehicle(BaseModel):
    """Vehicle response schema."""

    id: UUID
    name: str
    category: str
    license_plate: str | None = None
    tank_capacity_liters: int | None = None
    cleaning_buffer_hours: int
    is_available: bool

    class Config:
        from_attributes = True


class VehicleList(BaseModel):
    vehicles: list[Vehicle]
