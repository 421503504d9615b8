"""Health and readiness Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: HealthStatus = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field("1.0.0", description="API version")


class ReadinessResponse(BaseModel):
    """Readiness probe response schema."""

    status: HealthStatus = Field(..., description="ready, or unavailable when a dependency check failed")
    service: str = Field(..., description="Service name")
    checks: dict[str, str] = Field(default_factory=dict, description="Result per dependency")
    workers: dict[str, bool] = Field(default_factory=dict, description="Running state per background worker")
