"""FastAPI routers package."""

from .alert import router as alert_router
from .booking import router as booking_router
from .checkin import router as checkin_router
from .damage import router as damage_router
from .deposit import router as deposit_router
from .health import router as health_router
from .hold import router as hold_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .vehicle import router as vehicle_router

__all__ = [
    "alert_router",
    "booking_router",
    "checkin_router",
    "damage_router",
    "deposit_router",
    "health_router",
    "hold_router",
    "metrics_router",
    "payment_router",
    "vehicle_router",
]
