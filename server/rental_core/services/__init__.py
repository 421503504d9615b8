"""Service layer package."""

from .alert_service import AlertService
from .audit_service import AuditService
from .booking_service import BookingService
from .checkin_service import CheckInService
from .conflict_service import ConflictService
from .damage_service import DamageService
from .deposit_service import DepositLedgerService
from .fuel_service import FuelService
from .hold_service import HoldService
from .idempotency_service import IdempotencyService
from .notification_service import NotificationService
from .payment_service import PaymentService
from .vehicle_service import VehicleService

__all__ = [
    "AlertService",
    "AuditService",
    "BookingService",
    "CheckInService",
    "ConflictService",
    "DamageService",
    "DepositLedgerService",
    "FuelService",
    "HoldService",
    "IdempotencyService",
    "NotificationService",
    "PaymentService",
    "VehicleService",
]
