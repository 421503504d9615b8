"""Models module exporting all database models."""

from .alert import Alert, AlertStatus, AlertType
from .audit import AuditLogEntry, NotificationLog, NotificationStatus
from .booking import (
    AUTHORIZED_DEPOSIT_STATUSES,
    OCCUPYING_BOOKING_STATUSES,
    Booking,
    BookingPreparation,
    BookingStatus,
    DepositStatus,
    HoldStatus,
    ReservationHold,
)
from .checkin import CheckInRecord, CheckInStatus, TimingStatus
from .deposit import (
    UNRESOLVED_DAMAGE_STATUSES,
    DamageReport,
    DamageSeverity,
    DamageStatus,
    DepositLedgerEntry,
    LedgerAction,
    LedgerCategory,
)
from .idempotency import IdempotencyRecord
from .vehicle import Vehicle

__all__ = [
    # Fleet
    "Vehicle",

    # Reservation entities
    "ReservationHold",
    "HoldStatus",
    "Booking",
    "BookingStatus",
    "BookingPreparation",
    "DepositStatus",
    "OCCUPYING_BOOKING_STATUSES",
    "AUTHORIZED_DEPOSIT_STATUSES",

    # Check-in
    "CheckInRecord",
    "CheckInStatus",
    "TimingStatus",

    # Deposit and damage
    "DepositLedgerEntry",
    "LedgerAction",
    "LedgerCategory",
    "DamageReport",
    "DamageSeverity",
    "DamageStatus",
    "UNRESOLVED_DAMAGE_STATUSES",

    # Operations
    "Alert",
    "AlertType",
    "AlertStatus",
    "AuditLogEntry",
    "NotificationLog",
    "NotificationStatus",

    # Idempotency entity
    "IdempotencyRecord",
]
