"""
Readiness gate for handing a vehicle over.

Everything here is a pure function of a :class:`BookingSnapshot`. The
snapshot is gathered once from the persisted records (see
``BookingService.build_snapshot``) and then decided on without touching the
database, so the same logic drives the next-step card shown to staff and the
server-side guard on ``confirmed -> active``.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from ..models.booking import BookingStatus

PREP_CHECKLIST_ITEMS: tuple[str, ...] = (
    "fuel_verified",
    "interior_clean",
    "exterior_clean",
    "no_warning_lights",
    "documents_present",
)

REQUIRED_PHOTOS: tuple[str, ...] = (
    "front",
    "back",
    "left",
    "right",
    "odometer_fuel",
    "front_seat",
    "back_seat",
)


class ChecklistStatus(str, Enum):
    """Status of a derived intake checklist item."""
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    PENDING = "pending"


@dataclass(frozen=True)
class BookingSnapshot:
    """Everything the gate needs to know about a booking, gathered up front."""

    status: str
    vehicle_assigned: bool = False
    prep_done: int = 0
    prep_total: int = len(PREP_CHECKLIST_ITEMS)
    photos_done: int = 0
    photos_total: int = len(REQUIRED_PHOTOS)
    checked_in: bool = False
    check_in_started: bool = False
    payment_complete: bool = False
    deposit_collected: bool = False
    deposit_required: bool = True
    agreement_signed: bool = False
    walkaround_complete: bool = False
    walkaround_acknowledged: bool = False

    @property
    def prep_complete(self) -> bool:
        return self.prep_done >= self.prep_total

    @property
    def photos_complete(self) -> bool:
        return self.photos_done >= self.photos_total


@dataclass(frozen=True)
class Step:
    """The single most relevant action for a booking."""

    id: str
    title: str
    description: str
    action: str
    missing_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class IntakeChecklistItem:
    """Read-time projection of one readiness condition."""

    id: str
    label: str
    status: ChecklistStatus
    required: bool = True
    details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


CONFIRM_STEP = Step(
    id="confirm",
    title="Confirm Booking",
    description="Review booking details and confirm to proceed with preparation",
    action="Confirm",
)

ACTIVATE_STEP = Step(
    id="activate",
    title="Activate Rental",
    description="All pre-handover steps complete. Ready to hand over keys.",
    action="Activate",
)


def next_step(snapshot: BookingSnapshot) -> Step | None:
    """
    First unmet handover condition, or the activate step when none is left.

    Conditions are checked in a fixed order: vehicle, prep, photos,
    check-in, payment and deposit, agreement, walkaround. Returns ``None``
    for any status other than pending or confirmed.
    """
    if snapshot.status == BookingStatus.PENDING.value:
        return CONFIRM_STEP

    if snapshot.status != BookingStatus.CONFIRMED.value:
        return None

    if not snapshot.vehicle_assigned:
        return Step(
            id="vehicle",
            title="Assign Vehicle",
            description="Select and assign a vehicle to this booking",
            action="Assign",
        )

    if not snapshot.prep_complete:
        return Step(
            id="prep",
            title="Complete Vehicle Prep",
            description=f"Checklist: {snapshot.prep_done}/{snapshot.prep_total} items complete",
            action="View",
            missing_count=snapshot.prep_total - snapshot.prep_done,
        )

    if not snapshot.photos_complete:
        return Step(
            id="photos",
            title="Upload Pre-Inspection Photos",
            description=f"Photos: {snapshot.photos_done}/{snapshot.photos_total} captured",
            action="Upload",
            missing_count=snapshot.photos_total - snapshot.photos_done,
        )

    if not snapshot.checked_in:
        return Step(
            id="checkin",
            title="Complete Check-In",
            description="Verify customer identity, license, and age",
            action="Check-In",
        )

    if not snapshot.payment_complete or not snapshot.deposit_collected:
        missing = []
        if not snapshot.payment_complete:
            missing.append("payment")
        if not snapshot.deposit_collected:
            missing.append("deposit")
        return Step(
            id="payment",
            title="Collect Payment & Deposit",
            description=f"Missing: {', '.join(missing)}",
            action="Collect",
            missing_count=len(missing),
        )

    if not snapshot.agreement_signed:
        return Step(
            id="agreement",
            title="Get Agreement Signed",
            description="Customer must review and sign rental agreement",
            action="View",
        )

    if not snapshot.walkaround_complete or not snapshot.walkaround_acknowledged:
        return Step(
            id="walkaround",
            title="Complete Walkaround Inspection",
            description="Joint inspection with customer acknowledgement",
            action="Inspect",
        )

    return ACTIVATE_STEP


def is_ready(snapshot: BookingSnapshot) -> bool:
    """True when a confirmed booking may go active."""
    step = next_step(snapshot)
    return step is not None and step.id == ACTIVATE_STEP.id


def _progress(done: int, total: int) -> ChecklistStatus:
    if done >= total:
        return ChecklistStatus.COMPLETE
    if done > 0:
        return ChecklistStatus.PENDING
    return ChecklistStatus.INCOMPLETE


def _flag(value: bool) -> ChecklistStatus:
    return ChecklistStatus.COMPLETE if value else ChecklistStatus.INCOMPLETE


def intake_checklist(snapshot: BookingSnapshot) -> list[IntakeChecklistItem]:
    """Every readiness condition with its status, in gate order."""
    if snapshot.checked_in:
        checkin_status = ChecklistStatus.COMPLETE
    elif snapshot.check_in_started:
        checkin_status = ChecklistStatus.PENDING
    else:
        checkin_status = ChecklistStatus.INCOMPLETE

    if snapshot.walkaround_complete and snapshot.walkaround_acknowledged:
        walkaround_status = ChecklistStatus.COMPLETE
    elif snapshot.walkaround_complete:
        walkaround_status = ChecklistStatus.PENDING
    else:
        walkaround_status = ChecklistStatus.INCOMPLETE

    return [
        IntakeChecklistItem("vehicle", "Vehicle assigned", _flag(snapshot.vehicle_assigned)),
        IntakeChecklistItem(
            "prep",
            "Vehicle prep checklist",
            _progress(snapshot.prep_done, snapshot.prep_total),
            details=[f"{snapshot.prep_done}/{snapshot.prep_total} items complete"],
        ),
        IntakeChecklistItem(
            "photos",
            "Pre-inspection photos",
            _progress(snapshot.photos_done, snapshot.photos_total),
            details=[f"{snapshot.photos_done}/{snapshot.photos_total} captured"],
        ),
        IntakeChecklistItem("checkin", "Customer check-in", checkin_status),
        IntakeChecklistItem("payment", "Payment collected", _flag(snapshot.payment_complete)),
        IntakeChecklistItem(
            "deposit",
            "Deposit held",
            _flag(snapshot.deposit_collected),
            required=snapshot.deposit_required,
        ),
        IntakeChecklistItem("agreement", "Rental agreement signed", _flag(snapshot.agreement_signed)),
        IntakeChecklistItem("walkaround", "Walkaround inspection acknowledged", walkaround_status),
    ]
