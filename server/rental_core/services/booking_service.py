"""Booking lifecycle service: the status state machine and the operations around it."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import (
    ActivationBlockedError,
    ConflictError,
    IllegalTransitionError,
    NotAuthenticatedError,
    NotFoundError,
    ValidationError,
    VehicleConflictError,
)
from ..core.observability import metrics_collector
from ..models.alert import AlertType
from ..models.booking import Booking, BookingPreparation, BookingStatus, DepositStatus
from ..models.checkin import CheckInRecord, CheckInStatus
from ..models.deposit import UNRESOLVED_DAMAGE_STATUSES, DamageReport, LedgerCategory
from ..models.vehicle import Vehicle
from .alert_service import AlertService
from .audit_service import AuditService
from .conflict_service import ConflictService
from .deposit_service import DepositLedgerService
from .hold_service import HoldService
from .notification_service import NotificationRequest, NotificationService
from .readiness import (
    ACTIVATE_STEP,
    PREP_CHECKLIST_ITEMS,
    REQUIRED_PHOTOS,
    BookingSnapshot,
    IntakeChecklistItem,
    Step,
    intake_checklist,
    next_step,
)
from .vehicle_service import VehicleService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, tuple[BookingStatus, ...]] = {
    BookingStatus.PENDING: (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
    BookingStatus.CONFIRMED: (BookingStatus.ACTIVE, BookingStatus.CANCELLED),
    BookingStatus.ACTIVE: (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    BookingStatus.COMPLETED: (),
    BookingStatus.CANCELLED: (),
}

# Statuses that stamp the actual return time
CLOSING_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

# Statuses in which the handover can still be prepared
OPEN_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

# Check-in verdicts that count as checked in; needs_review only raises an alert
CHECKED_IN_STATUSES = (CheckInStatus.PASSED, CheckInStatus.NEEDS_REVIEW)

# Deposit statuses that mean the processor holds the customer's money
COLLECTED_DEPOSIT_STATUSES = (
    DepositStatus.AUTHORIZED,
    DepositStatus.HOLD_CREATED,
    DepositStatus.CAPTURED,
)


def allowed_targets(status: str) -> list[str]:
    """Statuses a booking in ``status`` may move to next."""
    return [s.value for s in ALLOWED_TRANSITIONS.get(BookingStatus(status), ())]


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in allowed_targets(from_status)


@dataclass
class TransitionOutcome:
    """Result of a committed status change."""

    booking: Booking
    from_status: str
    notification_failures: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.notification_failures)


class BookingService:
    """
    Service for booking lifecycle operations.

    :meth:`transition` is the only writer of ``Booking.status``. The other
    operations mutate the fields collaborators own: vehicle assignment,
    handover preparation and the return state.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utcnow,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db, clock)
        self.alerts = AlertService(db, clock)
        self.ledger = DepositLedgerService(db, clock)
        self.conflicts = ConflictService(db, clock)
        self.holds = HoldService(db, clock)
        self.vehicle_service = VehicleService(db, clock)
        self.notifications = notifications or NotificationService(db, clock=clock)

    async def transition(
        self,
        booking_id: UUID,
        target_status: BookingStatus | str,
        actor: str | None,
        notes: str | None = None,
    ) -> TransitionOutcome:
        """
        Move a booking along one edge of the lifecycle graph.

        The status write is conditional on the status read here, so two
        racing transitions from the same status cannot both succeed. Side
        effects (audit, alerts, deposit release) commit with the status;
        notifications go out after the commit and only degrade the outcome
        when they fail.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If the target is not a booking status
            NotFoundError: If the booking does not exist
            IllegalTransitionError: If the target is not a direct successor
            ActivationBlockedError: If a readiness step is still open on activation
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to change booking status")

        try:
            target = BookingStatus(target_status)
        except ValueError:
            raise ValidationError(
                detail=f"Unknown booking status: {target_status}",
                errors={"target_status": str(target_status)},
            )

        booking = await self.get_booking_by_id_or_raise(booking_id)
        from_status = booking.status

        if not can_transition(from_status, target.value):
            logger.warning(
                "Illegal booking transition rejected",
                extra={
                    "booking_id": str(booking_id),
                    "from_status": from_status,
                    "to_status": target.value,
                    "actor": actor,
                }
            )
            raise IllegalTransitionError(
                booking_id=str(booking_id),
                from_status=from_status,
                to_status=target.value,
                allowed=allowed_targets(from_status),
            )

        if target == BookingStatus.ACTIVE:
            step = next_step(await self.build_snapshot(booking))
            if step is None or step.id != ACTIVATE_STEP.id:
                logger.warning(
                    "Activation blocked by readiness gate",
                    extra={
                        "booking_id": str(booking_id),
                        "next_step": step.id if step else None,
                        "actor": actor,
                    }
                )
                raise ActivationBlockedError(
                    booking_id=str(booking_id),
                    step_id=step.id if step else "none",
                    step_title=step.title if step else "no next step",
                )

        now = self.clock()
        values: dict = {"status": target.value, "updated_at": now}
        if target in CLOSING_STATUSES:
            values["actual_return_at"] = now

        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == from_status)
            .values(**values)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            await self.db.rollback()
            current = await self.get_booking_by_id_or_raise(booking_id)
            await self.db.refresh(current)
            logger.warning(
                "Booking transition lost a race",
                extra={
                    "booking_id": str(booking_id),
                    "expected_status": from_status,
                    "current_status": current.status,
                    "to_status": target.value,
                }
            )
            raise IllegalTransitionError(
                booking_id=str(booking_id),
                from_status=current.status,
                to_status=target.value,
                allowed=allowed_targets(current.status),
            )

        await self.audit.record(
            action="booking_status_changed",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data={"status": from_status},
            new_data={"status": target.value, "notes": notes},
        )

        queued: list[NotificationRequest] = []

        if target == BookingStatus.ACTIVE:
            queued.append(await self._notification(booking, "rental_activated"))
        elif target == BookingStatus.COMPLETED:
            queued.append(await self._notification(booking, "return_completed"))
            queued.extend(await self._settle_deposit_on_completion(booking, actor))
        elif target == BookingStatus.CANCELLED:
            await self._raise_cancellation_alerts(booking, from_status, notes)

        await self.db.commit()
        await self.db.refresh(booking)

        metrics_collector.record_transition(from_status, target.value)

        logger.info(
            "Booking status changed",
            extra={
                "booking_id": str(booking_id),
                "booking_code": booking.code,
                "from_status": from_status,
                "to_status": target.value,
                "actor": actor,
            }
        )

        outcome = TransitionOutcome(booking=booking, from_status=from_status)
        for request in queued:
            if not await self.notifications.notify(request):
                outcome.notification_failures.append(request.event_type)

        if queued:
            await self.db.refresh(booking)

        return outcome

    async def create_walk_in_booking(
        self,
        vehicle_id: UUID,
        customer_id: str,
        start_at: datetime,
        end_at: datetime,
        actor: str | None,
        customer_name: str | None = None,
        total_amount: int = 0,
        deposit_amount: int = 0,
        notes: str | None = None,
    ) -> Booking:
        """
        Staff-created booking without a prior hold.

        Takes the vehicle lock and checks conflicts in the same transaction
        as the insert, like hold creation.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If the range or amounts are invalid
            NotFoundError: If the vehicle does not exist
            VehicleConflictError: If the range is already taken
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to create a booking")
        if total_amount < 0 or deposit_amount < 0:
            raise ValidationError(detail="Amounts must not be negative")
        self.conflicts.validate_range(start_at, end_at)

        await self.vehicle_service.get_vehicle_with_lock(vehicle_id)

        now = self.clock()
        await self.holds.expire_lapsed_holds(vehicle_id, now)

        conflicts = await self.conflicts.find_conflicts(vehicle_id, start_at, end_at)
        if conflicts:
            error = VehicleConflictError(
                vehicle_id=str(vehicle_id),
                start_at=start_at,
                end_at=end_at,
                conflicts=[c.to_dict() for c in conflicts],
            )
            await self.db.commit()
            metrics_collector.record_conflict("walk_in")
            logger.warning(
                "Walk-in booking failed - vehicle already reserved",
                extra={"vehicle_id": str(vehicle_id), "conflict_count": len(conflicts)}
            )
            raise error

        booking = Booking(
            vehicle_id=vehicle_id,
            code=await self.holds.generate_unique_code(),
            customer_id=customer_id,
            customer_name=customer_name,
            status=BookingStatus.PENDING.value,
            start_at=start_at,
            end_at=end_at,
            total_amount=total_amount,
            deposit_amount=deposit_amount,
            deposit_status=DepositStatus.DUE.value if deposit_amount else None,
            vehicle_assigned_at=now,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.db.add(booking)
        await self.db.flush()

        await self.audit.record(
            action="booking_created",
            entity_type="booking",
            entity_id=booking.id,
            actor=actor,
            new_data={
                "source": "walk_in",
                "vehicle_id": str(vehicle_id),
                "start_at": start_at.isoformat(),
                "end_at": end_at.isoformat(),
            },
        )

        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Walk-in booking created",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "vehicle_id": str(vehicle_id),
                "actor": actor,
            }
        )

        return booking

    async def assign_vehicle(self, booking_id: UUID, vehicle_id: UUID, actor: str | None) -> Booking:
        """
        Assign (or confirm) the unit a booking will drive away in.

        Conflicts are re-checked on the new vehicle under its lock, ignoring
        the booking itself.

        Raises:
            ConflictError: If the booking is past the handover stage
            VehicleConflictError: If the vehicle is taken for the booking's dates
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to assign a vehicle")

        booking = await self.get_booking_by_id_or_raise(booking_id)
        self._require_open(booking, "assign a vehicle")

        await self.vehicle_service.get_vehicle_with_lock(vehicle_id)
        await self.holds.expire_lapsed_holds(vehicle_id, self.clock())

        conflicts = await self.conflicts.find_conflicts(
            vehicle_id, booking.start_at, booking.end_at, exclude_booking_id=booking.id
        )
        if conflicts:
            error = VehicleConflictError(
                vehicle_id=str(vehicle_id),
                start_at=booking.start_at,
                end_at=booking.end_at,
                conflicts=[c.to_dict() for c in conflicts],
            )
            await self.db.rollback()
            metrics_collector.record_conflict("assign_vehicle")
            raise error

        old_vehicle_id = booking.vehicle_id
        booking.vehicle_id = vehicle_id
        booking.vehicle_assigned_at = self.clock()

        await self.audit.record(
            action="vehicle_assigned",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data={"vehicle_id": str(old_vehicle_id)},
            new_data={"vehicle_id": str(vehicle_id)},
        )

        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Vehicle assigned to booking",
            extra={
                "booking_id": str(booking_id),
                "old_vehicle_id": str(old_vehicle_id),
                "vehicle_id": str(vehicle_id),
                "actor": actor,
            }
        )

        return booking

    async def start_return(self, booking_id: UUID, actor: str | None, return_state: str = "initiated") -> Booking:
        """
        Open the return flow for an active rental.

        Raises:
            ConflictError: If the booking is not active
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to start a return")

        booking = await self.get_booking_by_id_or_raise(booking_id)
        if booking.status != BookingStatus.ACTIVE.value:
            raise ConflictError(
                detail=f"Booking {booking.code} is {booking.status}; only active rentals can be returned",
                code="BOOKING_NOT_ACTIVE",
            )

        old_state = booking.return_state
        booking.return_state = return_state
        booking.updated_at = self.clock()

        await self.audit.record(
            action="return_started",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data={"return_state": old_state},
            new_data={"return_state": return_state},
        )

        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Return started",
            extra={"booking_id": str(booking_id), "return_state": return_state, "actor": actor}
        )

        return booking

    async def update_preparation(
        self,
        booking_id: UUID,
        actor: str | None,
        prep_items: list[str] | None = None,
        photos: list[str] | None = None,
        agreement_signed: bool | None = None,
        walkaround_completed: bool | None = None,
        walkaround_acknowledged: bool | None = None,
    ) -> BookingPreparation:
        """
        Record handover preparation progress.

        Prep items and photo angles are added to what is already recorded and
        must come from the fixed lists. Flags set or clear their timestamp.

        Raises:
            ValidationError: If an unknown prep item or photo angle is given
            ConflictError: If the booking is past the handover stage
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to update preparation")

        unknown_items = sorted(set(prep_items or ()) - set(PREP_CHECKLIST_ITEMS))
        unknown_photos = sorted(set(photos or ()) - set(REQUIRED_PHOTOS))
        if unknown_items or unknown_photos:
            raise ValidationError(
                detail="Unknown prep items or photo angles",
                errors={"prep_items": unknown_items, "photos": unknown_photos},
            )

        booking = await self.get_booking_by_id_or_raise(booking_id)
        self._require_open(booking, "update preparation")

        prep = await self.db.get(BookingPreparation, booking_id)
        if prep is None:
            prep = BookingPreparation(booking_id=booking_id, completed_prep_items=[], captured_photos=[])
            self.db.add(prep)

        now = self.clock()
        before = {
            "prep_items": list(prep.completed_prep_items),
            "photos": list(prep.captured_photos),
        }

        if prep_items:
            done = set(prep.completed_prep_items) | set(prep_items)
            prep.completed_prep_items = [item for item in PREP_CHECKLIST_ITEMS if item in done]
        if photos:
            done = set(prep.captured_photos) | set(photos)
            prep.captured_photos = [angle for angle in REQUIRED_PHOTOS if angle in done]

        flags = {
            "agreement_signed_at": agreement_signed,
            "walkaround_completed_at": walkaround_completed,
            "walkaround_acknowledged_at": walkaround_acknowledged,
        }
        for column, value in flags.items():
            if value is True and getattr(prep, column) is None:
                setattr(prep, column, now)
            elif value is False:
                setattr(prep, column, None)

        prep.updated_by = actor
        prep.updated_at = now

        await self.audit.record(
            action="preparation_updated",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data=before,
            new_data={
                "prep_items": prep.completed_prep_items,
                "photos": prep.captured_photos,
                "agreement_signed": prep.agreement_signed_at is not None,
                "walkaround_completed": prep.walkaround_completed_at is not None,
                "walkaround_acknowledged": prep.walkaround_acknowledged_at is not None,
            },
        )

        await self.db.commit()
        await self.db.refresh(prep)

        logger.info(
            "Booking preparation updated",
            extra={
                "booking_id": str(booking_id),
                "prep_done": len(prep.completed_prep_items),
                "photos_done": len(prep.captured_photos),
                "actor": actor,
            }
        )

        return prep

    async def build_snapshot(self, booking: Booking) -> BookingSnapshot:
        """Gather everything the readiness gate reads for one booking."""
        prep = await self.db.get(BookingPreparation, booking.id)
        checkin = await self.db.get(CheckInRecord, booking.id)

        checked_in_values = {s.value for s in CHECKED_IN_STATUSES}
        collected_values = {s.value for s in COLLECTED_DEPOSIT_STATUSES}

        return BookingSnapshot(
            status=booking.status,
            vehicle_assigned=booking.vehicle_assigned_at is not None,
            prep_done=len(prep.completed_prep_items) if prep else 0,
            photos_done=len(prep.captured_photos) if prep else 0,
            checked_in=checkin is not None and checkin.check_in_status in checked_in_values,
            check_in_started=checkin is not None,
            payment_complete=booking.amount_paid >= booking.total_amount,
            deposit_collected=booking.deposit_amount == 0 or booking.deposit_status in collected_values,
            deposit_required=booking.deposit_amount > 0,
            agreement_signed=bool(prep and prep.agreement_signed_at),
            walkaround_complete=bool(prep and prep.walkaround_completed_at),
            walkaround_acknowledged=bool(prep and prep.walkaround_acknowledged_at),
        )

    async def get_next_step(self, booking_id: UUID) -> Step | None:
        booking = await self.get_booking_by_id_or_raise(booking_id)
        return next_step(await self.build_snapshot(booking))

    async def get_checklist(self, booking_id: UUID) -> list[IntakeChecklistItem]:
        booking = await self.get_booking_by_id_or_raise(booking_id)
        return intake_checklist(await self.build_snapshot(booking))

    async def get_booking(self, booking_id: UUID) -> Booking:
        """
        Get booking by ID.

        Raises:
            NotFoundError: If booking not found
        """
        return await self.get_booking_by_id_or_raise(booking_id)

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        """Get booking by ID."""
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def count_unresolved_damage(self, booking_id: UUID) -> int:
        stmt = select(func.count(DamageReport.id)).where(
            DamageReport.booking_id == booking_id,
            DamageReport.status.in_([s.value for s in UNRESOLVED_DAMAGE_STATUSES]),
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def _settle_deposit_on_completion(self, booking: Booking, actor: str) -> list[NotificationRequest]:
        """Release the rest of a clean deposit, or ask staff to review it."""
        balance = await self.ledger.get_balance(booking.id)
        unresolved_damage = await self.count_unresolved_damage(booking.id)

        if booking.is_deposit_authorized and not booking.return_is_exception and not unresolved_damage:
            entry = await self.ledger.release_remaining(
                booking,
                reason="Automatic release on return",
                category=LedgerCategory.COMPLETION,
                actor=actor,
            )
            booking.deposit_status = DepositStatus.RELEASED.value
            if entry is None:
                return []
            return [await self._notification(booking, "deposit_released", {"amount": entry.amount})]

        if balance.releasable <= 0 and not unresolved_damage:
            # Nothing left to decide once the ledger has settled every cent
            if balance.held > 0 or booking.deposit_amount <= 0:
                return []

        reasons = []
        if booking.return_is_exception:
            reasons.append(booking.return_exception_reason or "return flagged as exception")
        if unresolved_damage:
            reasons.append(f"{unresolved_damage} unresolved damage report(s)")
        if not booking.is_deposit_authorized:
            reasons.append(f"deposit status is {booking.deposit_status or 'unknown'}")

        await self.alerts.create_alert(
            AlertType.PAYMENT_PENDING,
            title="Deposit review required",
            message=f"Booking {booking.code}: {'; '.join(reasons)}. {balance.releasable} still releasable.",
            booking_id=booking.id,
            vehicle_id=booking.vehicle_id,
        )
        return []

    async def _raise_cancellation_alerts(self, booking: Booking, from_status: str, notes: str | None) -> None:
        message = f"Booking {booking.code} was cancelled while {from_status}"
        if notes:
            message = f"{message}: {notes}"
        await self.alerts.create_alert(
            AlertType.CUSTOMER_ISSUE,
            title="Booking cancelled",
            message=message,
            booking_id=booking.id,
            vehicle_id=booking.vehicle_id,
        )

        balance = await self.ledger.get_balance(booking.id)
        if booking.is_deposit_authorized or balance.releasable > 0:
            await self.alerts.create_alert(
                AlertType.PAYMENT_PENDING,
                title="Deposit review required",
                message=f"Cancelled booking {booking.code} still holds a deposit of {balance.releasable}",
                booking_id=booking.id,
                vehicle_id=booking.vehicle_id,
            )

    async def _notification(
        self,
        booking: Booking,
        event_type: str,
        details: dict | None = None,
    ) -> NotificationRequest:
        vehicle = await self.db.get(Vehicle, booking.vehicle_id)
        return NotificationRequest(
            event_type=event_type,
            booking_id=str(booking.id),
            booking_code=booking.code,
            customer_name=booking.customer_name,
            vehicle_name=vehicle.name if vehicle else None,
            details=details or {},
        )

    @staticmethod
    def _require_open(booking: Booking, action: str) -> None:
        if booking.status not in {s.value for s in OPEN_STATUSES}:
            raise ConflictError(
                detail=f"Cannot {action} for booking {booking.code} in status '{booking.status}'",
                code="BOOKING_NOT_OPEN",
            )
