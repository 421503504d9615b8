"""Damage report intake and review."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import ConflictError, NotAuthenticatedError, NotFoundError, ValidationError
from ..models.alert import AlertType
from ..models.booking import Booking
from ..models.deposit import DamageReport, DamageSeverity, DamageStatus, LedgerAction, LedgerCategory
from ..models.vehicle import Vehicle
from .alert_service import AlertService
from .audit_service import AuditService
from .deposit_service import DepositLedgerService
from .notification_service import NotificationRequest, NotificationService

logger = logging.getLogger(__name__)

# Deposit withheld per severity, in cents, before capping at the estimate
DAMAGE_WITHHOLD_CENTS: dict[DamageSeverity, int] = {
    DamageSeverity.MINOR: 10000,
    DamageSeverity.MODERATE: 25000,
    DamageSeverity.SEVERE: 50000,
}


def damage_withhold_amount(severity: DamageSeverity, estimated_cost: int | None = None) -> int:
    """Amount to withhold for a damage report of the given severity."""
    amount = DAMAGE_WITHHOLD_CENTS[severity]
    if estimated_cost is not None:
        amount = min(amount, estimated_cost)
    return amount


@dataclass
class DamageIntake:
    report: DamageReport
    withheld_amount: int = 0


class DamageService:
    """Service for damage reports."""

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
        self.notifications = notifications or NotificationService(db, clock=clock)

    async def create_damage_report(
        self,
        booking_id: UUID,
        severity: DamageSeverity | str,
        description: str,
        location_on_vehicle: str,
        actor: str | None,
        estimated_cost: int | None = None,
    ) -> DamageIntake:
        """
        File a damage report and apply its deposit consequences.

        During the rental or its return the booking is flagged as a return
        exception, which keeps completion from releasing the deposit, and an
        authorized deposit has the severity amount withheld, capped at the
        estimate and at what is still releasable. Damage found before
        handover touches neither. Staff always get an alert.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If the severity or estimate is invalid
            NotFoundError: If the booking does not exist
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to report damage")

        try:
            severity = DamageSeverity(severity)
        except ValueError:
            raise ValidationError(
                detail=f"Unknown damage severity: {severity}",
                errors={"severity": str(severity)},
            )
        if estimated_cost is not None and estimated_cost < 0:
            raise ValidationError(detail="estimated_cost must not be negative")

        booking = await self._get_booking_or_raise(booking_id)
        now = self.clock()

        report = DamageReport(
            booking_id=booking_id,
            vehicle_id=booking.vehicle_id,
            severity=severity.value,
            description=description,
            location_on_vehicle=location_on_vehicle,
            estimated_cost=estimated_cost,
            status=DamageStatus.UNDER_REVIEW.value,
            reported_by=actor,
            created_at=now,
            updated_at=now,
        )
        self.db.add(report)
        await self.db.flush()

        withheld = 0
        if booking.in_return_flow:
            booking.return_is_exception = True
            booking.return_exception_reason = f"Damage reported: {severity.value} - {location_on_vehicle}"

            if booking.is_deposit_authorized:
                balance = await self.ledger.get_balance(booking_id)
                withheld = min(damage_withhold_amount(severity, estimated_cost), balance.releasable)
                if withheld > 0:
                    await self.ledger.append_entry(
                        booking_id=booking_id,
                        action=LedgerAction.WITHHOLD,
                        amount=withheld,
                        reason=f"Damage hold: {severity.value} - {location_on_vehicle}",
                        category=LedgerCategory.DAMAGE,
                        actor=actor,
                    )

        await self.alerts.create_alert(
            AlertType.DAMAGE_REPORTED,
            title=f"Damage reported: {severity.value}",
            message=f"{location_on_vehicle}: {description}",
            booking_id=booking_id,
            vehicle_id=booking.vehicle_id,
        )

        await self.audit.record(
            action="damage_reported",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            new_data={
                "damage_id": str(report.id),
                "severity": severity.value,
                "location": location_on_vehicle,
                "estimated_cost": estimated_cost,
                "withheld": withheld,
                "return_is_exception": booking.return_is_exception,
            },
        )

        await self.db.commit()
        await self.db.refresh(report)

        logger.warning(
            "Damage reported",
            extra={
                "damage_id": str(report.id),
                "booking_id": str(booking_id),
                "severity": severity.value,
                "withheld": withheld,
                "actor": actor,
            }
        )

        vehicle = await self.db.get(Vehicle, booking.vehicle_id)
        await self.notifications.notify(
            NotificationRequest(
                event_type="damage_reported",
                booking_id=str(booking_id),
                booking_code=booking.code,
                customer_name=booking.customer_name,
                vehicle_name=vehicle.name if vehicle else None,
                details={
                    "damage_id": str(report.id),
                    "severity": severity.value,
                    "location": location_on_vehicle,
                    "withheld": withheld,
                },
            )
        )

        return DamageIntake(report=report, withheld_amount=withheld)

    async def resolve_damage(
        self,
        damage_id: UUID,
        actor: str | None,
        status: DamageStatus | str = DamageStatus.RESOLVED,
    ) -> DamageReport:
        """
        Close out the review of a damage report.

        Raises:
            ValidationError: If the status is not a closing status
            ConflictError: If the report is no longer under review
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to resolve damage")

        try:
            status = DamageStatus(status)
        except ValueError:
            status = None
        if status not in (DamageStatus.RESOLVED, DamageStatus.CLOSED):
            raise ValidationError(detail="Damage can only be moved to resolved or closed")

        report = await self.get_damage_by_id_or_raise(damage_id)
        if report.status != DamageStatus.UNDER_REVIEW.value:
            raise ConflictError(
                detail=f"Damage report {damage_id} is already {report.status}",
                code="DAMAGE_NOT_UNDER_REVIEW",
            )

        old_status = report.status
        report.status = status.value
        report.resolved_by = actor
        report.updated_at = self.clock()

        await self.audit.record(
            action="damage_resolved",
            entity_type="damage_report",
            entity_id=damage_id,
            actor=actor,
            old_data={"status": old_status},
            new_data={"status": status.value},
        )

        await self.db.commit()
        await self.db.refresh(report)

        logger.info(
            "Damage report resolved",
            extra={"damage_id": str(damage_id), "status": status.value, "actor": actor}
        )

        return report

    async def list_for_booking(self, booking_id: UUID) -> list[DamageReport]:
        stmt = (
            select(DamageReport)
            .where(DamageReport.booking_id == booking_id)
            .order_by(DamageReport.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_damage_by_id_or_raise(self, damage_id: UUID) -> DamageReport:
        """Get damage report by ID or raise NotFoundError."""
        report = await self.db.get(DamageReport, damage_id)
        if not report:
            raise NotFoundError(resource_type="damage_report", resource_id=str(damage_id))
        return report

    async def _get_booking_or_raise(self, booking_id: UUID) -> Booking:
        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking
