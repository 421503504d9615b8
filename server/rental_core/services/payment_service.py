"""Payment processor callbacks."""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import NotAuthenticatedError, NotFoundError, ValidationError
from ..models.booking import Booking, DepositStatus
from .audit_service import AuditService
from .deposit_service import DepositLedgerService

logger = logging.getLogger(__name__)

# Statuses the ledger settles; later processor callbacks may not overwrite them
SETTLED_DEPOSIT_STATUSES = (DepositStatus.RELEASED, DepositStatus.WITHHELD)


class PaymentService:
    """Applies payment processor updates to bookings."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db, clock)
        self.ledger = DepositLedgerService(db, clock)

    async def record_payment_update(
        self,
        booking_id: UUID,
        actor: str | None,
        amount_paid: int | None = None,
        deposit_status: DepositStatus | str | None = None,
    ) -> Booking:
        """
        Record the processor's view of a booking's payment and deposit.

        The first callback that reports the deposit authorized appends the
        initial ``hold`` ledger entry; repeats add nothing.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If the amount or deposit status is invalid
            NotFoundError: If the booking does not exist
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to record payments")
        if amount_paid is not None and amount_paid < 0:
            raise ValidationError(detail="amount_paid must not be negative")

        if deposit_status is not None:
            try:
                deposit_status = DepositStatus(deposit_status)
            except ValueError:
                raise ValidationError(
                    detail=f"Unknown deposit status: {deposit_status}",
                    errors={"deposit_status": str(deposit_status)},
                )

        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

        before = {"amount_paid": booking.amount_paid, "deposit_status": booking.deposit_status}

        if amount_paid is not None:
            booking.amount_paid = amount_paid

        if deposit_status is not None:
            if booking.deposit_status in {s.value for s in SETTLED_DEPOSIT_STATUSES}:
                logger.warning(
                    "Ignoring deposit status for settled deposit",
                    extra={
                        "booking_id": str(booking_id),
                        "current_status": booking.deposit_status,
                        "reported_status": deposit_status.value,
                    }
                )
            else:
                booking.deposit_status = deposit_status.value

        booking.updated_at = self.clock()

        if booking.is_deposit_authorized:
            await self.ledger.record_authorization(booking, actor)

        await self.audit.record(
            action="payment_updated",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data=before,
            new_data={"amount_paid": booking.amount_paid, "deposit_status": booking.deposit_status},
        )

        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Payment update recorded",
            extra={
                "booking_id": str(booking_id),
                "amount_paid": booking.amount_paid,
                "deposit_status": booking.deposit_status,
                "actor": actor,
            }
        )

        return booking
