"""Deposit ledger service and the pure fold that derives a deposit's state."""

import logging
from dataclasses import asdict, dataclass, replace
from functools import reduce
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import NotAuthenticatedError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import Booking, DepositStatus
from ..models.deposit import DepositLedgerEntry, LedgerAction, LedgerCategory
from .audit_service import AuditService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepositBalance:
    """Deposit state folded from ledger entries in insertion order."""

    held: int = 0
    withheld: int = 0
    released: int = 0
    entry_count: int = 0

    @property
    def balance(self) -> int:
        """Sum of hold and withhold entries minus release entries."""
        return self.held + self.withheld - self.released

    @property
    def releasable(self) -> int:
        """Authorized amount not yet withheld or released."""
        return max(self.held - self.withheld - self.released, 0)

    def apply(self, action: str, amount: int) -> "DepositBalance":
        """New balance with one more entry folded in."""
        if action == LedgerAction.HOLD.value:
            return replace(self, held=self.held + amount, entry_count=self.entry_count + 1)
        if action == LedgerAction.WITHHOLD.value:
            return replace(self, withheld=self.withheld + amount, entry_count=self.entry_count + 1)
        if action == LedgerAction.RELEASE.value:
            return replace(self, released=self.released + amount, entry_count=self.entry_count + 1)
        raise ValueError(f"Unknown ledger action: {action}")

    def status(self, deposit_amount: int = 0) -> str:
        if self.held == 0:
            return "not_required" if deposit_amount == 0 else DepositStatus.DUE.value
        if self.releasable == 0:
            return DepositStatus.RELEASED.value if self.released else DepositStatus.WITHHELD.value
        if self.released:
            return DepositStatus.PARTIALLY_RELEASED.value
        return "held"

    def to_dict(self, deposit_amount: int = 0) -> dict[str, Any]:
        data = asdict(self)
        data.update(
            balance=self.balance,
            releasable=self.releasable,
            status=self.status(deposit_amount),
        )
        return data


def fold_entries(entries: Iterable[tuple[str, int]]) -> DepositBalance:
    """Replay ``(action, amount)`` pairs into a balance."""
    return reduce(lambda acc, entry: acc.apply(*entry), entries, DepositBalance())


class DepositLedgerService:
    """
    Append-only deposit ledger.

    :meth:`append_entry` is the only way deposit state changes. Entries are
    never updated or deleted; every read folds them again.
    """

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db, clock)

    async def append_entry(
        self,
        booking_id: UUID,
        action: LedgerAction,
        amount: int,
        reason: str,
        category: LedgerCategory,
        actor: str | None,
        commit: bool = False,
    ) -> DepositLedgerEntry:
        """
        Append one ledger entry and its audit record.

        Withhold and release entries may not exceed what is still
        releasable. When nothing remains releasable the booking's deposit
        status settles to ``released`` or ``withheld``.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If the amount is not positive or exceeds the releasable amount
            NotFoundError: If the booking does not exist
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to change a deposit")
        if amount <= 0:
            raise ValidationError(
                detail="Ledger amounts must be positive",
                errors={"amount": amount},
            )

        booking = await self.get_booking_or_raise(booking_id)
        before = await self.get_balance(booking_id)

        if action != LedgerAction.HOLD and amount > before.releasable:
            raise ValidationError(
                detail=(
                    f"Cannot {action.value} {amount} on booking {booking.code}: "
                    f"only {before.releasable} remains releasable"
                ),
                errors={"amount": amount, "releasable": before.releasable},
            )

        entry = DepositLedgerEntry(
            booking_id=booking_id,
            action=action.value,
            amount=amount,
            reason=reason,
            category=category.value,
            created_by=actor,
            created_at=self.clock(),
        )
        self.db.add(entry)
        await self.db.flush()

        after = before.apply(action.value, amount)
        if action != LedgerAction.HOLD and after.releasable == 0:
            booking.deposit_status = after.status(booking.deposit_amount)

        await self.audit.record(
            action=f"deposit_{action.value}",
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            old_data=before.to_dict(booking.deposit_amount),
            new_data={
                "entry_id": entry.id,
                "amount": amount,
                "category": category.value,
                "reason": reason,
                "balance": after.balance,
                "releasable": after.releasable,
            },
        )

        if commit:
            await self.db.commit()
            await self.db.refresh(entry)

        metrics_collector.record_ledger_entry(action.value, category.value)

        logger.info(
            "Deposit ledger entry appended",
            extra={
                "booking_id": str(booking_id),
                "entry_id": entry.id,
                "action": action.value,
                "amount": amount,
                "category": category.value,
                "actor": actor,
                "balance": after.balance,
                "releasable": after.releasable,
            }
        )

        return entry

    async def get_entries(self, booking_id: UUID) -> list[DepositLedgerEntry]:
        """Ledger entries for a booking in insertion order."""
        stmt = (
            select(DepositLedgerEntry)
            .where(DepositLedgerEntry.booking_id == booking_id)
            .order_by(DepositLedgerEntry.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_balance(self, booking_id: UUID) -> DepositBalance:
        """Fold the booking's entries into its current deposit state."""
        entries = await self.get_entries(booking_id)
        return fold_entries((e.action, e.amount) for e in entries)

    async def record_authorization(self, booking: Booking, actor: str) -> DepositLedgerEntry | None:
        """
        Append the initial ``hold`` entry once the processor authorizes the deposit.

        Repeated callbacks for the same authorization add nothing.
        """
        if booking.deposit_amount <= 0:
            return None

        balance = await self.get_balance(booking.id)
        if balance.held > 0:
            return None

        return await self.append_entry(
            booking_id=booking.id,
            action=LedgerAction.HOLD,
            amount=booking.deposit_amount,
            reason=f"Deposit authorized ({booking.deposit_status})",
            category=LedgerCategory.AUTHORIZATION,
            actor=actor,
        )

    async def release_remaining(
        self,
        booking: Booking,
        reason: str,
        category: LedgerCategory,
        actor: str,
    ) -> DepositLedgerEntry | None:
        """Release whatever is still releasable; no entry when nothing is."""
        balance = await self.get_balance(booking.id)
        if balance.releasable <= 0:
            return None

        return await self.append_entry(
            booking_id=booking.id,
            action=LedgerAction.RELEASE,
            amount=balance.releasable,
            reason=reason,
            category=category,
            actor=actor,
        )

    async def release_deposit(
        self,
        booking_id: UUID,
        actor: str | None,
        amount: int | None = None,
        reason: str = "Deposit released by staff",
    ) -> DepositLedgerEntry:
        """
        Staff release of part or all of the remaining deposit.

        Raises:
            ValidationError: If nothing is releasable or the amount exceeds it
        """
        balance = await self.get_balance(booking_id)
        if balance.releasable <= 0:
            raise ValidationError(detail=f"Booking {booking_id} has no deposit left to release")

        return await self.append_entry(
            booking_id=booking_id,
            action=LedgerAction.RELEASE,
            amount=amount if amount is not None else balance.releasable,
            reason=reason,
            category=LedgerCategory.MANUAL,
            actor=actor,
            commit=True,
        )

    async def get_booking_or_raise(self, booking_id: UUID) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking
