"""Deposit ledger router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor, IdempotencyKey
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import PROBLEM_RESPONSES, BookingRef
from ..schemas.deposit import (
    AppendEntryRequest,
    DepositBalance,
    FuelSettlementRequest,
    FuelSettlementResponse,
    LedgerEntry,
    ReleaseDepositRequest,
)
from ..services.deposit_service import DepositLedgerService, fold_entries
from ..services.fuel_service import FuelService
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/deposit", tags=["deposit"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/append", response_model=LedgerEntry)
async def append_entry(
    request: AppendEntryRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Append a deposit ledger entry.

    This operation is idempotent based on the Idempotency-Key header.
    """
    ledger = DepositLedgerService(db)

    async def operation():
        entry = await ledger.append_entry(
            booking_id=request.booking_id,
            action=request.action,
            amount=request.amount,
            reason=request.reason,
            category=request.category,
            actor=actor,
            commit=True,
        )
        return LedgerEntry.model_validate(entry).model_dump(mode="json")

    try:
        return await IdempotencyService(db).execute(
            method="deposit/append",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error appending ledger entry",
            extra={
                "booking_id": str(request.booking_id),
                "ledger_action": request.action.value,
                "amount": request.amount,
                "actor": actor,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/release", response_model=LedgerEntry)
async def release_deposit(
    request: ReleaseDepositRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Release part or all of what remains of a deposit.

    This operation is idempotent based on the Idempotency-Key header.
    """
    ledger = DepositLedgerService(db)

    async def operation():
        entry = await ledger.release_deposit(
            booking_id=request.booking_id,
            actor=actor,
            amount=request.amount,
            reason=request.reason,
        )
        return LedgerEntry.model_validate(entry).model_dump(mode="json")

    return await IdempotencyService(db).execute(
        method="deposit/release",
        idempotency_key=idempotency_key,
        request_body=request.model_dump(mode="json"),
        operation=operation,
    )


@router.post("/balance", response_model=DepositBalance)
async def get_balance(
    request: BookingRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Deposit state folded from the booking's ledger."""
    ledger = DepositLedgerService(db)
    booking = await ledger.get_booking_or_raise(request.booking_id)
    entries = await ledger.get_entries(request.booking_id)
    balance = fold_entries((e.action, e.amount) for e in entries)

    response_data = DepositBalance(
        booking_id=booking.id,
        deposit_amount=booking.deposit_amount,
        entries=[LedgerEntry.model_validate(e) for e in entries],
        **{k: v for k, v in balance.to_dict(booking.deposit_amount).items() if k != "entry_count"},
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/fuel", response_model=FuelSettlementResponse)
async def settle_fuel(
    request: FuelSettlementRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Charge a fuel shortfall at return against the deposit.

    This operation is idempotent based on the Idempotency-Key header.
    """
    fuel_service = FuelService(db)

    async def operation():
        settlement = await fuel_service.settle_fuel(
            booking_id=request.booking_id,
            pickup_level=request.pickup_level,
            return_level=request.return_level,
            actor=actor,
        )
        return FuelSettlementResponse(
            booking_id=request.booking_id,
            charge=settlement.charge.to_dict() if settlement.charge else None,
            withheld_amount=settlement.withheld_amount,
            outstanding=settlement.outstanding,
        ).model_dump(mode="json")

    return await IdempotencyService(db).execute(
        method="deposit/fuel",
        idempotency_key=idempotency_key,
        request_body=request.model_dump(mode="json"),
        operation=operation,
    )
