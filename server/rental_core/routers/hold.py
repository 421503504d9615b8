"""Reservation hold router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor, IdempotencyKey
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.booking import Booking, ConvertHoldRequest, CreateHoldRequest, Hold, HoldRef
from ..schemas.common import PROBLEM_RESPONSES
from ..services.hold_service import HoldService
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/hold", tags=["hold"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/create", response_model=Hold)
async def create_hold(
    request: CreateHoldRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Reserve a vehicle for a date range.

    The hold lives for the configured TTL. This operation is idempotent
    based on the Idempotency-Key header.
    """
    hold_service = HoldService(db)

    async def operation():
        hold = await hold_service.create_hold(
            vehicle_id=request.vehicle_id,
            customer_id=request.customer_id,
            start_at=request.start_at,
            end_at=request.end_at,
            customer_name=request.customer_name,
            idempotency_key=idempotency_key,
        )
        return Hold.model_validate(hold).model_dump(mode="json")

    try:
        return await IdempotencyService(db).execute(
            method="hold/create",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold creation",
            extra={
                "vehicle_id": str(request.vehicle_id),
                "customer_id": request.customer_id,
                "actor": actor,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/get", response_model=Hold)
async def get_hold(
    request: HoldRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """
    Get hold details.

    A hold past its expiry is reported as expired.
    """
    hold = await HoldService(db).get_hold(request.hold_id)
    return JSONResponse(
        status_code=200,
        content=Hold.model_validate(hold).model_dump(mode="json")
    )


@router.post("/expire", response_model=Hold)
async def expire_hold(
    request: HoldRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Release a hold early. Expiring an inactive hold changes nothing."""
    hold = await HoldService(db).expire_hold(request.hold_id)

    logger.info(
        "Hold expired on request",
        extra={"hold_id": str(request.hold_id), "actor": actor, "status": hold.status}
    )

    return JSONResponse(
        status_code=200,
        content=Hold.model_validate(hold).model_dump(mode="json")
    )


@router.post("/convert", response_model=Booking)
async def convert_hold(
    request: ConvertHoldRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Turn a live hold into a pending booking.

    Converting the same hold twice returns the booking created the first
    time. This operation is idempotent based on the Idempotency-Key header.
    """
    hold_service = HoldService(db)

    async def operation():
        booking = await hold_service.convert_hold(
            hold_id=request.hold_id,
            total_amount=request.total_amount,
            deposit_amount=request.deposit_amount,
            notes=request.notes,
        )
        return Booking.model_validate(booking).model_dump(mode="json")

    try:
        return await IdempotencyService(db).execute(
            method="hold/convert",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold conversion",
            extra={
                "hold_id": str(request.hold_id),
                "actor": actor,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e
