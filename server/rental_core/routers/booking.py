"""Booking router for lifecycle operations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor, IdempotencyKey
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.booking import (
    AssignVehicleRequest,
    Booking,
    ChecklistResponse,
    NextStepResponse,
    Preparation,
    PreparationRequest,
    StartReturnRequest,
    TransitionRequest,
    TransitionResponse,
    WalkInBookingRequest,
)
from ..schemas.common import PROBLEM_RESPONSES, BookingRef
from ..services.booking_service import BookingService
from ..services.idempotency_service import IdempotencyService
from ..services.readiness import ACTIVATE_STEP

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


def _booking_content(booking) -> dict:
    return Booking.model_validate(booking).model_dump(mode="json")


@router.post("/get", response_model=Booking)
async def get_booking(
    request: BookingRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Get booking details."""
    booking = await BookingService(db).get_booking(request.booking_id)
    return JSONResponse(status_code=200, content=_booking_content(booking))


@router.post("/transition", response_model=TransitionResponse)
async def transition_booking(
    request: TransitionRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Move a booking to the next status.

    A response with ``degraded`` set means the status change committed but a
    notification could not be delivered; it will be retried in the
    background. This operation is idempotent based on the Idempotency-Key
    header.
    """
    booking_service = BookingService(db)

    async def operation():
        outcome = await booking_service.transition(
            booking_id=request.booking_id,
            target_status=request.target_status,
            actor=actor,
            notes=request.notes,
        )
        return TransitionResponse(
            booking=Booking.model_validate(outcome.booking),
            from_status=outcome.from_status,
            degraded=outcome.degraded,
            notification_failures=outcome.notification_failures,
        ).model_dump(mode="json")

    try:
        return await IdempotencyService(db).execute(
            method="booking/transition",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking transition",
            extra={
                "booking_id": str(request.booking_id),
                "target_status": request.target_status.value,
                "actor": actor,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/walk-in", response_model=Booking)
async def create_walk_in_booking(
    request: WalkInBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Create a booking at the counter without a prior hold.

    This operation is idempotent based on the Idempotency-Key header.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.create_walk_in_booking(
            vehicle_id=request.vehicle_id,
            customer_id=request.customer_id,
            start_at=request.start_at,
            end_at=request.end_at,
            actor=actor,
            customer_name=request.customer_name,
            total_amount=request.total_amount,
            deposit_amount=request.deposit_amount,
            notes=request.notes,
        )
        return _booking_content(booking)

    try:
        return await IdempotencyService(db).execute(
            method="booking/walk-in",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation=operation,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in walk-in booking",
            extra={
                "vehicle_id": str(request.vehicle_id),
                "customer_id": request.customer_id,
                "actor": actor,
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/assign-vehicle", response_model=Booking)
async def assign_vehicle(
    request: AssignVehicleRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Assign or confirm the vehicle for a booking that has not been handed over."""
    booking = await BookingService(db).assign_vehicle(request.booking_id, request.vehicle_id, actor)
    return JSONResponse(status_code=200, content=_booking_content(booking))


@router.post("/start-return", response_model=Booking)
async def start_return(
    request: StartReturnRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Open the return flow for an active rental."""
    booking = await BookingService(db).start_return(request.booking_id, actor, request.return_state)
    return JSONResponse(status_code=200, content=_booking_content(booking))


@router.post("/preparation", response_model=Preparation)
async def update_preparation(
    request: PreparationRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Record prep checklist items, photos, agreement and walkaround progress."""
    preparation = await BookingService(db).update_preparation(
        booking_id=request.booking_id,
        actor=actor,
        prep_items=request.prep_items,
        photos=request.photos,
        agreement_signed=request.agreement_signed,
        walkaround_completed=request.walkaround_completed,
        walkaround_acknowledged=request.walkaround_acknowledged,
    )
    return JSONResponse(
        status_code=200,
        content=Preparation.model_validate(preparation).model_dump(mode="json")
    )


@router.post("/next-step", response_model=NextStepResponse)
async def get_next_step(
    request: BookingRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """The single most relevant action for a booking right now."""
    booking_service = BookingService(db)
    booking = await booking_service.get_booking(request.booking_id)
    step = await booking_service.get_next_step(request.booking_id)

    response_data = NextStepResponse(
        booking_id=booking.id,
        status=booking.status,
        next_step=step.to_dict() if step else None,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/checklist", response_model=ChecklistResponse)
async def get_checklist(
    request: BookingRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Every handover readiness condition with its status."""
    booking_service = BookingService(db)
    items = await booking_service.get_checklist(request.booking_id)
    step = await booking_service.get_next_step(request.booking_id)

    response_data = ChecklistResponse(
        booking_id=request.booking_id,
        ready=step is not None and step.id == ACTIVATE_STEP.id,
        items=[item.to_dict() for item in items],
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
