"""Check-in router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor
from ..schemas.checkin import (
    BlockCheckInRequest,
    CheckIn,
    CheckInResponse,
    CompleteCheckInRequest,
    RecordCheckInRequest,
)
from ..schemas.common import PROBLEM_RESPONSES, BookingRef
from ..services.checkin_service import CheckInService, CheckInValidation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/checkin", tags=["checkin"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


async def _check_in_content(checkin_service: CheckInService, booking_id) -> dict:
    record = await checkin_service.get_check_in(booking_id)
    validations = await checkin_service.get_validations(booking_id)
    return CheckInResponse(
        check_in=CheckIn.model_validate(record) if record else None,
        validations=[v.to_dict() for v in validations],
    ).model_dump(mode="json")


@router.post("/get", response_model=CheckInResponse)
async def get_check_in(
    request: BookingRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Check-in record and the validations computed from it."""
    checkin_service = CheckInService(db)
    return JSONResponse(status_code=200, content=await _check_in_content(checkin_service, request.booking_id))


@router.post("/record", response_model=CheckInResponse)
async def record_check_in(
    request: RecordCheckInRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Record verification facts; only the fields sent are changed."""
    checkin_service = CheckInService(db)
    await checkin_service.record_check_in(request.booking_id, request.updates(), actor)
    return JSONResponse(status_code=200, content=await _check_in_content(checkin_service, request.booking_id))


@router.post("/complete", response_model=CheckInResponse)
async def complete_check_in(
    request: CompleteCheckInRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """
    Score the check-in.

    Failed required checks put the check-in in ``needs_review`` and raise a
    verification alert; they do not block the handover.
    """
    validations = None
    if request.validations is not None:
        validations = [CheckInValidation(**v.model_dump()) for v in request.validations]

    checkin_service = CheckInService(db)
    record = await checkin_service.complete_check_in(request.booking_id, actor, validations)

    logger.info(
        "Check-in completion requested",
        extra={
            "booking_id": str(request.booking_id),
            "check_in_status": record.check_in_status,
            "actor": actor,
        }
    )

    return JSONResponse(status_code=200, content=await _check_in_content(checkin_service, request.booking_id))


@router.post("/block", response_model=CheckInResponse)
async def block_check_in(
    request: BlockCheckInRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Block the check-in; the booking cannot be activated until it is redone."""
    checkin_service = CheckInService(db)
    await checkin_service.block_check_in(request.booking_id, request.reason, actor)
    return JSONResponse(status_code=200, content=await _check_in_content(checkin_service, request.booking_id))
