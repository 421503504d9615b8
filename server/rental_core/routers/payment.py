"""Payment processor callback router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor
from ..schemas.booking import Booking
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.payment import PaymentWebhookRequest
from ..services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/webhook", response_model=Booking)
async def payment_webhook(
    request: PaymentWebhookRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """
    Apply a payment processor update.

    Safe to deliver more than once: the deposit hold entry is written only
    for the first authorization.
    """
    booking = await PaymentService(db).record_payment_update(
        booking_id=request.booking_id,
        actor=actor,
        amount_paid=request.amount_paid,
        deposit_status=request.deposit_status,
    )
    return JSONResponse(
        status_code=200,
        content=Booking.model_validate(booking).model_dump(mode="json")
    )
