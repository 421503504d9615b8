"""Alert board router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor
from ..schemas.alert import Alert, AlertList, AlertRef, ListAlertsRequest
from ..schemas.common import PROBLEM_RESPONSES
from ..services.alert_service import AlertService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/alert", tags=["alert"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/list", response_model=AlertList)
async def list_alerts(
    request: ListAlertsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Alerts matching the filters, newest first."""
    alerts = await AlertService(db).list_alerts(
        booking_id=request.booking_id,
        status=request.status,
        alert_type=request.alert_type,
        limit=request.limit,
    )
    response_data = AlertList(alerts=[Alert.model_validate(a) for a in alerts])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/acknowledge", response_model=Alert)
async def acknowledge_alert(
    request: AlertRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    alert = await AlertService(db).acknowledge(request.alert_id, actor)
    return JSONResponse(status_code=200, content=Alert.model_validate(alert).model_dump(mode="json"))


@router.post("/resolve", response_model=Alert)
async def resolve_alert(
    request: AlertRef,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    alert = await AlertService(db).resolve(request.alert_id, actor)
    return JSONResponse(status_code=200, content=Alert.model_validate(alert).model_dump(mode="json"))
