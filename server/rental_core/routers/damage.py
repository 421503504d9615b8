"""Damage report router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor, IdempotencyKey
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.damage import CreateDamageRequest, DamageIntakeResponse, DamageReport, ResolveDamageRequest
from ..services.damage_service import DamageService
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/damage", tags=["damage"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/create", response_model=DamageIntakeResponse)
async def create_damage_report(
    request: CreateDamageRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
    idempotency_key: str | None = IdempotencyKey,
) -> JSONResponse:
    """
    Report damage on a booking's vehicle.

    An authorized deposit has the severity amount withheld and a return in
    progress is flagged for review. This operation is idempotent based on
    the Idempotency-Key header.
    """
    damage_service = DamageService(db)

    async def operation():
        intake = await damage_service.create_damage_report(
            booking_id=request.booking_id,
            severity=request.severity,
            description=request.description,
            location_on_vehicle=request.location_on_vehicle,
            actor=actor,
            estimated_cost=request.estimated_cost,
        )
        return DamageIntakeResponse(
            report=DamageReport.model_validate(intake.report),
            withheld_amount=intake.withheld_amount,
        ).model_dump(mode="json")

    return await IdempotencyService(db).execute(
        method="damage/create",
        idempotency_key=idempotency_key,
        request_body=request.model_dump(mode="json"),
        operation=operation,
    )


@router.post("/resolve", response_model=DamageReport)
async def resolve_damage(
    request: ResolveDamageRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Close the review of a damage report."""
    report = await DamageService(db).resolve_damage(request.damage_id, actor, request.status)
    return JSONResponse(
        status_code=200,
        content=DamageReport.model_validate(report).model_dump(mode="json")
    )
