"""Vehicle catalog router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import CurrentActor
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.vehicle import CreateVehicleRequest, SearchVehiclesRequest, Vehicle, VehicleList
from ..services.vehicle_service import VehicleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/vehicle", tags=["vehicle"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/create", response_model=Vehicle)
async def create_vehicle(
    request: CreateVehicleRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """Register a vehicle in the catalog."""
    vehicle = await VehicleService(db).create_vehicle(**request.model_dump())
    return JSONResponse(status_code=200, content=Vehicle.model_validate(vehicle).model_dump(mode="json"))


@router.post("/search", response_model=VehicleList)
async def search_vehicles(
    request: SearchVehiclesRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: str = CurrentActor,
) -> JSONResponse:
    """
    Vehicles free for the whole range.

    Advisory only: a vehicle listed here can still be taken before a hold is
    placed on it.
    """
    vehicles = await VehicleService(db).search_available(
        start_at=request.start_at,
        end_at=request.end_at,
        category=request.category,
    )
    response_data = VehicleList(vehicles=[Vehicle.model_validate(v) for v in vehicles])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
