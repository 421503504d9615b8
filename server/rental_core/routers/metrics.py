"""Metrics endpoint for Prometheus scraping."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.observability import get_prometheus_metrics
from ..services.alert_service import AlertService

router = APIRouter()

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Endpoint for Prometheus to scrape metrics",
    response_class=Response,
    tags=["Observability"]
)
async def metrics(db: AsyncSession = DB_DEPENDENCY):
    """
    Return Prometheus metrics.

    The open alert gauge is read from the database on each scrape so that
    every replica reports the same value.
    """
    await AlertService(db).refresh_open_gauge()
    return Response(
        content=get_prometheus_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
