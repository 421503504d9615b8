"""Alert service for the operations alert board."""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import ConflictError, NotAuthenticatedError, NotFoundError
from ..core.observability import metrics_collector
from ..models.alert import Alert, AlertStatus, AlertType

logger = logging.getLogger(__name__)


class AlertService:
    """Service for creating and working staff alerts."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def create_alert(
        self,
        alert_type: AlertType,
        title: str,
        message: str | None = None,
        booking_id: UUID | None = None,
        vehicle_id: UUID | None = None,
    ) -> Alert:
        """Add a pending alert to the current unit of work without committing."""
        alert = Alert(
            alert_type=alert_type.value,
            title=title,
            message=message,
            booking_id=booking_id,
            vehicle_id=vehicle_id,
            status=AlertStatus.PENDING.value,
            created_at=self.clock(),
        )
        self.db.add(alert)
        await self.db.flush()

        logger.info(
            "Alert raised",
            extra={
                "alert_id": str(alert.id),
                "alert_type": alert_type.value,
                "booking_id": str(booking_id) if booking_id else None,
            }
        )

        return alert

    async def get_alert_by_id(self, alert_id: UUID) -> Alert | None:
        """Get alert by ID."""
        stmt = select(Alert).where(Alert.id == alert_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_alert_by_id_or_raise(self, alert_id: UUID) -> Alert:
        """Get alert by ID or raise NotFoundError."""
        alert = await self.get_alert_by_id(alert_id)
        if not alert:
            raise NotFoundError(resource_type="alert", resource_id=str(alert_id))
        return alert

    async def acknowledge(self, alert_id: UUID, actor: str | None) -> Alert:
        """
        Mark an alert as seen by staff.

        Acknowledging an already acknowledged alert is a no-op; a resolved
        alert cannot move back.
        """
        if not actor:
            raise NotAuthenticatedError()

        alert = await self.get_alert_by_id_or_raise(alert_id)
        if alert.status == AlertStatus.RESOLVED.value:
            raise ConflictError(
                detail=f"Alert {alert_id} is already resolved",
                code="ALERT_RESOLVED",
            )

        if alert.status == AlertStatus.PENDING.value:
            alert.status = AlertStatus.ACKNOWLEDGED.value
            alert.acknowledged_by = actor
            alert.acknowledged_at = self.clock()
            await self.db.commit()
            await self.db.refresh(alert)
            await self.refresh_open_gauge()

            logger.info(
                "Alert acknowledged",
                extra={"alert_id": str(alert_id), "actor": actor}
            )

        return alert

    async def resolve(self, alert_id: UUID, actor: str | None) -> Alert:
        """Close an alert. Resolving twice is a no-op."""
        if not actor:
            raise NotAuthenticatedError()

        alert = await self.get_alert_by_id_or_raise(alert_id)
        if alert.status != AlertStatus.RESOLVED.value:
            now = self.clock()
            if alert.acknowledged_at is None:
                alert.acknowledged_by = actor
                alert.acknowledged_at = now
            alert.status = AlertStatus.RESOLVED.value
            alert.resolved_by = actor
            alert.resolved_at = now
            await self.db.commit()
            await self.db.refresh(alert)
            await self.refresh_open_gauge()

            logger.info(
                "Alert resolved",
                extra={"alert_id": str(alert_id), "actor": actor}
            )

        return alert

    async def list_alerts(
        self,
        booking_id: UUID | None = None,
        status: AlertStatus | None = None,
        alert_type: AlertType | None = None,
        limit: int = 100,
    ) -> list[Alert]:
        """Alerts, newest first, optionally filtered."""
        stmt = select(Alert)
        if booking_id:
            stmt = stmt.where(Alert.booking_id == booking_id)
        if status:
            stmt = stmt.where(Alert.status == status.value)
        if alert_type:
            stmt = stmt.where(Alert.alert_type == alert_type.value)
        stmt = stmt.order_by(Alert.created_at.desc()).limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def refresh_open_gauge(self) -> None:
        """Publish the count of unresolved alerts to the metrics gauge."""
        stmt = select(func.count()).select_from(Alert).where(Alert.status != AlertStatus.RESOLVED.value)
        result = await self.db.execute(stmt)
        metrics_collector.set_open_alerts(result.scalar_one())
