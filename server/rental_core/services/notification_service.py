"""Best-effort notification dispatch with a retry log."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import NotificationDispatchError
from ..core.observability import get_logger, metrics_collector
from ..models.audit import NotificationLog, NotificationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationRequest:
    """Payload handed to the external notification dispatcher."""

    event_type: str
    booking_id: str
    booking_code: str | None = None
    customer_name: str | None = None
    vehicle_name: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "NotificationRequest":
        return cls(**payload)


class NotificationDispatcher(Protocol):
    async def dispatch(self, request: NotificationRequest) -> None:
        """Deliver one request or raise NotificationDispatchError."""


class WebhookDispatcher:
    """Posts notification requests to the delivery service over HTTP."""

    def __init__(self, url: str, timeout_seconds: float):
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: NotificationRequest) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, json=request.to_payload())
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationDispatchError(request.event_type, str(e)) from e


class LoggingDispatcher:
    """Dispatcher used when no delivery endpoint is configured."""

    def __init__(self):
        self.logger = get_logger("rental_core.notifications")

    async def dispatch(self, request: NotificationRequest) -> None:
        self.logger.info("notification_requested", **request.to_payload())


def get_dispatcher() -> NotificationDispatcher:
    """Dispatcher chosen from settings."""
    if settings.notification_webhook_url:
        return WebhookDispatcher(
            settings.notification_webhook_url,
            settings.notification_timeout_seconds,
        )
    return LoggingDispatcher()


class NotificationService:
    """
    Sends notification requests without ever failing the caller.

    Each attempt is time-bounded and recorded in the notification log. A
    failed request stays in the log as ``failed`` for the retry worker.
    """

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.dispatcher = dispatcher or get_dispatcher()
        self.clock = clock

    async def notify(self, request: NotificationRequest) -> bool:
        """Dispatch once and record the outcome. Returns True on delivery."""
        error = await self._attempt(request)

        log = NotificationLog(
            event_type=request.event_type,
            booking_id=UUID(request.booking_id) if request.booking_id else None,
            payload=request.to_payload(),
            status=NotificationStatus.SENT.value if error is None else NotificationStatus.FAILED.value,
            attempts=1,
            last_error=error,
            created_at=self.clock(),
            updated_at=self.clock(),
        )

        try:
            self.db.add(log)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to record notification outcome",
                extra={
                    "event_type": request.event_type,
                    "booking_id": request.booking_id,
                    "error": str(e)
                },
                exc_info=True
            )

        return error is None

    async def retry_failed(self, batch_size: int = 50) -> int:
        """
        Re-dispatch failed notifications.

        Requests that reach the attempt limit are marked abandoned.

        Returns:
            Number of notifications delivered in this pass
        """
        stmt = (
            select(NotificationLog)
            .where(NotificationLog.status == NotificationStatus.FAILED.value)
            .order_by(NotificationLog.created_at)
            .limit(batch_size)
        )
        result = await self.db.execute(stmt)
        pending = list(result.scalars())

        delivered = 0
        for log in pending:
            request = NotificationRequest.from_payload(log.payload)
            error = await self._attempt(request)

            log.attempts += 1
            log.updated_at = self.clock()
            if error is None:
                log.status = NotificationStatus.SENT.value
                log.last_error = None
                delivered += 1
            else:
                log.last_error = error
                if log.attempts >= settings.notification_max_attempts:
                    log.status = NotificationStatus.ABANDONED.value
                    logger.error(
                        "Notification abandoned after retries",
                        extra={
                            "notification_id": str(log.id),
                            "event_type": log.event_type,
                            "attempts": log.attempts,
                        }
                    )

        if pending:
            await self.db.commit()
            logger.info(
                "Notification retry pass completed",
                extra={"retried": len(pending), "delivered": delivered}
            )

        return delivered

    async def _attempt(self, request: NotificationRequest) -> str | None:
        try:
            await asyncio.wait_for(
                self.dispatcher.dispatch(request),
                timeout=settings.notification_timeout_seconds,
            )
        except NotificationDispatchError as e:
            return self._record_failure(request, e.reason)
        except asyncio.TimeoutError:
            return self._record_failure(
                request, f"timed out after {settings.notification_timeout_seconds}s"
            )

        logger.info(
            "Notification dispatched",
            extra={"event_type": request.event_type, "booking_id": request.booking_id}
        )
        return None

    def _record_failure(self, request: NotificationRequest, reason: str) -> str:
        metrics_collector.record_notification_failure(request.event_type)
        logger.warning(
            "Notification dispatch failed",
            extra={
                "event_type": request.event_type,
                "booking_id": request.booking_id,
                "reason": reason,
            }
        )
        return reason
