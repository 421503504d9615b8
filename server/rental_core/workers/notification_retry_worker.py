"""Background worker for retrying failed notifications."""

import logging

from ..core.database import async_session_factory
from ..services.notification_service import NotificationService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class NotificationRetryWorker(BaseWorker):
    """
    Background worker that re-sends failed notifications.

    Booking transitions never wait on this; a notification that failed
    inline is picked up here until it is delivered or abandoned.
    """

    def __init__(self, interval_seconds: int = 60, batch_size: int = 50):
        """
        Initialize the notification retry worker.

        Args:
            interval_seconds: How often to look for failed notifications
            batch_size: Maximum notifications retried per pass
        """
        super().__init__(name="NotificationRetry", interval_seconds=interval_seconds)
        self.batch_size = batch_size

    async def process(self) -> None:
        """Retry one batch of failed notifications."""
        async with async_session_factory() as db:
            try:
                delivered = await NotificationService(db).retry_failed(self.batch_size)

                if delivered > 0:
                    logger.info(
                        f"Delivered {delivered} notifications on retry",
                        extra={
                            "delivered_count": delivered,
                            "worker": self.name,
                        }
                    )

            except Exception as e:
                await db.rollback()
                logger.error(
                    f"Error retrying notifications: {e!s}",
                    exc_info=True,
                    extra={"worker": self.name}
                )
                raise
