"""Background workers for the rental system."""

from .notification_retry_worker import NotificationRetryWorker

__all__ = ["NotificationRetryWorker"]
