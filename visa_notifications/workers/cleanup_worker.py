"""Expiry cleanup worker.

Permanently deletes notifications that are archived and past their
metadata expiry time. Deletion is idempotent, so no claim is needed.
"""

import logging
from uuid import UUID

from sqlmodel import Session

from visa_notifications.models.notification import Notification
from visa_notifications.services.store import NotificationStore, get_notification_store
from visa_notifications.workers.base import WorkerBase

logger = logging.getLogger(__name__)


class ExpiryCleanupWorker(WorkerBase[Notification]):
    """Worker for deleting expired archived notifications."""

    def __init__(
        self,
        batch_size: int = 50,
        max_retries: int = 3,
        store: NotificationStore | None = None,
    ) -> None:
        super().__init__(batch_size=batch_size, max_retries=max_retries)
        self.store = store or get_notification_store()

    @property
    def worker_name(self) -> str:
        return "ExpiryCleanupWorker"

    def fetch_pending(self, session: Session) -> list[Notification]:
        """Fetch archived notifications whose expiry has passed."""
        return self.store.expired_archived(session, limit=self.batch_size)

    def mark_processing(self, session: Session, item: Notification) -> bool:
        # Only delete records that are still archived
        return item.archived

    def process_item(self, session: Session, item: Notification) -> None:
        logger.info(
            "Deleting expired notification",
            extra={
                "notification_id": str(item.id),
                "expires_at": item.expires_at.isoformat() if item.expires_at else None,
            },
        )
        session.delete(item)

    def mark_completed(self, session: Session, item: Notification) -> None:
        pass

    def mark_failed(
        self, session: Session, item: Notification, error: str, can_retry: bool
    ) -> None:
        # Picked up again on the next cycle
        pass

    def get_item_id(self, item: Notification) -> UUID:
        return item.id

    def should_retry(self, item: Notification) -> bool:
        return True
