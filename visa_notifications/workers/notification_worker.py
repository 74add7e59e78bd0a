"""Notification delivery worker.

Drives one delivery attempt per due notification:
1. Claims the notification (lease) so no other worker touches it
2. Sends every enabled, not yet sent channel through its adapter,
   concurrently and with a timeout per send
3. Applies the per-channel results and recomputes the aggregate status
   in a single locked read-modify-write
4. Applies the retry policy and releases the claim

Adapter errors and timeouts are recorded as channel failures and never
abort other channels or other notifications in the batch.
"""

import concurrent.futures
import logging
import time
from uuid import UUID

from sqlmodel import Session

from visa_notifications.channels.base import (
    DeliveryResult,
    Failed,
    OutboundMessage,
    Sent,
)
from visa_notifications.channels.registry import AdapterRegistry, get_adapter_registry
from visa_notifications.config import get_settings
from visa_notifications.models.notification import (
    DeliveryStatus,
    Notification,
    NotificationChannel,
)
from visa_notifications.services.delivery import (
    apply_send_result,
    lock_notification,
    refresh_status,
    schedule_retry,
)
from visa_notifications.services.store import NotificationStore, get_notification_store
from visa_notifications.workers.base import (
    ClaimLostError,
    ItemDeletedError,
    ItemOutcome,
    WorkerBase,
)

logger = logging.getLogger(__name__)


class NotificationWorker(WorkerBase[Notification]):
    """Worker that delivers due notifications on all enabled channels."""

    def __init__(
        self,
        batch_size: int = 50,
        max_retries: int = 3,
        registry: AdapterRegistry | None = None,
        store: NotificationStore | None = None,
        send_timeout: float | None = None,
        max_workers: int | None = None,
        lease_seconds: int | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            batch_size: Maximum notifications per cycle
            max_retries: Default retry budget (each notification carries its own)
            registry: Channel adapters, defaults to the provider registry
            store: Notification store
            send_timeout: Seconds before a send is recorded as failed
            max_workers: Threads used to send channels concurrently
            lease_seconds: Claim lease duration
        """
        super().__init__(batch_size=batch_size, max_retries=max_retries)
        settings = get_settings()
        self._registry = registry
        self.store = store or get_notification_store()
        self.send_timeout = send_timeout or settings.DELIVERY_SEND_TIMEOUT_SECONDS
        self.max_workers = max_workers or settings.DELIVERY_MAX_WORKERS
        self.lease_seconds = lease_seconds or settings.DELIVERY_CLAIM_LEASE_SECONDS
        if self.send_timeout >= self.lease_seconds:
            raise ValueError("send_timeout must be shorter than the claim lease")
        self._claims: dict[UUID, UUID] = {}

    @property
    def worker_name(self) -> str:
        return "NotificationWorker"

    @property
    def registry(self) -> AdapterRegistry:
        """Lazy-load the default adapter registry."""
        if self._registry is None:
            self._registry = get_adapter_registry()
        return self._registry

    def fetch_pending(self, session: Session) -> list[Notification]:
        """Fetch notifications due for delivery, highest priority first."""
        return self.store.due_for_delivery(session, limit=self.batch_size)

    def mark_processing(self, session: Session, item: Notification) -> bool:
        """Claim the notification.

        Returns:
            False if another worker holds the claim or the notification is
            no longer due; the item is then skipped without changes
        """
        token = self.store.claim(session, item.id, lease_seconds=self.lease_seconds)
        if token is None:
            return False
        self._claims[item.id] = token
        return True

    def process_item(self, session: Session, item: Notification) -> None:
        """Send all outstanding channels and record the results.

        Args:
            session: Database session
            item: The claimed notification
        """
        notification_id = item.id

        notification = lock_notification(session, notification_id)
        if notification is None:
            raise ItemDeletedError(f"Notification {notification_id} was deleted")
        messages = self._build_messages(notification)
        # End the read transaction before blocking on providers
        session.commit()

        results = self._dispatch(messages)

        notification = lock_notification(session, notification_id)
        if notification is None:
            raise ItemDeletedError(f"Notification {notification_id} was deleted")
        if not self._holds_claim(notification):
            # Lease expired during the sends and another worker took over
            raise ClaimLostError(f"Claim on notification {notification_id} was lost")

        for delivery in notification.deliveries:
            result = results.get(delivery.channel)
            if result is not None:
                apply_send_result(delivery, result)
                session.add(delivery)

        status = refresh_status(notification)
        had_failures = any(isinstance(r, Failed) for r in results.values())
        retry_scheduled = False
        if status == DeliveryStatus.FAILED or had_failures:
            retry_scheduled = schedule_retry(notification)
        session.add(notification)

        logger.info(
            "Delivery attempt recorded",
            extra={
                "notification_id": str(notification_id),
                "status": notification.status.value,
                "results": {
                    channel.value: "sent" if isinstance(result, Sent) else result.reason
                    for channel, result in results.items()
                },
                "retry_count": notification.retry_count,
                "retry_scheduled": retry_scheduled,
            },
        )

    def mark_completed(self, session: Session, item: Notification) -> None:
        """Release the claim in the transaction that persists the results."""
        if not self._release(session, item.id):
            raise ClaimLostError(f"Claim on notification {item.id} was lost")

    def mark_failed(
        self, session: Session, item: Notification, error: str, can_retry: bool
    ) -> None:
        """Record an unexpected processing error as channel failures.

        Every channel that is neither sent nor delivered is marked failed
        with the error, then the normal retry policy applies.
        """
        notification_id = item.id
        if notification_id not in self._claims:
            # Never claimed, so this worker must not touch it
            return

        notification = lock_notification(session, notification_id)
        if notification is None or not self._holds_claim(notification):
            self._claims.pop(notification_id, None)
            return

        for delivery in notification.deliveries:
            if not (delivery.sent or delivery.delivered):
                apply_send_result(delivery, Failed(error))
                session.add(delivery)

        refresh_status(notification)
        if can_retry:
            schedule_retry(notification)
        session.add(notification)
        self._release(session, notification_id)

    def get_item_id(self, item: Notification) -> UUID:
        return item.id

    def should_retry(self, item: Notification) -> bool:
        """Each notification carries its own retry budget."""
        return item.retry_count < item.max_retries

    def discard(self, item_id: UUID | None) -> None:
        self._claims.pop(item_id, None)

    def deliver(self, session: Session, notification_id: UUID) -> ItemOutcome:
        """Run one delivery attempt for a single notification.

        Used for event-driven delivery right after creation.

        Returns:
            SKIPPED if the notification is missing, not due or claimed elsewhere
        """
        notification = self.store.get(session, notification_id)
        if notification is None:
            return ItemOutcome.SKIPPED
        outcome, _ = self.process_one(session, notification, notification_id)
        return outcome

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _build_messages(self, notification: Notification) -> list[OutboundMessage]:
        """Snapshot outstanding channels; sent channels await confirmation."""
        meta = notification.meta or {}
        return [
            OutboundMessage(
                notification_id=notification.id,
                user_id=notification.user_id,
                channel=delivery.channel,
                recipient=delivery.recipient,
                type=notification.type,
                priority=notification.priority,
                title=notification.title,
                message=notification.message,
                action_url=meta.get("action_url"),
                action_text=meta.get("action_text"),
            )
            for delivery in notification.deliveries
            if not (delivery.delivered or delivery.sent)
        ]

    def _dispatch(
        self, messages: list[OutboundMessage]
    ) -> dict[NotificationChannel, DeliveryResult]:
        """Send messages concurrently, one thread per channel.

        A send that has not finished by the deadline is recorded as
        Failed("timeout"); its thread is abandoned, not cancelled.
        """
        if not messages:
            return {}

        results: dict[NotificationChannel, DeliveryResult] = {}
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=min(len(messages), self.max_workers),
            thread_name_prefix="notification-send",
        )
        try:
            futures = {
                message.channel: executor.submit(self._send, message)
                for message in messages
            }
            deadline = time.monotonic() + self.send_timeout

            for channel, future in futures.items():
                remaining = max(deadline - time.monotonic(), 0)
                try:
                    results[channel] = future.result(timeout=remaining)
                except concurrent.futures.TimeoutError:
                    logger.warning(
                        f"Send timed out on {channel.value}",
                        extra={"channel": channel.value, "timeout": self.send_timeout},
                    )
                    results[channel] = Failed("timeout")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _send(self, message: OutboundMessage) -> DeliveryResult:
        """Call the channel adapter, converting errors into failures."""
        adapter = self.registry.get(message.channel)
        if adapter is None:
            return Failed(f"no adapter registered for {message.channel.value}")

        try:
            result = adapter.send(message)
        except Exception as e:
            logger.error(
                f"Adapter {adapter.__class__.__name__} raised",
                extra={
                    "notification_id": str(message.notification_id),
                    "channel": message.channel.value,
                    "error": str(e),
                },
                exc_info=True,
            )
            return Failed(f"{e.__class__.__name__}: {e}")

        if not isinstance(result, (Sent, Failed)):
            return Failed(f"invalid adapter result: {result!r}")
        return result

    def _holds_claim(self, notification: Notification) -> bool:
        token = self._claims.get(notification.id)
        return token is not None and notification.claim_token == token

    def _release(self, session: Session, notification_id: UUID) -> bool:
        token = self._claims.pop(notification_id, None)
        if token is None:
            return False
        return self.store.release(session, notification_id, token)
