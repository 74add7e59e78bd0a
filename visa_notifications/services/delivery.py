"""Per-channel delivery state transitions.

Send results and delivery confirmations are two distinct external events
feeding the same per-channel state machine:

    (unsent) --Sent--> sent --confirm--> delivered
       |                 ^
       +--Failed--> failed --Sent (next attempt)

After every transition the aggregate status is recomputed from the
channel rows; it is never assigned from outside this module.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlmodel import Session, select

from visa_notifications.channels.base import DeliveryResult, Failed, Sent
from visa_notifications.models.notification import (
    ChannelDelivery,
    DeliveryStatus,
    Notification,
    NotificationChannel,
)
from visa_notifications.services.errors import (
    DeliveryStateError,
    NotificationNotFoundError,
    RetryExhaustedError,
)
from visa_notifications.services.status import aggregate_status
from visa_notifications.services.store import get_notification_store

logger = logging.getLogger(__name__)

FAILURE_REASON_MAX_LENGTH = 500


def apply_send_result(
    delivery: ChannelDelivery,
    result: DeliveryResult,
    now: datetime | None = None,
) -> None:
    """Record the outcome of one send attempt on a channel.

    A successful send supersedes a failure from an earlier attempt; a
    failure never advances sent or delivered.
    """
    now = now or datetime.utcnow()
    delivery.attempts += 1

    if isinstance(result, Sent):
        delivery.sent = True
        delivery.sent_at = now
        delivery.message_id = result.message_id
        delivery.failed = False
    elif isinstance(result, Failed):
        delivery.failed = True
        delivery.failure_reason = (result.reason or "unknown error")[:FAILURE_REASON_MAX_LENGTH]
    else:
        raise TypeError(f"Unsupported delivery result: {result!r}")


def refresh_status(notification: Notification) -> DeliveryStatus:
    """Recompute and store the aggregate status from channel state."""
    notification.status = aggregate_status(notification.deliveries)
    return notification.status


def schedule_retry(notification: Notification, now: datetime | None = None) -> bool:
    """Apply the retry policy after a delivery attempt with failures.

    Counts the attempt against the retry budget. While budget remains, the
    failed channels are re-armed and the notification returns to PENDING
    for the next pass; once the budget is spent it keeps its failed state.

    Returns:
        True if another attempt was scheduled
    """
    if notification.retry_count >= notification.max_retries:
        return False

    now = now or datetime.utcnow()
    notification.retry_count += 1
    notification.last_retry_at = now

    if notification.retry_count >= notification.max_retries:
        logger.warning(
            "Notification delivery retries exhausted",
            extra={
                "notification_id": str(notification.id),
                "retry_count": notification.retry_count,
            },
        )
        return False

    for delivery in notification.deliveries:
        delivery.failed = False
    notification.status = DeliveryStatus.PENDING
    return True


def retry_delivery(session: Session, notification: Notification) -> Notification:
    """Manually re-queue a failed notification for delivery.

    The notification is re-read under a row lock. Only a notification with
    failed channels is re-armed and charged a retry; otherwise its status
    is just recomputed.

    Raises:
        NotificationNotFoundError: If the notification was deleted
        DeliveryStateError: If a worker currently holds a delivery claim
        RetryExhaustedError: If retry_count has reached max_retries. The
            notification is left unchanged.
    """
    notification_id = notification.id
    notification = lock_notification(session, notification_id)
    if notification is None:
        raise NotificationNotFoundError(f"Notification {notification_id} not found")

    now = datetime.utcnow()
    if notification.claimed_until is not None and notification.claimed_until > now:
        session.rollback()
        raise DeliveryStateError(
            f"Notification {notification_id} is being delivered by a worker"
        )
    if notification.retry_count >= notification.max_retries:
        session.rollback()
        raise RetryExhaustedError(
            f"Maximum retry attempts reached for notification {notification_id}"
        )

    has_failures = any(d.failed for d in notification.deliveries)
    if aggregate_status(notification.deliveries) != DeliveryStatus.FAILED and not has_failures:
        refresh_status(notification)
        session.add(notification)
        session.commit()
        session.refresh(notification)
        logger.info(
            "Nothing to retry",
            extra={
                "notification_id": str(notification_id),
                "status": notification.status.value,
            },
        )
        return notification

    notification.retry_count += 1
    notification.last_retry_at = now
    for delivery in notification.deliveries:
        delivery.failed = False
        delivery.failure_reason = None
        session.add(delivery)
    refresh_status(notification)

    session.add(notification)
    session.commit()
    session.refresh(notification)

    logger.info(
        "Notification re-queued for delivery",
        extra={
            "notification_id": str(notification_id),
            "retry_count": notification.retry_count,
        },
    )
    return notification


def confirm_delivery(
    session: Session,
    notification_id: UUID,
    channel: NotificationChannel,
) -> Notification:
    """Mark a sent channel as delivered, e.g. from a provider webhook.

    The channel rows are re-read under a row lock so the aggregate status
    is computed from the latest persisted state.

    Raises:
        NotificationNotFoundError: If the notification or channel does not exist
        DeliveryStateError: If the channel has not been sent
    """
    notification = lock_notification(session, notification_id)
    if notification is None:
        raise NotificationNotFoundError(f"Notification {notification_id} not found")

    delivery = next((d for d in notification.deliveries if d.channel == channel), None)
    if delivery is None:
        raise NotificationNotFoundError(
            f"Channel {channel.value} is not enabled for notification {notification_id}"
        )
    if not delivery.sent:
        raise DeliveryStateError(
            f"Channel {channel.value} of notification {notification_id} has not been sent"
        )

    if not delivery.delivered:
        delivery.delivered = True
        delivery.delivered_at = datetime.utcnow()
        session.add(delivery)

    previous = notification.status
    refresh_status(notification)
    session.add(notification)
    session.commit()
    session.refresh(notification)

    logger.info(
        "Channel delivery confirmed",
        extra={
            "notification_id": str(notification_id),
            "channel": channel.value,
            "previous_status": previous.value,
            "status": notification.status.value,
        },
    )
    return notification


def confirm_delivery_by_message_id(session: Session, message_id: str) -> Notification:
    """Confirm delivery using the provider's message id.

    Raises:
        NotificationNotFoundError: If no channel was sent with this message id
    """
    delivery = get_notification_store().find_delivery_by_message_id(session, message_id)
    if delivery is None:
        raise NotificationNotFoundError(f"No delivery found for message {message_id}")
    return confirm_delivery(session, delivery.notification_id, delivery.channel)


def lock_notification(session: Session, notification_id: UUID) -> Notification | None:
    """Load a notification and its channel rows with row locks held."""
    notification = session.exec(
        select(Notification)
        .where(Notification.id == notification_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if notification is None:
        return None

    # Re-read channel rows under the same lock
    session.exec(
        select(ChannelDelivery)
        .where(ChannelDelivery.notification_id == notification_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).all()
    return notification
