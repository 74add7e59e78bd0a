"""Pure derivations over persisted notification state.

Nothing here is cached on the record: aggregate status, the delivery
summary and "time ago" are recomputed from the stored per-channel state
each time they are needed.
"""

from collections.abc import Iterable
from datetime import datetime

from visa_notifications.models.notification import (
    ChannelDelivery,
    DeliveryStatus,
    Notification,
    NotificationChannel,
)

CHANNEL_FLAGS: dict[NotificationChannel, str] = {
    NotificationChannel.IN_APP: "channel_in_app",
    NotificationChannel.EMAIL: "channel_email",
    NotificationChannel.SMS: "channel_sms",
    NotificationChannel.PUSH: "channel_push",
}


def enabled_channels(notification: Notification) -> list[NotificationChannel]:
    """Return the channels selected on a notification, in declaration order."""
    return [
        channel
        for channel, flag in CHANNEL_FLAGS.items()
        if getattr(notification, flag)
    ]


def aggregate_status(deliveries: Iterable[ChannelDelivery]) -> DeliveryStatus:
    """Derive the aggregate status from per-channel delivery state.

    - DELIVERED when every channel is delivered
    - FAILED when every channel is failed
    - SENT when every channel is at least sent
    - PENDING otherwise, including when no channel is enabled
    """
    deliveries = list(deliveries)
    if not deliveries:
        return DeliveryStatus.PENDING
    if all(d.delivered for d in deliveries):
        return DeliveryStatus.DELIVERED
    if all(d.failed for d in deliveries):
        return DeliveryStatus.FAILED
    if all(d.sent or d.delivered for d in deliveries):
        return DeliveryStatus.SENT
    return DeliveryStatus.PENDING


def delivery_summary(deliveries: Iterable[ChannelDelivery]) -> list[str]:
    """Summarize external channel progress, e.g. ["email-delivered", "sms-failed"].

    In-app delivery is not reported, it has no external transport.
    """
    summary: list[str] = []
    for delivery in sorted(deliveries, key=_channel_order):
        if delivery.channel == NotificationChannel.IN_APP:
            continue
        if delivery.delivered:
            summary.append(f"{delivery.channel.value}-delivered")
        elif delivery.sent:
            summary.append(f"{delivery.channel.value}-sent")
        elif delivery.failed:
            summary.append(f"{delivery.channel.value}-failed")
    return summary


def is_expired(notification: Notification, now: datetime | None = None) -> bool:
    """Check whether the notification's expiry time has passed."""
    if notification.expires_at is None:
        return False
    return (now or datetime.utcnow()) > notification.expires_at


def time_ago(created_at: datetime, now: datetime | None = None) -> str:
    """Human readable age of a notification."""
    diff = (now or datetime.utcnow()) - created_at
    minutes = int(diff.total_seconds() // 60)
    hours = int(diff.total_seconds() // 3600)
    days = diff.days

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if days < 30:
        return f"{days} day{'s' if days > 1 else ''} ago"
    return created_at.date().isoformat()


def _channel_order(delivery: ChannelDelivery) -> int:
    return list(CHANNEL_FLAGS).index(delivery.channel)
