"""SQLModel entities for visa portal notifications."""

from visa_notifications.models.notification import (
    ChannelDelivery,
    DeliveryStatus,
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)

__all__ = [
    "Notification",
    "ChannelDelivery",
    "NotificationChannel",
    "NotificationType",
    "NotificationPriority",
    "DeliveryStatus",
]
