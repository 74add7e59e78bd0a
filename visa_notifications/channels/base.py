"""Channel adapter abstraction.

Each channel (in-app, email, SMS, push) has one adapter with a single
operation, send(), that reports success or failure for that channel
independently of the others.

Adapters are at-least-once: sending the same notification twice on a
channel may produce two external messages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import UUID

from visa_notifications.models.notification import (
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)


@dataclass(frozen=True)
class OutboundMessage:
    """Snapshot of a notification addressed to one channel.

    Built from the persisted record before dispatch so adapters never
    touch the database session.
    """

    notification_id: UUID
    user_id: UUID
    channel: NotificationChannel
    recipient: str | None
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    action_url: str | None = None
    action_text: str | None = None


@dataclass(frozen=True)
class Sent:
    """The provider accepted the message."""

    message_id: str


@dataclass(frozen=True)
class Failed:
    """The provider rejected the message or could not be reached."""

    reason: str


DeliveryResult = Sent | Failed


class ChannelAdapter(ABC):
    """Abstract base class for channel senders."""

    channel: NotificationChannel

    @abstractmethod
    def send(self, message: OutboundMessage) -> DeliveryResult:
        """Send a message on this adapter's channel.

        Args:
            message: The message to deliver

        Returns:
            Sent with the provider's message id, or Failed with a reason

        Note:
            Implementations may raise; the delivery worker records any
            exception as a channel failure.
        """
        pass
