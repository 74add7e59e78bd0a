"""In-app channel adapter.

The persisted notification is the in-app delivery, so sending always
succeeds.
"""

from visa_notifications.channels.base import ChannelAdapter, OutboundMessage, Sent
from visa_notifications.models.notification import NotificationChannel


class InAppAdapter(ChannelAdapter):
    """Adapter for in-app notifications."""

    channel = NotificationChannel.IN_APP

    def send(self, message: OutboundMessage) -> Sent:
        return Sent(message_id=f"in_app_{message.notification_id.hex}")
