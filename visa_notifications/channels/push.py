"""Push channel adapter backed by Firebase Cloud Messaging."""

import logging
import os

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError

from visa_notifications.channels.base import (
    ChannelAdapter,
    DeliveryResult,
    Failed,
    OutboundMessage,
    Sent,
)
from visa_notifications.config import get_settings
from visa_notifications.models.notification import NotificationChannel

logger = logging.getLogger(__name__)


def _get_firebase_app(credentials_path: str) -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if os.path.exists(credentials_path):
        return firebase_admin.initialize_app(credentials.Certificate(credentials_path))
    # Application default credentials in cloud environments
    return firebase_admin.initialize_app()


class FirebasePushAdapter(ChannelAdapter):
    """Adapter that sends push notifications to a device token via FCM."""

    channel = NotificationChannel.PUSH

    def __init__(self, app: firebase_admin.App | None = None) -> None:
        self._credentials_path = get_settings().FIREBASE_CREDENTIALS_PATH
        self._app = app

    @property
    def app(self) -> firebase_admin.App:
        """Lazy-initialize the Firebase app."""
        if self._app is None:
            self._app = _get_firebase_app(self._credentials_path)
        return self._app

    def send(self, message: OutboundMessage) -> DeliveryResult:
        if not message.recipient:
            return Failed("no device token for recipient")

        push = messaging.Message(
            notification=messaging.Notification(
                title=message.title,
                body=message.message,
            ),
            data={
                "notification_id": str(message.notification_id),
                "type": message.type.value,
                "action_url": message.action_url or "",
            },
            token=message.recipient,
        )

        try:
            message_id = messaging.send(push, app=self.app)
        except (FirebaseError, ValueError) as e:
            logger.warning(
                "FCM push failed",
                extra={
                    "notification_id": str(message.notification_id),
                    "error": str(e),
                },
            )
            return Failed(f"fcm error: {e}")

        return Sent(message_id=message_id)
