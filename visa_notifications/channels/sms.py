"""SMS channel adapter backed by Twilio."""

import logging

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

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

# A single SMS segment set; longer bodies are truncated
SMS_MAX_LENGTH = 480


class TwilioSmsAdapter(ChannelAdapter):
    """Adapter that sends notifications as SMS through Twilio."""

    channel = NotificationChannel.SMS

    def __init__(self, client: Client | None = None, from_number: str | None = None) -> None:
        settings = get_settings()
        self.from_number = from_number or settings.TWILIO_SMS_NUMBER
        self._account_sid = settings.TWILIO_ACCOUNT_SID
        self._auth_token = settings.TWILIO_AUTH_TOKEN
        self._client = client

    @property
    def client(self) -> Client | None:
        """Lazy-initialize the Twilio client."""
        if self._client is None and self._account_sid and self._auth_token:
            self._client = Client(self._account_sid, self._auth_token)
        return self._client

    def send(self, message: OutboundMessage) -> DeliveryResult:
        if not message.recipient:
            return Failed("no phone number for recipient")
        if not (self.client and self.from_number):
            logger.info("Twilio configuration incomplete; skipping SMS delivery")
            return Failed("sms provider not configured")

        body = f"{message.title}: {message.message}"
        if len(body) > SMS_MAX_LENGTH:
            body = body[: SMS_MAX_LENGTH - 3] + "..."

        try:
            sms = self.client.messages.create(
                body=body,
                from_=self.from_number,
                to=message.recipient,
            )
        except TwilioRestException as e:
            logger.warning(
                "Twilio rejected SMS",
                extra={
                    "notification_id": str(message.notification_id),
                    "status_code": e.status,
                    "error": e.msg,
                },
            )
            return Failed(f"twilio error {e.status}: {e.msg}")

        return Sent(message_id=sms.sid)
