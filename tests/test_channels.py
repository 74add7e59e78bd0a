"""Tests for the channel adapters with mocked provider clients."""

from unittest.mock import Mock, patch
from uuid import uuid4

import pytest
from firebase_admin import exceptions as firebase_exceptions
from twilio.base.exceptions import TwilioRestException

from visa_notifications.channels.base import Failed, OutboundMessage, Sent
from visa_notifications.channels.email import SendGridEmailAdapter, render_email_html
from visa_notifications.channels.in_app import InAppAdapter
from visa_notifications.channels.push import FirebasePushAdapter
from visa_notifications.channels.registry import get_adapter_registry
from visa_notifications.channels.sms import SMS_MAX_LENGTH, TwilioSmsAdapter
from visa_notifications.models.notification import (
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)


def outbound(channel: NotificationChannel, recipient: str | None = "someone", **kwargs):
    fields = {
        "notification_id": uuid4(),
        "user_id": uuid4(),
        "channel": channel,
        "recipient": recipient,
        "type": NotificationType.INTERVIEW_SCHEDULED,
        "priority": NotificationPriority.HIGH,
        "title": "Interview scheduled",
        "message": "Your interview is on 12 May at 10:00.",
    }
    fields.update(kwargs)
    return OutboundMessage(**fields)


# ============================================================================
# In-app
# ============================================================================

class TestInAppAdapter:
    def test_always_sent(self):
        message = outbound(NotificationChannel.IN_APP, recipient=None)

        result = InAppAdapter().send(message)

        assert result == Sent(message_id=f"in_app_{message.notification_id.hex}")


# ============================================================================
# Email
# ============================================================================

class FakeSendGridError(Exception):
    status_code = 401
    body = b'{"errors": [{"message": "The provided authorization grant is invalid"}]}'


class TestSendGridEmailAdapter:
    """Tests for SendGridEmailAdapter."""

    def make(self, client=None):
        return SendGridEmailAdapter(client=client or Mock(), sender="noreply@visa.example")

    def test_accepted_message(self):
        client = Mock()
        client.send.return_value = Mock(status_code=202, headers={"X-Message-Id": "sg-abc"})
        adapter = self.make(client)

        result = adapter.send(outbound(NotificationChannel.EMAIL, "applicant@example.com"))

        assert result == Sent(message_id="sg-abc")
        mail = client.send.call_args.args[0]
        assert mail.subject.subject == "Interview scheduled"

    def test_missing_message_id_header(self):
        client = Mock()
        client.send.return_value = Mock(status_code=202, headers={})
        message = outbound(NotificationChannel.EMAIL, "applicant@example.com")

        result = self.make(client).send(message)

        assert result == Sent(message_id=f"sendgrid_{message.notification_id.hex}")

    def test_error_response(self):
        client = Mock()
        client.send.return_value = Mock(
            status_code=400,
            body=b'{"errors": [{"message": "Invalid email"}]}',
        )

        result = self.make(client).send(outbound(NotificationChannel.EMAIL, "not-an-email"))

        assert result == Failed("sendgrid responded 400: Invalid email")

    def test_client_exception(self):
        client = Mock()
        client.send.side_effect = FakeSendGridError("Unauthorized")

        result = self.make(client).send(outbound(NotificationChannel.EMAIL, "a@example.com"))

        assert isinstance(result, Failed)
        assert result.reason == "sendgrid error 401: The provided authorization grant is invalid"

    def test_no_recipient(self):
        client = Mock()

        result = self.make(client).send(outbound(NotificationChannel.EMAIL, None))

        assert result == Failed("no email address for recipient")
        client.send.assert_not_called()

    def test_not_configured(self):
        with patch("visa_notifications.channels.email.get_settings") as mock_settings:
            mock_settings.return_value.SENDGRID_API_KEY = ""
            mock_settings.return_value.SENDGRID_SENDER = ""
            mock_settings.return_value.COMPANY_NAME = "Visa Portal"
            mock_settings.return_value.FRONTEND_URL = "http://localhost:3000"

            adapter = SendGridEmailAdapter()

        result = adapter.send(outbound(NotificationChannel.EMAIL, "a@example.com"))

        assert result == Failed("email provider not configured")

    def test_render_escapes_content_and_resolves_links(self):
        message = outbound(
            NotificationChannel.EMAIL,
            title="<script>alert(1)</script>",
            action_url="/applications/7",
            action_text="Open",
        )

        html = render_email_html(message, "Visa Portal", "https://portal.example/")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert 'href="https://portal.example/applications/7"' in html
        assert ">Open</a>" in html
        assert "Visa Portal Team" in html

    def test_render_without_action(self):
        html = render_email_html(outbound(NotificationChannel.EMAIL), "Visa Portal", "")

        assert "<a " not in html


# ============================================================================
# SMS
# ============================================================================

class TestTwilioSmsAdapter:
    """Tests for TwilioSmsAdapter."""

    def test_sent(self):
        client = Mock()
        client.messages.create.return_value = Mock(sid="SM123")
        adapter = TwilioSmsAdapter(client=client, from_number="+15550000")

        result = adapter.send(outbound(NotificationChannel.SMS, "+15550100"))

        assert result == Sent(message_id="SM123")
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["to"] == "+15550100"
        assert kwargs["from_"] == "+15550000"
        assert kwargs["body"].startswith("Interview scheduled: ")

    def test_long_body_is_truncated(self):
        client = Mock()
        client.messages.create.return_value = Mock(sid="SM124")
        adapter = TwilioSmsAdapter(client=client, from_number="+15550000")

        adapter.send(outbound(NotificationChannel.SMS, "+15550100", message="x" * 1000))

        body = client.messages.create.call_args.kwargs["body"]
        assert len(body) == SMS_MAX_LENGTH
        assert body.endswith("...")

    def test_rejected(self):
        client = Mock()
        client.messages.create.side_effect = TwilioRestException(
            400, "/Messages", msg="Invalid 'To' number"
        )
        adapter = TwilioSmsAdapter(client=client, from_number="+15550000")

        result = adapter.send(outbound(NotificationChannel.SMS, "12"))

        assert result == Failed("twilio error 400: Invalid 'To' number")

    def test_no_phone_number(self):
        adapter = TwilioSmsAdapter(client=Mock(), from_number="+15550000")

        assert adapter.send(outbound(NotificationChannel.SMS, None)) == Failed(
            "no phone number for recipient"
        )


# ============================================================================
# Push
# ============================================================================

class TestFirebasePushAdapter:
    """Tests for FirebasePushAdapter."""

    def test_sent(self):
        adapter = FirebasePushAdapter(app=Mock())

        with patch("visa_notifications.channels.push.messaging.send") as send:
            send.return_value = "projects/visa/messages/1"
            message = outbound(NotificationChannel.PUSH, "device-token", action_url="/apps/1")
            result = adapter.send(message)

        assert result == Sent(message_id="projects/visa/messages/1")
        push = send.call_args.args[0]
        assert push.token == "device-token"
        assert push.data["notification_id"] == str(message.notification_id)
        assert push.data["action_url"] == "/apps/1"

    @pytest.mark.parametrize(
        "error",
        [
            firebase_exceptions.UnavailableError("FCM unavailable"),
            ValueError("invalid registration token"),
        ],
    )
    def test_failed(self, error):
        adapter = FirebasePushAdapter(app=Mock())

        with patch("visa_notifications.channels.push.messaging.send", side_effect=error):
            result = adapter.send(outbound(NotificationChannel.PUSH, "device-token"))

        assert isinstance(result, Failed)
        assert result.reason.startswith("fcm error: ")

    def test_no_device_token(self):
        adapter = FirebasePushAdapter(app=Mock())

        assert adapter.send(outbound(NotificationChannel.PUSH, None)) == Failed(
            "no device token for recipient"
        )


# ============================================================================
# Registry
# ============================================================================

class TestAdapterRegistry:
    def test_default_registry_covers_every_channel(self):
        import visa_notifications.channels.registry as registry_module

        registry_module._registry_instance = None
        try:
            registry = get_adapter_registry()

            assert set(registry.channels) == set(NotificationChannel)
            assert get_adapter_registry() is registry
            assert isinstance(registry.get(NotificationChannel.EMAIL), SendGridEmailAdapter)
        finally:
            registry_module._registry_instance = None
