"""Email channel adapter backed by SendGrid."""

import json
import logging
from html import escape
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

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

BUTTON_STYLE = (
    "background-color: #007bff; color: white; padding: 12px 30px; "
    "text-decoration: none; border-radius: 5px; display: inline-block;"
)


def _extract_sendgrid_error_details(body: Any) -> str | None:
    """Return a human readable description for a SendGrid error payload."""

    if body in (None, ""):
        return None

    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if isinstance(body, str):
        body = body.strip()
        if not body:
            return None
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            return body
    else:
        parsed = body

    if isinstance(parsed, dict):
        errors = parsed.get("errors")
        if isinstance(errors, list):
            messages = [
                str(item["message"])
                for item in errors
                if isinstance(item, dict) and item.get("message")
            ]
            if messages:
                return "; ".join(messages)
        try:
            return json.dumps(parsed)
        except (TypeError, ValueError):
            return None

    return str(parsed)


def render_email_html(message: OutboundMessage, company_name: str, frontend_url: str) -> str:
    """Render the portal's notification email."""
    parts = [
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">',
        f"<h2>{escape(message.title)}</h2>",
        f"<p>{escape(message.message)}</p>",
    ]
    if message.action_url:
        url = message.action_url
        if url.startswith("/"):
            url = frontend_url.rstrip("/") + url
        parts.append(
            '<div style="text-align: center; margin: 30px 0;">'
            f'<a href="{escape(url, quote=True)}" style="{BUTTON_STYLE}">'
            f"{escape(message.action_text or 'View Details')}</a></div>"
        )
    parts.append(f"<p>Best regards,<br>{escape(company_name)} Team</p>")
    parts.append("</div>")
    return "".join(parts)


class SendGridEmailAdapter(ChannelAdapter):
    """Adapter that sends notification emails through SendGrid."""

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        client: SendGridAPIClient | None = None,
        sender: str | None = None,
    ) -> None:
        settings = get_settings()
        self.sender = sender or settings.SENDGRID_SENDER
        self.company_name = settings.COMPANY_NAME
        self.frontend_url = settings.FRONTEND_URL
        self._api_key = settings.SENDGRID_API_KEY
        self._client = client

    @property
    def client(self) -> SendGridAPIClient | None:
        """Lazy-initialize the SendGrid client."""
        if self._client is None and self._api_key:
            self._client = SendGridAPIClient(self._api_key)
        return self._client

    def send(self, message: OutboundMessage) -> DeliveryResult:
        if not message.recipient:
            return Failed("no email address for recipient")
        if not (self.client and self.sender):
            logger.info("SendGrid configuration incomplete; skipping email delivery")
            return Failed("email provider not configured")

        mail = Mail(
            from_email=self.sender,
            to_emails=message.recipient,
            subject=message.title,
            html_content=render_email_html(message, self.company_name, self.frontend_url),
        )

        try:
            response = self.client.send(mail)
        except Exception as exc:
            status_code = getattr(exc, "status_code", None)
            details = _extract_sendgrid_error_details(getattr(exc, "body", None))
            logger.error(
                "SendGrid API request failed",
                extra={
                    "notification_id": str(message.notification_id),
                    "status_code": status_code,
                    "error": details or str(exc),
                },
            )
            if status_code:
                return Failed(f"sendgrid error {status_code}: {details or exc}")
            return Failed(f"sendgrid error: {details or exc}")

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int) or not 200 <= status_code < 300:
            details = _extract_sendgrid_error_details(getattr(response, "body", None))
            logger.error(
                "SendGrid API responded with an error",
                extra={
                    "notification_id": str(message.notification_id),
                    "status_code": status_code,
                    "error": details,
                },
            )
            return Failed(f"sendgrid responded {status_code}: {details or 'no details'}")

        headers = getattr(response, "headers", None) or {}
        message_id = headers.get("X-Message-Id") or f"sendgrid_{message.notification_id.hex}"
        return Sent(message_id=message_id)
