"""Channel delivery adapters.

Adapters:
- in_app.py: always succeeds, the record is the delivery
- email.py: SendGrid
- sms.py: Twilio
- push.py: Firebase Cloud Messaging
"""

from visa_notifications.channels.base import (
    ChannelAdapter,
    DeliveryResult,
    Failed,
    OutboundMessage,
    Sent,
)
from visa_notifications.channels.registry import AdapterRegistry, get_adapter_registry

__all__ = [
    "ChannelAdapter",
    "DeliveryResult",
    "Failed",
    "OutboundMessage",
    "Sent",
    "AdapterRegistry",
    "get_adapter_registry",
]
