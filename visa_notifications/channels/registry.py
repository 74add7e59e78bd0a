"""Channel adapter registry."""

import logging

from visa_notifications.channels.base import ChannelAdapter
from visa_notifications.models.notification import NotificationChannel

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Maps each channel to the adapter that sends on it."""

    def __init__(self, adapters: list[ChannelAdapter] | None = None) -> None:
        self._adapters: dict[NotificationChannel, ChannelAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ChannelAdapter) -> None:
        """Register an adapter, replacing any previous one for its channel."""
        self._adapters[adapter.channel] = adapter
        logger.debug(f"Registered {adapter.__class__.__name__} for {adapter.channel.value}")

    def get(self, channel: NotificationChannel) -> ChannelAdapter | None:
        """Return the adapter for a channel, or None if none is registered."""
        return self._adapters.get(channel)

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._adapters)


_registry_instance: AdapterRegistry | None = None


def get_adapter_registry() -> AdapterRegistry:
    """Get or create the default registry with all provider adapters."""
    global _registry_instance
    if _registry_instance is None:
        from visa_notifications.channels.email import SendGridEmailAdapter
        from visa_notifications.channels.in_app import InAppAdapter
        from visa_notifications.channels.push import FirebasePushAdapter
        from visa_notifications.channels.sms import TwilioSmsAdapter

        _registry_instance = AdapterRegistry([
            InAppAdapter(),
            SendGridEmailAdapter(),
            TwilioSmsAdapter(),
            FirebasePushAdapter(),
        ])
    return _registry_instance
