"""Errors raised by the notification services."""


class NotificationError(Exception):
    """Base class for notification service errors."""


class NotificationValidationError(NotificationError):
    """Raised when a notification is rejected at creation time."""


class NotificationNotFoundError(NotificationError):
    """Raised when a notification does not exist or is not visible to the caller."""


class RetryExhaustedError(NotificationError):
    """Raised when a retry is requested after max_retries attempts."""


class DeliveryStateError(NotificationError):
    """Raised when a channel state transition is not allowed."""
