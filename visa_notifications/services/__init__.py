"""Services module for notification delivery.

Services:
- store.py: Notification record store, due/user/expiry queries and claims
- delivery.py: Per-channel state transitions, retry and delivery confirmation
- notifications.py: Producer entry point and read-side operations
- status.py: Pure derivations (aggregate status, delivery summary, time ago)
- errors.py: Service errors
"""

from visa_notifications.services.delivery import (
    confirm_delivery,
    confirm_delivery_by_message_id,
    retry_delivery,
)
from visa_notifications.services.errors import (
    DeliveryStateError,
    NotificationError,
    NotificationNotFoundError,
    NotificationValidationError,
    RetryExhaustedError,
)
from visa_notifications.services.notifications import (
    archive,
    cleanup_expired,
    create_notification,
    delete_notification,
    get_user_notification,
    is_due_now,
    list_for_user,
    mark_all_read,
    mark_read,
    mark_unread,
    unarchive,
    unread_count,
)
from visa_notifications.services.store import NotificationStore, get_notification_store

__all__ = [
    # Store
    "NotificationStore",
    "get_notification_store",
    # Producer / read side
    "create_notification",
    "is_due_now",
    "get_user_notification",
    "delete_notification",
    "list_for_user",
    "unread_count",
    "mark_read",
    "mark_unread",
    "mark_all_read",
    "archive",
    "unarchive",
    "cleanup_expired",
    # Delivery state
    "retry_delivery",
    "confirm_delivery",
    "confirm_delivery_by_message_id",
    # Errors
    "NotificationError",
    "NotificationValidationError",
    "NotificationNotFoundError",
    "RetryExhaustedError",
    "DeliveryStateError",
]
