"""Notification service for producers and the read side.

Producers (application workflow, document review, payments) call
create_notification(). The UI layer reads and updates read/archive
state through the remaining functions.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, func, select

from visa_notifications.models.notification import (
    Notification,
    NotificationPriority,
    NotificationType,
)
from visa_notifications.services.store import get_notification_store

logger = logging.getLogger(__name__)


def create_notification(
    session: Session,
    user_id: UUID,
    type: NotificationType | str,
    title: str,
    message: str,
    channels: Any = None,
    priority: NotificationPriority | str = NotificationPriority.NORMAL,
    metadata: Any = None,
    scheduled_for: datetime | None = None,
    **kwargs: Any,
) -> Notification:
    """Create a pending notification; see NotificationStore.create()."""
    return get_notification_store().create(
        session,
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        channels=channels,
        priority=priority,
        metadata=metadata,
        scheduled_for=scheduled_for,
        **kwargs,
    )


def is_due_now(notification: Notification, now: datetime | None = None) -> bool:
    """Check whether a notification may be dispatched immediately."""
    return notification.scheduled_for is None or notification.scheduled_for <= (
        now or datetime.utcnow()
    )


def list_for_user(
    session: Session,
    user_id: UUID,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    type: NotificationType | None = None,
    priority: NotificationPriority | None = None,
    include_archived: bool = False,
) -> tuple[list[Notification], int]:
    """
    Get a page of the user's notifications, newest first.
    Returns (notifications, total_count).
    """
    return get_notification_store().for_user(
        session,
        user_id,
        page=page,
        limit=limit,
        unread_only=unread_only,
        type=type,
        priority=priority,
        include_archived=include_archived,
    )


def get_user_notification(
    session: Session, user_id: UUID, notification_id: UUID
) -> Notification | None:
    """Get a specific notification owned by the user."""
    return get_notification_store().get_for_user(session, user_id, notification_id)


def unread_count(session: Session, user_id: UUID) -> int:
    """Count the user's unread, non-archived notifications."""
    return session.exec(
        select(func.count())
        .select_from(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
            Notification.archived == False,  # noqa: E712
        )
    ).one()


def mark_read(
    session: Session, notification: Notification, actor_id: UUID | None = None
) -> Notification:
    """Mark a notification as read.

    Idempotent: the first read_at is kept. A supplied actor still
    replaces read_by on an already-read notification.
    """
    changed = False
    if not notification.is_read or notification.read_at is None:
        notification.is_read = True
        notification.read_at = notification.read_at or datetime.utcnow()
        changed = True
    if actor_id is not None and notification.read_by != actor_id:
        notification.read_by = actor_id
        changed = True

    if changed:
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


def mark_unread(session: Session, notification: Notification) -> Notification:
    """Mark a notification as unread, clearing read_at and read_by."""
    notification.is_read = False
    notification.read_at = None
    notification.read_by = None
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def mark_all_read(session: Session, user_id: UUID, actor_id: UUID | None = None) -> int:
    """Mark every unread notification of the user as read.

    Returns:
        Number of notifications updated
    """
    now = datetime.utcnow()
    values: dict[str, Any] = {"is_read": True, "read_at": now, "updated_at": now}
    if actor_id is not None:
        values["read_by"] = actor_id

    result = session.connection().execute(
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
        .values(**values)
    )
    session.commit()

    logger.info(
        "Marked all notifications as read",
        extra={"user_id": str(user_id), "updated": result.rowcount},
    )
    return result.rowcount


def archive(session: Session, notification: Notification) -> Notification:
    """Archive a notification; archived_at is only set the first time."""
    if notification.archived:
        return notification
    notification.archived = True
    notification.archived_at = datetime.utcnow()
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def unarchive(session: Session, notification: Notification) -> Notification:
    """Restore an archived notification."""
    notification.archived = False
    notification.archived_at = None
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def delete_notification(session: Session, notification: Notification) -> None:
    """Delete a notification.

    Deleting before a worker claims it cancels delivery.
    """
    get_notification_store().delete(session, notification)


def cleanup_expired(session: Session, now: datetime | None = None) -> int:
    """Permanently delete archived notifications past their expiry time.

    Returns:
        Number of notifications deleted
    """
    expired = get_notification_store().expired_archived(session, now)
    for notification in expired:
        session.delete(notification)
    session.commit()

    if expired:
        logger.info(f"Deleted {len(expired)} expired notifications")
    return len(expired)
