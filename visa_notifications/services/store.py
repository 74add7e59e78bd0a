"""Notification record store.

The store is the single source of truth for notification and per-channel
delivery state. It provides:
1. Creation with validation (nothing is persisted on failure)
2. Fetch and partial update
3. The three queries the rest of the system is built on:
   due_for_delivery(), for_user() and expired_archived()
4. The atomic delivery claim (lease) used by concurrent workers

Thread Safety: All methods are stateless; every call works on the
session it is given.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import or_, update
from sqlmodel import Session, func, select

from visa_notifications.config import get_settings
from visa_notifications.models.notification import (
    PRIORITY_RANK,
    ChannelDelivery,
    ChannelSelection,
    DeliveryStatus,
    Notification,
    NotificationChannel,
    NotificationMetadata,
    NotificationPriority,
    NotificationType,
)
from visa_notifications.services.errors import NotificationValidationError
from visa_notifications.services.status import CHANNEL_FLAGS, enabled_channels

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 200
MESSAGE_MAX_LENGTH = 1000

# Fields callers may change through update(); delivery and read state
# have dedicated transitions.
UPDATABLE_FIELDS = frozenset({
    "title",
    "message",
    "priority",
    "meta",
    "scheduled_for",
    "application_id",
    "max_retries",
})


class NotificationStore:
    """Persistence operations for notifications."""

    # -------------------------------------------------------------------------
    # Create / fetch / update
    # -------------------------------------------------------------------------

    def create(
        self,
        session: Session,
        user_id: UUID,
        type: NotificationType | str | None,
        title: str | None,
        message: str | None,
        channels: ChannelSelection | Mapping[NotificationChannel | str, bool] | None = None,
        priority: NotificationPriority | str = NotificationPriority.NORMAL,
        metadata: NotificationMetadata | Mapping[str, Any] | None = None,
        scheduled_for: datetime | None = None,
        application_id: UUID | None = None,
        created_by: UUID | None = None,
        recipients: Mapping[NotificationChannel | str, str] | None = None,
        max_retries: int | None = None,
    ) -> Notification:
        """Validate and persist a new notification in the pending state.

        Args:
            session: Database session
            user_id: Owning user
            type: Business event type
            title: Title, 1-200 characters
            message: Body, 1-1000 characters
            channels: Enabled channels. A mapping enables only the channels
                it marks True; None means in-app only.
            priority: Dispatch priority
            metadata: Action link, template reference, expiry and tags
            scheduled_for: Earliest dispatch time, None for now
            application_id: Related visa application
            created_by: Actor that produced the notification
            recipients: Address per external channel (email, phone, device token)
            max_retries: Retry budget, at least 1; defaults to WORKER_MAX_RETRIES

        Returns:
            The persisted Notification

        Raises:
            NotificationValidationError: If a required field is missing or invalid
        """
        notification_type = _coerce_enum(NotificationType, type, "type")
        notification_priority = _coerce_enum(NotificationPriority, priority, "priority")
        _validate_text(title, "title", TITLE_MAX_LENGTH)
        _validate_text(message, "message", MESSAGE_MAX_LENGTH)

        selection = _normalize_channels(channels)
        if not any(selection.model_dump().values()):
            raise NotificationValidationError("At least one channel must be enabled")
        meta = _normalize_metadata(metadata)
        scheduled_for = _as_naive_utc(scheduled_for)
        address_book = {
            _coerce_enum(NotificationChannel, channel, "recipients"): address
            for channel, address in (recipients or {}).items()
        }

        if max_retries is None:
            max_retries = get_settings().WORKER_MAX_RETRIES
        if max_retries < 1:
            # Delivery attempts require retry_count < max_retries
            raise NotificationValidationError("max_retries must be at least 1")

        notification = Notification(
            user_id=user_id,
            application_id=application_id,
            created_by=created_by,
            type=notification_type,
            priority=notification_priority,
            priority_rank=PRIORITY_RANK[notification_priority],
            title=title,
            message=message,
            meta=meta.model_dump(mode="json"),
            expires_at=meta.expires_at,
            channel_in_app=selection.in_app,
            channel_email=selection.email,
            channel_sms=selection.sms,
            channel_push=selection.push,
            status=DeliveryStatus.PENDING,
            max_retries=max_retries,
            scheduled_for=scheduled_for,
        )
        notification.deliveries = [
            ChannelDelivery(channel=channel, recipient=address_book.get(channel))
            for channel in enabled_channels(notification)
        ]

        session.add(notification)
        session.commit()
        session.refresh(notification)

        logger.info(
            "Notification created",
            extra={
                "notification_id": str(notification.id),
                "user_id": str(user_id),
                "type": notification_type.value,
                "channels": [c.value for c in enabled_channels(notification)],
            },
        )
        return notification

    def get(self, session: Session, notification_id: UUID) -> Notification | None:
        """Fetch a notification by id."""
        return session.get(Notification, notification_id)

    def get_for_user(
        self, session: Session, user_id: UUID, notification_id: UUID
    ) -> Notification | None:
        """Fetch a notification owned by the user."""
        return session.exec(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        ).first()

    def update(self, session: Session, notification: Notification, **fields: Any) -> Notification:
        """Apply a partial update of caller-editable fields.

        Raises:
            NotificationValidationError: For unknown, protected or invalid fields
        """
        protected = set(fields) - UPDATABLE_FIELDS
        if protected:
            raise NotificationValidationError(
                f"Fields cannot be updated directly: {', '.join(sorted(protected))}"
            )

        if "title" in fields:
            _validate_text(fields["title"], "title", TITLE_MAX_LENGTH)
        if "message" in fields:
            _validate_text(fields["message"], "message", MESSAGE_MAX_LENGTH)
        if "priority" in fields:
            priority = _coerce_enum(NotificationPriority, fields["priority"], "priority")
            fields["priority"] = priority
            notification.priority_rank = PRIORITY_RANK[priority]
        if "meta" in fields:
            meta = _normalize_metadata(fields["meta"])
            fields["meta"] = meta.model_dump(mode="json")
            notification.expires_at = meta.expires_at
        if "scheduled_for" in fields:
            fields["scheduled_for"] = _as_naive_utc(fields["scheduled_for"])
        if "max_retries" in fields:
            if fields["max_retries"] < 1:
                raise NotificationValidationError("max_retries must be at least 1")
            if fields["max_retries"] < notification.retry_count:
                raise NotificationValidationError("max_retries cannot be below retry_count")

        for key, value in fields.items():
            setattr(notification, key, value)

        notification.updated_at = datetime.utcnow()
        session.add(notification)
        session.commit()
        session.refresh(notification)
        return notification

    def delete(self, session: Session, notification: Notification) -> None:
        """Permanently delete a notification and its delivery state."""
        session.delete(notification)
        session.commit()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def due_for_delivery(
        self,
        session: Session,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[Notification]:
        """Fetch notifications that are due for a delivery pass.

        Fetches notifications that are:
        - PENDING
        - Not scheduled for the future
        - Below their retry budget
        - Not archived and not leased by another worker

        Ordered by priority (urgent first), then oldest first.
        """
        now = now or datetime.utcnow()
        query = (
            select(Notification)
            .where(*_due_conditions(now))
            .order_by(Notification.priority_rank.desc(), Notification.created_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(session.exec(query).all())

    def for_user(
        self,
        session: Session,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        type: NotificationType | None = None,
        priority: NotificationPriority | None = None,
        include_archived: bool = False,
        is_read: bool | None = None,
    ) -> tuple[list[Notification], int]:
        """
        Get notifications for a user, newest first.
        Returns (notifications, total_count).
        """
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read == False)  # noqa: E712
        elif is_read is not None:
            conditions.append(Notification.is_read == is_read)
        if type is not None:
            conditions.append(Notification.type == type)
        if priority is not None:
            conditions.append(Notification.priority == priority)
        if not include_archived:
            conditions.append(Notification.archived == False)  # noqa: E712

        page = max(page, 1)
        query = (
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count()).select_from(Notification).where(*conditions)

        notifications = list(session.exec(query).all())
        total = session.exec(count_query).one()
        return notifications, total

    def expired_archived(
        self,
        session: Session,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[Notification]:
        """Fetch archived notifications whose expiry time has passed."""
        now = now or datetime.utcnow()
        query = (
            select(Notification)
            .where(
                Notification.archived == True,  # noqa: E712
                Notification.expires_at != None,  # noqa: E711
                Notification.expires_at < now,
            )
            .order_by(Notification.expires_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(session.exec(query).all())

    def find_delivery_by_message_id(
        self, session: Session, message_id: str
    ) -> ChannelDelivery | None:
        """Look up channel delivery state by the provider's message id."""
        return session.exec(
            select(ChannelDelivery).where(ChannelDelivery.message_id == message_id)
        ).first()

    # -------------------------------------------------------------------------
    # Claim / release
    # -------------------------------------------------------------------------

    def claim(
        self,
        session: Session,
        notification_id: UUID,
        now: datetime | None = None,
        lease_seconds: int | None = None,
    ) -> UUID | None:
        """Atomically claim a due notification for delivery.

        A single conditional UPDATE moves the lease to this caller only if
        the notification is still due and no other worker holds a live lease.

        Returns:
            The claim token, or None if another worker won the claim or the
            notification is no longer due
        """
        now = now or datetime.utcnow()
        if lease_seconds is None:
            lease_seconds = get_settings().DELIVERY_CLAIM_LEASE_SECONDS
        token = uuid4()

        result = session.connection().execute(
            update(Notification)
            .where(Notification.id == notification_id, *_due_conditions(now))
            .values(
                claim_token=token,
                claimed_until=now + timedelta(seconds=lease_seconds),
            )
        )
        session.commit()

        if result.rowcount != 1:
            return None
        return token

    def release(self, session: Session, notification_id: UUID, token: UUID) -> bool:
        """Release a lease if it is still held with the given token.

        Does not commit; callers release inside the transaction that
        persists the delivery outcome.
        """
        result = session.connection().execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.claim_token == token)
            .values(claim_token=None, claimed_until=None)
        )
        return result.rowcount == 1


def _due_conditions(now: datetime) -> list[Any]:
    return [
        Notification.status == DeliveryStatus.PENDING,
        or_(Notification.scheduled_for == None, Notification.scheduled_for <= now),  # noqa: E711
        Notification.retry_count < Notification.max_retries,
        Notification.archived == False,  # noqa: E712
        or_(Notification.claimed_until == None, Notification.claimed_until < now),  # noqa: E711
    ]


def _coerce_enum(enum_cls: type, value: Any, field: str) -> Any:
    if value is None or value == "":
        raise NotificationValidationError(f"Notification {field} is required")
    try:
        return enum_cls(value)
    except ValueError:
        raise NotificationValidationError(f"Invalid notification {field}: {value!r}")


def _validate_text(value: str | None, field: str, max_length: int) -> None:
    if value is None or not value.strip():
        raise NotificationValidationError(f"Notification {field} is required")
    if len(value) > max_length:
        raise NotificationValidationError(
            f"Notification {field} cannot exceed {max_length} characters"
        )


def _normalize_channels(
    channels: ChannelSelection | Mapping[NotificationChannel | str, bool] | None,
) -> ChannelSelection:
    if channels is None:
        return ChannelSelection()
    if isinstance(channels, ChannelSelection):
        return channels

    selection = {channel.value: False for channel in CHANNEL_FLAGS}
    for channel, enabled in channels.items():
        selection[_coerce_enum(NotificationChannel, channel, "channel").value] = bool(enabled)
    return ChannelSelection(**selection)


def _normalize_metadata(
    metadata: NotificationMetadata | Mapping[str, Any] | None,
) -> NotificationMetadata:
    if metadata is None:
        return NotificationMetadata()
    if isinstance(metadata, NotificationMetadata):
        meta = metadata.model_copy()
    else:
        try:
            meta = NotificationMetadata.model_validate(dict(metadata))
        except ValueError as e:
            raise NotificationValidationError(f"Invalid notification metadata: {e}")
    meta.expires_at = _as_naive_utc(meta.expires_at)
    return meta


def _as_naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


_store_instance: NotificationStore | None = None


def get_notification_store() -> NotificationStore:
    """Get or create the store singleton."""
    global _store_instance
    if _store_instance is None:
        _store_instance = NotificationStore()
    return _store_instance
