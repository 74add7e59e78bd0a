"""Notification entity models for visa portal status notifications."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session as SASession
from sqlmodel import Field, Relationship, SQLModel


class NotificationChannel(str, Enum):
    """Notification delivery channels."""
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationType(str, Enum):
    """Business events a user can be notified about."""

    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_RECEIVED = "application_received"
    UNDER_REVIEW = "under_review"
    ADDITIONAL_DOCS_REQUIRED = "additional_docs_required"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_REMINDER = "interview_reminder"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    DOCUMENT_VERIFIED = "document_verified"
    DOCUMENT_REJECTED = "document_rejected"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    SYSTEM_MAINTENANCE = "system_maintenance"
    ACCOUNT_LOCKED = "account_locked"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFIED = "email_verified"
    GENERAL_ANNOUNCEMENT = "general_announcement"
    REMINDER = "reminder"
    OTHER = "other"


class NotificationPriority(str, Enum):
    """Notification priority levels."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# Higher rank is dispatched first
PRIORITY_RANK: dict[NotificationPriority, int] = {
    NotificationPriority.LOW: 0,
    NotificationPriority.NORMAL: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.URGENT: 3,
}


class DeliveryStatus(str, Enum):
    """Aggregate delivery status across all enabled channels.

    Derived from per-channel state, never assigned by callers.
    """

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Notification(SQLModel, table=True):
    """Notification database model.

    One row per user-facing event. Per-channel delivery state lives in
    ChannelDelivery rows, one per enabled channel.
    """

    __tablename__ = "notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    application_id: UUID | None = Field(default=None, index=True)
    created_by: UUID | None = Field(default=None)

    type: NotificationType = Field(index=True)
    priority: NotificationPriority = Field(default=NotificationPriority.NORMAL, index=True)
    priority_rank: int = Field(default=PRIORITY_RANK[NotificationPriority.NORMAL])
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)
    meta: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSONType, nullable=False)
    )
    expires_at: datetime | None = Field(default=None, index=True)

    channel_in_app: bool = Field(default=True)
    channel_email: bool = Field(default=False)
    channel_sms: bool = Field(default=False)
    channel_push: bool = Field(default=False)

    status: DeliveryStatus = Field(default=DeliveryStatus.PENDING, index=True)

    is_read: bool = Field(default=False, index=True)
    read_at: datetime | None = Field(default=None)
    read_by: UUID | None = Field(default=None)

    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    last_retry_at: datetime | None = Field(default=None)

    archived: bool = Field(default=False, index=True)
    archived_at: datetime | None = Field(default=None)

    scheduled_for: datetime | None = Field(default=None, index=True)

    # Delivery lease held by one worker at a time
    claim_token: UUID | None = Field(default=None)
    claimed_until: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    deliveries: list["ChannelDelivery"] = Relationship(
        back_populates="notification",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "lazy": "selectin",
        },
    )


class ChannelDelivery(SQLModel, table=True):
    """Delivery state of one enabled channel of a notification."""

    __tablename__ = "notification_channel_deliveries"
    __table_args__ = (UniqueConstraint("notification_id", "channel"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    notification_id: UUID = Field(foreign_key="notifications.id", index=True)
    channel: NotificationChannel
    recipient: str | None = Field(default=None, max_length=255)

    sent: bool = Field(default=False)
    sent_at: datetime | None = Field(default=None)
    delivered: bool = Field(default=False)
    delivered_at: datetime | None = Field(default=None)
    failed: bool = Field(default=False)
    failure_reason: str | None = Field(default=None, max_length=500)
    message_id: str | None = Field(default=None, max_length=255, index=True)
    attempts: int = Field(default=0)

    notification: Notification = Relationship(back_populates="deliveries")


@event.listens_for(SASession, "before_flush")
def _enforce_notification_invariants(session, flush_context, instances) -> None:
    """Keep read and archive state consistent on every write."""
    now = datetime.utcnow()
    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, Notification):
            continue
        if obj.read_at is not None and not obj.is_read:
            obj.is_read = True
        if obj.archived and obj.archived_at is None:
            obj.archived_at = now
        if obj in session.dirty:
            obj.updated_at = now


# -----------------------------------------------------------------------------
# API schemas
# -----------------------------------------------------------------------------


class NotificationMetadata(SQLModel):
    """Optional presentation and lifecycle metadata."""

    action_url: str | None = None
    action_text: str | None = None
    expires_at: datetime | None = None
    template_id: str | None = None
    template_data: dict[str, Any] | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)


class ChannelSelection(SQLModel):
    """Which channels a notification is delivered on."""

    in_app: bool = True
    email: bool = False
    sms: bool = False
    push: bool = False


class NotificationCreate(SQLModel):
    """Schema for notification creation by producers."""

    user_id: UUID
    type: NotificationType
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: ChannelSelection = Field(default_factory=ChannelSelection)
    recipients: dict[NotificationChannel, str] = Field(default_factory=dict)
    meta: NotificationMetadata = Field(default_factory=NotificationMetadata)
    application_id: UUID | None = None
    scheduled_for: datetime | None = None
    max_retries: int | None = Field(default=None, ge=1)


class ChannelDeliveryResponse(SQLModel):
    """Schema for per-channel delivery state."""

    channel: NotificationChannel
    sent: bool
    sent_at: datetime | None
    delivered: bool
    delivered_at: datetime | None
    failed: bool
    failure_reason: str | None
    message_id: str | None

    model_config = {"from_attributes": True}


class NotificationResponse(SQLModel):
    """Schema for notification response."""

    id: UUID
    user_id: UUID
    application_id: UUID | None
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    meta: dict[str, Any]
    channels: ChannelSelection
    deliveries: list[ChannelDeliveryResponse]
    status: DeliveryStatus
    is_read: bool
    read_at: datetime | None
    archived: bool
    archived_at: datetime | None
    scheduled_for: datetime | None
    retry_count: int
    max_retries: int
    last_retry_at: datetime | None
    created_at: datetime
    updated_at: datetime
    # Derived on read
    delivery_summary: list[str]
    time_ago: str
    is_expired: bool


class NotificationListResponse(SQLModel):
    """Schema for notification list response."""

    notifications: list[NotificationResponse]
    total: int
    page: int
    limit: int


class UnreadCountResponse(SQLModel):
    """Schema for unread count response."""

    unread_count: int


class MarkAllReadResponse(SQLModel):
    """Schema for bulk mark-as-read response."""

    updated: int


class DeliveryConfirmation(SQLModel):
    """Provider webhook payload confirming delivery of a sent message."""

    message_id: str | None = None
    notification_id: UUID | None = None
    channel: NotificationChannel | None = None
