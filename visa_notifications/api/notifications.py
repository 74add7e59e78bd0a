"""Notification API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from visa_notifications.api.deps import (
    AdminUser,
    CurrentUser,
    DBSession,
    verify_webhook_token,
)
from visa_notifications.models.notification import (
    ChannelDeliveryResponse,
    ChannelSelection,
    DeliveryConfirmation,
    MarkAllReadResponse,
    Notification,
    NotificationCreate,
    NotificationListResponse,
    NotificationPriority,
    NotificationResponse,
    NotificationType,
    UnreadCountResponse,
)
from visa_notifications.services.delivery import (
    confirm_delivery,
    confirm_delivery_by_message_id,
    retry_delivery,
)
from visa_notifications.services.errors import (
    DeliveryStateError,
    NotificationNotFoundError,
    NotificationValidationError,
    RetryExhaustedError,
)
from visa_notifications.services.notifications import (
    archive,
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
from visa_notifications.services.status import delivery_summary, is_expired, time_ago
from visa_notifications.services.store import get_notification_store
from visa_notifications.workers.runner import trigger_delivery

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def to_response(notification: Notification, now: datetime | None = None) -> NotificationResponse:
    """Build the response schema, including derived fields."""
    now = now or datetime.utcnow()
    return NotificationResponse.model_validate(
        notification,
        update={
            "channels": ChannelSelection(
                in_app=notification.channel_in_app,
                email=notification.channel_email,
                sms=notification.channel_sms,
                push=notification.channel_push,
            ),
            "deliveries": [
                ChannelDeliveryResponse.model_validate(d) for d in notification.deliveries
            ],
            "delivery_summary": delivery_summary(notification.deliveries),
            "time_ago": time_ago(notification.created_at, now),
            "is_expired": is_expired(notification, now),
        },
    )


def _get_owned_or_404(
    session: DBSession, user_id: UUID, notification_id: UUID
) -> Notification:
    notification = get_user_notification(session, user_id, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return notification


@router.get("", response_model=NotificationListResponse)
def list_notifications_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1, description="Page number"),
    limit: int = Query(default=20, ge=1, le=100, description="Notifications per page"),
    unread_only: bool = Query(default=False, description="Only unread notifications"),
    type: NotificationType | None = Query(default=None, description="Filter by type"),
    priority: NotificationPriority | None = Query(default=None, description="Filter by priority"),
    include_archived: bool = Query(default=False, description="Include archived notifications"),
) -> NotificationListResponse:
    """List the authenticated user's notifications, newest first."""
    notifications, total = list_for_user(
        session,
        current_user.id,
        page=page,
        limit=limit,
        unread_only=unread_only,
        type=type,
        priority=priority,
        include_archived=include_archived,
    )
    now = datetime.utcnow()
    return NotificationListResponse(
        notifications=[to_response(n, now) for n in notifications],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count_endpoint(session: DBSession, current_user: CurrentUser) -> UnreadCountResponse:
    """Count unread notifications for the badge."""
    return UnreadCountResponse(unread_count=unread_count(session, current_user.id))


@router.put("/read-all", response_model=MarkAllReadResponse)
def mark_all_read_endpoint(session: DBSession, current_user: CurrentUser) -> MarkAllReadResponse:
    """Mark all of the user's notifications as read."""
    updated = mark_all_read(session, current_user.id, actor_id=current_user.id)
    return MarkAllReadResponse(updated=updated)


@router.post(
    "/delivery-confirmations",
    response_model=NotificationResponse,
    dependencies=[Depends(verify_webhook_token)],
)
def confirm_delivery_endpoint(
    session: DBSession,
    confirmation: DeliveryConfirmation,
) -> NotificationResponse:
    """Record a provider's delivery confirmation for a sent channel."""
    try:
        if confirmation.message_id:
            notification = confirm_delivery_by_message_id(session, confirmation.message_id)
        elif confirmation.notification_id and confirmation.channel:
            notification = confirm_delivery(
                session, confirmation.notification_id, confirmation.channel
            )
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Either message_id or notification_id and channel are required",
            )
    except NotificationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DeliveryStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return to_response(notification)


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
def create_notification_endpoint(
    session: DBSession,
    admin_user: AdminUser,
    data: NotificationCreate,
    background_tasks: BackgroundTasks,
) -> NotificationResponse:
    """Create a notification; delivery starts right away when it is due."""
    try:
        notification = create_notification(
            session,
            user_id=data.user_id,
            type=data.type,
            title=data.title,
            message=data.message,
            channels=data.channels,
            priority=data.priority,
            metadata=data.meta,
            scheduled_for=data.scheduled_for,
            application_id=data.application_id,
            created_by=admin_user.id,
            recipients=data.recipients,
            max_retries=data.max_retries,
        )
    except NotificationValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if is_due_now(notification):
        background_tasks.add_task(trigger_delivery, notification.id)
    return to_response(notification)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_read_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_id: UUID,
) -> NotificationResponse:
    """Mark a notification as read."""
    notification = _get_owned_or_404(session, current_user.id, notification_id)
    return to_response(mark_read(session, notification, actor_id=current_user.id))


@router.put("/{notification_id}/unread", response_model=NotificationResponse)
def mark_unread_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_id: UUID,
) -> NotificationResponse:
    """Mark a notification as unread."""
    notification = _get_owned_or_404(session, current_user.id, notification_id)
    return to_response(mark_unread(session, notification))


@router.put("/{notification_id}/archive", response_model=NotificationResponse)
def archive_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_id: UUID,
) -> NotificationResponse:
    """Archive a notification."""
    notification = _get_owned_or_404(session, current_user.id, notification_id)
    return to_response(archive(session, notification))


@router.put("/{notification_id}/unarchive", response_model=NotificationResponse)
def unarchive_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_id: UUID,
) -> NotificationResponse:
    """Restore an archived notification."""
    notification = _get_owned_or_404(session, current_user.id, notification_id)
    return to_response(unarchive(session, notification))


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification_endpoint(
    session: DBSession,
    current_user: CurrentUser,
    notification_id: UUID,
) -> None:
    """Delete a notification."""
    notification = _get_owned_or_404(session, current_user.id, notification_id)
    delete_notification(session, notification)


@router.post("/{notification_id}/retry", response_model=NotificationResponse)
def retry_notification_endpoint(
    session: DBSession,
    admin_user: AdminUser,
    notification_id: UUID,
) -> NotificationResponse:
    """Re-queue a notification for delivery."""
    notification = get_notification_store().get(session, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    try:
        notification = retry_delivery(session, notification)
    except (RetryExhaustedError, DeliveryStateError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return to_response(notification)
