"""Notification schema - notifications and per-channel delivery state.

Revision ID: 001
Revises: None
Create Date: 2026-10-18

This migration adds:
- notifications table with read, archive, retry and claim (lease) state
- notification_channel_deliveries table, one row per enabled channel
- Enum types; SQLModel stores enum member names
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE notificationchannel AS ENUM ('IN_APP', 'EMAIL', 'SMS', 'PUSH')")
    op.execute("CREATE TYPE notificationpriority AS ENUM ('LOW', 'NORMAL', 'HIGH', 'URGENT')")
    op.execute("CREATE TYPE deliverystatus AS ENUM ('PENDING', 'SENT', 'DELIVERED', 'FAILED')")
    op.execute("""
        CREATE TYPE notificationtype AS ENUM (
            'APPLICATION_SUBMITTED', 'APPLICATION_RECEIVED', 'UNDER_REVIEW',
            'ADDITIONAL_DOCS_REQUIRED', 'INTERVIEW_SCHEDULED', 'INTERVIEW_REMINDER',
            'APPLICATION_APPROVED', 'APPLICATION_REJECTED', 'DOCUMENT_VERIFIED',
            'DOCUMENT_REJECTED', 'PAYMENT_RECEIVED', 'PAYMENT_FAILED',
            'SYSTEM_MAINTENANCE', 'ACCOUNT_LOCKED', 'PASSWORD_RESET',
            'EMAIL_VERIFIED', 'GENERAL_ANNOUNCEMENT', 'REMINDER', 'OTHER'
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL,
            application_id UUID,
            created_by UUID,
            type notificationtype NOT NULL,
            priority notificationpriority NOT NULL DEFAULT 'NORMAL',
            priority_rank INTEGER NOT NULL DEFAULT 1,
            title VARCHAR(200) NOT NULL,
            message VARCHAR(1000) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            expires_at TIMESTAMP,
            channel_in_app BOOLEAN NOT NULL DEFAULT TRUE,
            channel_email BOOLEAN NOT NULL DEFAULT FALSE,
            channel_sms BOOLEAN NOT NULL DEFAULT FALSE,
            channel_push BOOLEAN NOT NULL DEFAULT FALSE,
            status deliverystatus NOT NULL DEFAULT 'PENDING',
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            read_at TIMESTAMP,
            read_by UUID,
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_retry_at TIMESTAMP,
            archived BOOLEAN NOT NULL DEFAULT FALSE,
            archived_at TIMESTAMP,
            scheduled_for TIMESTAMP,
            claim_token UUID,
            claimed_until TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS ix_notifications_user_id ON notifications(user_id);
        CREATE INDEX IF NOT EXISTS ix_notifications_application_id ON notifications(application_id);
        CREATE INDEX IF NOT EXISTS ix_notifications_type ON notifications(type);
        CREATE INDEX IF NOT EXISTS ix_notifications_priority ON notifications(priority);
        CREATE INDEX IF NOT EXISTS ix_notifications_expires_at ON notifications(expires_at);
        CREATE INDEX IF NOT EXISTS ix_notifications_status ON notifications(status);
        CREATE INDEX IF NOT EXISTS ix_notifications_is_read ON notifications(is_read);
        CREATE INDEX IF NOT EXISTS ix_notifications_archived ON notifications(archived);
        CREATE INDEX IF NOT EXISTS ix_notifications_scheduled_for ON notifications(scheduled_for);
        CREATE INDEX IF NOT EXISTS ix_notifications_created_at ON notifications(created_at);
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_channel_deliveries (
            id UUID PRIMARY KEY,
            notification_id UUID NOT NULL REFERENCES notifications(id) ON DELETE CASCADE,
            channel notificationchannel NOT NULL,
            recipient VARCHAR(255),
            sent BOOLEAN NOT NULL DEFAULT FALSE,
            sent_at TIMESTAMP,
            delivered BOOLEAN NOT NULL DEFAULT FALSE,
            delivered_at TIMESTAMP,
            failed BOOLEAN NOT NULL DEFAULT FALSE,
            failure_reason VARCHAR(500),
            message_id VARCHAR(255),
            attempts INTEGER NOT NULL DEFAULT 0,
            UNIQUE (notification_id, channel)
        );
        CREATE INDEX IF NOT EXISTS ix_notification_channel_deliveries_notification_id
            ON notification_channel_deliveries(notification_id);
        CREATE INDEX IF NOT EXISTS ix_notification_channel_deliveries_message_id
            ON notification_channel_deliveries(message_id);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_channel_deliveries CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")

    op.execute("DROP TYPE IF EXISTS notificationtype")
    op.execute("DROP TYPE IF EXISTS deliverystatus")
    op.execute("DROP TYPE IF EXISTS notificationpriority")
    op.execute("DROP TYPE IF EXISTS notificationchannel")
