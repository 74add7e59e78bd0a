"""Tests for the notification HTTP API."""

from unittest.mock import patch
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session

from visa_notifications.api.deps import get_db_session
from visa_notifications.main import app
from visa_notifications.models.notification import (
    Notification,
    NotificationChannel,
    NotificationType,
)
from visa_notifications.services.store import get_notification_store

SECRET = "test-secret"
WEBHOOK_TOKEN = "hook-token"


def bearer(user_id: UUID, role: str = "user") -> dict[str, str]:
    token = jwt.encode({"sub": str(user_id), "role": role}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_session: Session):
    def override_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_session
    with patch("visa_notifications.api.deps.get_settings") as mock_settings:
        mock_settings.return_value.AUTH_SECRET = SECRET
        mock_settings.return_value.JWT_ALGORITHM = "HS256"
        mock_settings.return_value.DELIVERY_WEBHOOK_TOKEN = WEBHOOK_TOKEN
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def trigger():
    with patch("visa_notifications.api.notifications.trigger_delivery") as mock_trigger:
        yield mock_trigger


@pytest.fixture
def notification(db_session: Session, user_id) -> Notification:
    return get_notification_store().create(
        db_session,
        user_id=user_id,
        type=NotificationType.ADDITIONAL_DOCS_REQUIRED,
        title="Additional documents required",
        message="Please upload a bank statement.",
        channels={"in_app": True, "email": True},
        recipients={"email": "applicant@example.com"},
    )


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/api/notifications")
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client):
        response = client.get(
            "/api/notifications", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestCreate:
    """Tests for POST /api/notifications."""

    def payload(self, **overrides):
        data = {
            "user_id": str(uuid4()),
            "type": "payment_received",
            "title": "Payment received",
            "message": "We received your visa fee payment.",
            "channels": {"in_app": True, "email": True},
            "recipients": {"email": "applicant@example.com"},
            "meta": {"action_url": "/payments/1", "category": "payment"},
        }
        data.update(overrides)
        return data

    def test_admin_creates_and_triggers_delivery(self, client, trigger):
        admin_id = uuid4()

        response = client.post(
            "/api/notifications", json=self.payload(), headers=bearer(admin_id, "admin")
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["channels"] == {"in_app": True, "email": True, "sms": False, "push": False}
        assert body["meta"]["action_url"] == "/payments/1"
        assert body["delivery_summary"] == []
        assert body["time_ago"] == "Just now"
        assert body["is_expired"] is False
        trigger.assert_called_once_with(UUID(body["id"]))

    def test_scheduled_notification_is_not_triggered(self, client, trigger):
        response = client.post(
            "/api/notifications",
            json=self.payload(scheduled_for="2999-01-01T09:00:00"),
            headers=bearer(uuid4(), "admin"),
        )

        assert response.status_code == 201
        trigger.assert_not_called()

    def test_requires_admin(self, client, trigger):
        response = client.post("/api/notifications", json=self.payload(), headers=bearer(uuid4()))

        assert response.status_code == 403

    def test_no_channel_is_rejected(self, client, trigger):
        response = client.post(
            "/api/notifications",
            json=self.payload(channels={"in_app": False}),
            headers=bearer(uuid4(), "admin"),
        )

        assert response.status_code == 400
        trigger.assert_not_called()

    def test_unknown_type_is_rejected(self, client, trigger):
        response = client.post(
            "/api/notifications",
            json=self.payload(type="visa_stamped"),
            headers=bearer(uuid4(), "admin"),
        )

        assert response.status_code == 422


class TestUserRoutes:
    """Tests for the user's read-side routes."""

    def test_list(self, client, notification, user_id):
        response = client.get("/api/notifications", headers=bearer(user_id))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["page"] == 1
        assert body["limit"] == 20
        assert body["notifications"][0]["id"] == str(notification.id)
        assert len(body["notifications"][0]["deliveries"]) == 2

    def test_list_is_scoped_to_user(self, client, notification):
        response = client.get("/api/notifications", headers=bearer(uuid4()))

        assert response.json()["total"] == 0

    def test_unread_count(self, client, notification, user_id):
        response = client.get("/api/notifications/unread-count", headers=bearer(user_id))

        assert response.json() == {"unread_count": 1}

    def test_mark_read_and_unread(self, client, notification, user_id):
        read = client.put(f"/api/notifications/{notification.id}/read", headers=bearer(user_id))
        unread = client.put(f"/api/notifications/{notification.id}/unread", headers=bearer(user_id))

        assert read.status_code == 200
        assert read.json()["is_read"] is True
        assert read.json()["read_at"] is not None
        assert unread.json()["is_read"] is False

    def test_mark_read_other_users_notification(self, client, notification):
        response = client.put(f"/api/notifications/{notification.id}/read", headers=bearer(uuid4()))

        assert response.status_code == 404

    def test_read_all(self, client, notification, user_id):
        response = client.put("/api/notifications/read-all", headers=bearer(user_id))

        assert response.json() == {"updated": 1}

    def test_archive_and_unarchive(self, client, notification, user_id):
        archived = client.put(f"/api/notifications/{notification.id}/archive", headers=bearer(user_id))
        listing = client.get("/api/notifications", headers=bearer(user_id))
        restored = client.put(
            f"/api/notifications/{notification.id}/unarchive", headers=bearer(user_id)
        )

        assert archived.json()["archived"] is True
        assert archived.json()["archived_at"] is not None
        assert listing.json()["total"] == 0
        assert restored.json()["archived"] is False

    def test_delete(self, client, notification, user_id):
        response = client.delete(f"/api/notifications/{notification.id}", headers=bearer(user_id))
        again = client.delete(f"/api/notifications/{notification.id}", headers=bearer(user_id))

        assert response.status_code == 204
        assert again.status_code == 404


class TestOperationalRoutes:
    """Tests for retry and delivery confirmation."""

    def mark_failed(self, db_session, notification):
        for delivery in notification.deliveries:
            delivery.failed = True
            delivery.failure_reason = "provider down"
            db_session.add(delivery)
        db_session.commit()

    def test_retry(self, client, db_session, notification):
        self.mark_failed(db_session, notification)

        response = client.post(
            f"/api/notifications/{notification.id}/retry", headers=bearer(uuid4(), "admin")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["retry_count"] == 1
        assert body["status"] == "pending"

    def test_retry_without_failures_spends_nothing(self, client, notification):
        response = client.post(
            f"/api/notifications/{notification.id}/retry", headers=bearer(uuid4(), "admin")
        )

        assert response.status_code == 200
        assert response.json()["retry_count"] == 0

    def test_retry_while_delivering(self, client, db_session, notification):
        get_notification_store().claim(db_session, notification.id)

        response = client.post(
            f"/api/notifications/{notification.id}/retry", headers=bearer(uuid4(), "admin")
        )

        assert response.status_code == 409

    def test_retry_exhausted(self, client, db_session, notification):
        notification.retry_count = notification.max_retries
        db_session.add(notification)
        db_session.commit()

        response = client.post(
            f"/api/notifications/{notification.id}/retry", headers=bearer(uuid4(), "admin")
        )

        assert response.status_code == 409
        assert "Maximum retry attempts reached" in response.json()["detail"]

    def test_retry_unknown(self, client):
        response = client.post(
            f"/api/notifications/{uuid4()}/retry", headers=bearer(uuid4(), "admin")
        )

        assert response.status_code == 404

    def mark_sent(self, db_session, notification, channel, message_id):
        delivery = next(d for d in notification.deliveries if d.channel == channel)
        delivery.sent = True
        delivery.message_id = message_id
        db_session.add(delivery)
        db_session.commit()

    def test_confirm_by_message_id(self, client, db_session, notification):
        self.mark_sent(db_session, notification, NotificationChannel.EMAIL, "sg-1")
        self.mark_sent(db_session, notification, NotificationChannel.IN_APP, "in-app-1")

        response = client.post(
            "/api/notifications/delivery-confirmations",
            json={"message_id": "sg-1"},
            headers={"X-Webhook-Token": WEBHOOK_TOKEN},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["delivery_summary"] == ["email-delivered"]
        assert body["status"] == "sent"

    def test_confirm_by_channel(self, client, db_session, notification):
        self.mark_sent(db_session, notification, NotificationChannel.EMAIL, "sg-2")

        response = client.post(
            "/api/notifications/delivery-confirmations",
            json={"notification_id": str(notification.id), "channel": "email"},
            headers={"X-Webhook-Token": WEBHOOK_TOKEN},
        )

        assert response.status_code == 200

    def test_confirm_unsent_channel(self, client, notification):
        response = client.post(
            "/api/notifications/delivery-confirmations",
            json={"notification_id": str(notification.id), "channel": "email"},
            headers={"X-Webhook-Token": WEBHOOK_TOKEN},
        )

        assert response.status_code == 409

    def test_confirm_unknown_message(self, client):
        response = client.post(
            "/api/notifications/delivery-confirmations",
            json={"message_id": "missing"},
            headers={"X-Webhook-Token": WEBHOOK_TOKEN},
        )

        assert response.status_code == 404

    def test_confirm_requires_identifiers(self, client):
        response = client.post(
            "/api/notifications/delivery-confirmations",
            json={},
            headers={"X-Webhook-Token": WEBHOOK_TOKEN},
        )

        assert response.status_code == 400

    def test_confirm_requires_webhook_token(self, client):
        response = client.post(
            "/api/notifications/delivery-confirmations",
            json={"message_id": "sg-1"},
            headers={"X-Webhook-Token": "wrong"},
        )

        assert response.status_code == 401
