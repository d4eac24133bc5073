"""
Integration tests for the WhatsApp webhook service.
"""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from basecore.settings import Settings
from messaging_whatsapp.persistence.models import RecipientStatus
from messaging_whatsapp.persistence.repo import BlastRepository
from whatsapp_webhook import main as webhook


def _status_payload(message_id, status="delivered"):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA_ID",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"phone_number_id": "PHONE_123"},
                    "statuses": [{
                        "id": message_id,
                        "status": status,
                        "timestamp": "1754647200",
                        "recipient_id": "628123456789",
                    }],
                },
            }],
        }],
    }


@pytest.fixture
def webhook_client(monkeypatch, session_factory):
    def fake_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(webhook, "get_db", fake_get_db)
    return TestClient(webhook.app)


@pytest.fixture
def sent_recipient(db):
    repo = BlastRepository(db)
    campaign = repo.create_campaign(
        name="Reminder",
        template_name="event_details_reminder_duage",
        template_params={},
        recipients=[("628123456789", "Andi")],
    )
    recipient = repo.find_recipient_by_phone(campaign.id, "628123456789")
    repo.mark_sent(recipient, "wamid.abc123")
    db.commit()
    return recipient


class TestVerification:
    """Tests for the subscription handshake."""

    def test_challenge_echoed(self, webhook_client):
        response = webhook_client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "anything", "hub.challenge": "12345"},
        )
        assert response.status_code == 200
        assert response.text == "12345"

    def test_wrong_mode(self, webhook_client):
        response = webhook_client.get(
            "/webhook",
            params={"hub.mode": "unsubscribe", "hub.verify_token": "x", "hub.challenge": "12345"},
        )
        assert response.status_code == 403


class TestStatusDelivery:
    """Tests for delivery status webhooks."""

    def test_status_applied(self, webhook_client, sent_recipient, db):
        response = webhook_client.post("/webhook", json=_status_payload("wamid.abc123"))

        assert response.status_code == 200
        assert response.json() == {"success": True, "statuses": 1, "updated": 1, "messages": 0}
        db.refresh(sent_recipient)
        assert sent_recipient.status == RecipientStatus.DELIVERED.value
        assert sent_recipient.delivered_at is not None

    def test_unknown_message_id(self, webhook_client):
        response = webhook_client.post("/webhook", json=_status_payload("wamid.unknown"))
        assert response.json()["updated"] == 0

    def test_flat_status_shortcut(self, webhook_client, sent_recipient, db):
        response = webhook_client.post("/webhook", json={"message_id": "wamid.abc123", "status": "read"})

        assert response.json()["updated"] == 1
        db.refresh(sent_recipient)
        assert sent_recipient.status == RecipientStatus.READ.value

    def test_invalid_json(self, webhook_client):
        response = webhook_client.post(
            "/webhook",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestSignature:
    """Tests for X-Hub-Signature-256 checks when an app secret is set."""

    SECRET = "app-secret"

    @pytest.fixture(autouse=True)
    def app_secret(self, monkeypatch):
        settings = Settings(WHATSAPP_APP_SECRET=self.SECRET)
        monkeypatch.setattr(webhook, "get_settings", lambda: settings)

    def _sign(self, body):
        digest = hmac.new(self.SECRET.encode(), body, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    def test_valid_signature(self, webhook_client, sent_recipient):
        body = json.dumps(_status_payload("wamid.abc123")).encode()

        response = webhook_client.post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": self._sign(body)},
        )

        assert response.status_code == 200
        assert response.json()["updated"] == 1

    def test_bad_signature(self, webhook_client):
        body = json.dumps(_status_payload("wamid.abc123")).encode()

        response = webhook_client.post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=deadbeef"},
        )

        assert response.status_code == 403

    def test_missing_signature(self, webhook_client):
        response = webhook_client.post("/webhook", json=_status_payload("wamid.abc123"))
        assert response.status_code == 403
