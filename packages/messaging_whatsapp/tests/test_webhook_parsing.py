"""
Tests for webhook payload parsing.
"""

from datetime import datetime, timezone

import pytest

from messaging_whatsapp.providers.base import MessageType
from messaging_whatsapp.providers.meta_cloud import MetaCloudWhatsAppProvider
from messaging_whatsapp.providers.meta_cloud.webhook import (
    is_status_webhook,
    join_errors,
    parse_message,
    parse_meta_webhook,
    parse_timestamp,
)
from messaging_whatsapp.providers.stub import StubWhatsAppProvider


def _webhook(value):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA_123456",
                "changes": [{"value": value, "field": "messages"}],
            }
        ],
    }


METADATA = {
    "display_phone_number": "6281200000000",
    "phone_number_id": "PHONE_123",
}


@pytest.fixture
def meta_text_message_webhook():
    """Sample Meta webhook for a participant replying to a ticket."""
    return _webhook({
        "messaging_product": "whatsapp",
        "metadata": METADATA,
        "contacts": [{"profile": {"name": "Budi Santoso"}, "wa_id": "6281314942011"}],
        "messages": [
            {
                "from": "6281314942011",
                "id": "wamid.HBgM",
                "timestamp": "1704067200",
                "text": {"body": "Terima kasih, sampai jumpa!"},
                "type": "text",
            }
        ],
    })


@pytest.fixture
def meta_button_webhook():
    """Sample Meta webhook for a quick-reply button on a template."""
    return _webhook({
        "messaging_product": "whatsapp",
        "metadata": METADATA,
        "contacts": [{"profile": {"name": "Budi Santoso"}, "wa_id": "6281314942011"}],
        "messages": [
            {
                "from": "6281314942011",
                "id": "wamid.BUTTON",
                "timestamp": "1704067200",
                "type": "button",
                "button": {"text": "Hadir", "payload": "CONFIRM"},
            }
        ],
    })


@pytest.fixture
def meta_status_webhook():
    """Sample Meta webhook with a delivered and a failed status."""
    return _webhook({
        "messaging_product": "whatsapp",
        "metadata": METADATA,
        "statuses": [
            {
                "id": "wamid.SENT1",
                "status": "delivered",
                "timestamp": "1704067260",
                "recipient_id": "6281314942011",
            },
            {
                "id": "wamid.SENT2",
                "status": "failed",
                "timestamp": "1704067320",
                "recipient_id": "6281111111111",
                "errors": [
                    {"code": 131026, "title": "Message undeliverable", "message": "Not on WhatsApp"},
                    {"code": 131000, "title": "Something went wrong", "message": "Retry later"},
                ],
            },
        ],
    })


class TestMetaWebhookParsing:
    """Tests for Meta webhook parsing."""

    def test_parse_text_message(self, meta_text_message_webhook):
        provider = MetaCloudWhatsAppProvider(phone_number_id="PHONE_123", access_token="token")

        messages, statuses = provider.parse_webhook(meta_text_message_webhook)

        assert statuses == []
        assert len(messages) == 1
        msg = messages[0]
        assert msg.message_id == "wamid.HBgM"
        assert msg.from_phone == "6281314942011"
        assert msg.phone_number_id == "PHONE_123"
        assert msg.message_type == MessageType.TEXT
        assert msg.text == "Terima kasih, sampai jumpa!"
        assert msg.contact_name == "Budi Santoso"
        assert msg.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_parse_button_reply(self, meta_button_webhook):
        provider = MetaCloudWhatsAppProvider(phone_number_id="PHONE_123", access_token="token")

        messages, _ = provider.parse_webhook(meta_button_webhook)

        assert messages[0].message_type == MessageType.BUTTON
        assert messages[0].text == "Hadir"

    def test_parse_statuses(self, meta_status_webhook):
        provider = MetaCloudWhatsAppProvider(phone_number_id="PHONE_123", access_token="token")

        messages, statuses = provider.parse_webhook(meta_status_webhook)

        assert messages == []
        delivered, failed = statuses
        assert delivered.message_id == "wamid.SENT1"
        assert delivered.status == "delivered"
        assert delivered.error_message is None
        assert failed.status == "failed"
        assert failed.error_code == "131026"
        assert failed.error_message == (
            "Message undeliverable: Not on WhatsApp; Something went wrong: Retry later"
        )

    def test_unknown_message_type(self):
        payload = _webhook({
            "metadata": METADATA,
            "messages": [{"from": "6281314942011", "id": "wamid.X", "type": "order"}],
        })
        provider = MetaCloudWhatsAppProvider(phone_number_id="PHONE_123", access_token="token")

        messages, _ = provider.parse_webhook(payload)

        assert messages[0].message_type == MessageType.UNKNOWN
        assert messages[0].contact_name is None

    def test_other_objects_ignored(self):
        normalized = parse_meta_webhook({"object": "page", "entry": [{"changes": []}]})
        assert normalized["messages"] == []
        assert normalized["statuses"] == []
        assert normalized["phone_number_id"] is None

    def test_malformed_message_skipped(self, caplog):
        """A message with a bad timestamp is logged and dropped."""
        msg = {"id": "wamid.x", "type": "text", "timestamp": "not-a-number"}

        with caplog.at_level("WARNING"):
            assert parse_message("PHONE_123", msg) is None

        assert caplog.records[-1].raw_message == msg

    def test_other_fields_ignored(self):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"field": "account_update", "value": {"statuses": [{"id": "x"}]}}]}],
        }
        assert parse_meta_webhook(payload)["statuses"] == []


class TestWebhookHelpers:
    """Tests for webhook helper functions."""

    def test_is_status_webhook(self, meta_status_webhook, meta_text_message_webhook):
        assert is_status_webhook(meta_status_webhook) is True
        assert is_status_webhook(meta_text_message_webhook) is False

    def test_normalized_metadata(self, meta_text_message_webhook):
        normalized = parse_meta_webhook(meta_text_message_webhook)
        assert normalized["phone_number_id"] == "PHONE_123"
        assert normalized["display_number"] == "6281200000000"
        assert normalized["messages"][0]["_contact"]["wa_id"] == "6281314942011"

    def test_parse_timestamp(self):
        assert parse_timestamp("1704067200") == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp(None).tzinfo is not None

    def test_join_errors(self):
        assert join_errors([]) is None
        assert join_errors([{"title": "Rate limit hit", "message": "Too many"}]) == (
            "Rate limit hit: Too many"
        )


class TestStubWebhookParsing:
    """Tests for the stub provider's webhook parsing."""

    def test_full_meta_payload(self, meta_status_webhook):
        _, statuses = StubWhatsAppProvider().parse_webhook(meta_status_webhook)
        assert [s.message_id for s in statuses] == ["wamid.SENT1", "wamid.SENT2"]

    def test_flat_status_shortcut(self):
        messages, statuses = StubWhatsAppProvider().parse_webhook(
            {"message_id": "wamid.stub_1", "status": "read"}
        )

        assert messages == []
        assert len(statuses) == 1
        assert statuses[0].message_id == "wamid.stub_1"
        assert statuses[0].status == "read"
