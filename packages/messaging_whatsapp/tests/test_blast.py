"""
Tests for the blast runner and request validation.
"""

from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest

from basecore.settings import Settings
from basecore.timeutil import as_utc, utcnow
from messaging_whatsapp.persistence.models import BlastRecipient, CampaignStatus, RecipientStatus
from messaging_whatsapp.providers.stub import StubWhatsAppProvider
from messaging_whatsapp.service.blast import (
    CLAIM_STALE_AFTER,
    BlastRunner,
    build_debug_report,
    is_throttle_error,
    parse_campaign_id,
    validate_action,
)
from messaging_whatsapp.service.rate_limit import RATE_LIMITS
from ticketing.errors import CampaignAlreadyRunning, InvalidRequest, NotFound


def _recipients(db, campaign):
    rows = db.query(BlastRecipient).filter(BlastRecipient.campaign_id == campaign.id).all()
    return {r.phone_number: r for r in rows}


class ExplodingProvider(StubWhatsAppProvider):
    async def send_template(self, *args, **kwargs):
        raise RuntimeError("connection pool exhausted")


class TestRequestValidation:
    """Tests for campaign id and action validation."""

    def test_parse_campaign_id(self):
        value = "3f2b8c1e-7a4d-4e2f-9b6a-1c2d3e4f5a6b"
        assert str(parse_campaign_id(value)) == value

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_campaign_id(self, value):
        with pytest.raises(InvalidRequest, match="campaign_id is required"):
            parse_campaign_id(value)

    @pytest.mark.parametrize("value", ["abc", "3f2b8c1e7a4d4e2f9b6a1c2d3e4f5a6b", 12345])
    def test_malformed_campaign_id(self, value):
        with pytest.raises(InvalidRequest, match="campaign_id must be a valid UUID"):
            parse_campaign_id(value)

    def test_actions(self):
        assert validate_action("batch") == "batch"
        with pytest.raises(InvalidRequest):
            validate_action("stop")

    def test_throttle_detection(self):
        assert is_throttle_error("WhatsApp API error: Rate limit hit") is True
        assert is_throttle_error("Request was THROTTLED") is True
        assert is_throttle_error("Recipient not on WhatsApp") is False


class TestProcessCampaign:
    """Tests for BlastRunner.process_campaign."""

    def test_sends_to_every_pending_recipient(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        provider = StubWhatsAppProvider(fail_numbers={"6282222222222": "Recipient not on WhatsApp"})

        result = run(BlastRunner(db, provider, sleep=no_sleep).process_campaign(campaign.id))

        assert result.to_dict() == {"processed": 3, "success": 2, "failed": 1}
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED.value
        assert campaign.sent_count == 2
        assert campaign.failed_count == 1
        assert campaign.progress_percentage == 100
        assert campaign.started_at is not None
        assert campaign.completed_at is not None

        recipients = _recipients(db, campaign)
        failed = recipients["6282222222222"]
        assert failed.status == RecipientStatus.FAILED.value
        assert failed.error_message == "WhatsApp API error: Recipient not on WhatsApp"
        assert failed.retry_count == 1
        sent = recipients["6281111111111"]
        assert sent.status == RecipientStatus.SENT.value
        assert sent.message_id.startswith("wamid.stub_")

    def test_template_uses_recipient_name(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign(phones=["6281111111111"])
        provider = StubWhatsAppProvider()

        run(BlastRunner(db, provider, sleep=no_sleep).process_campaign(campaign.id))

        message = provider.get_sent_messages()[0]
        assert message["to"] == "6281111111111"
        assert message["template_name"] == "event_details_reminder_duage"
        assert message["language_code"] == "id"
        body = message["components"][1]
        assert [p["text"] for p in body["parameters"]] == [
            "Peserta 1", "Hotel Mulia", "TBA", "8 Agustus 2025", "19.00",
        ]

    def test_invalid_phone_fails_without_sending(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign(phones=["12345"])
        provider = StubWhatsAppProvider()

        result = run(BlastRunner(db, provider, sleep=no_sleep).process_campaign(campaign.id))

        assert result.failed == 1
        assert provider.get_sent_messages() == []
        assert _recipients(db, campaign)["12345"].error_message == "Invalid phone number format"

    def test_pauses_between_batches(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        config = replace(RATE_LIMITS, batch_size=2)

        run(BlastRunner(db, StubWhatsAppProvider(), config=config, sleep=no_sleep).process_campaign(campaign.id))

        assert no_sleep.calls.count(60.0) == 1
        # No delay before the very first send
        assert len([s for s in no_sleep.calls if s != 60.0]) >= 2

    def test_throttle_error_applies_cooldown(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        provider = StubWhatsAppProvider(fail_numbers={"6281111111111": "Rate limit hit"})

        result = run(BlastRunner(db, provider, sleep=no_sleep).process_campaign(campaign.id))

        assert 30.0 in no_sleep.calls
        assert result.processed == 3

    def test_only_pending_recipients(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        recipients = _recipients(db, campaign)
        recipients["6281111111111"].status = RecipientStatus.SENT.value
        db.commit()
        provider = StubWhatsAppProvider()

        result = run(BlastRunner(db, provider, sleep=no_sleep).process_campaign(campaign.id))

        assert result.processed == 2
        assert {m["to"] for m in provider.get_sent_messages()} == {"6282222222222", "6283333333333"}

    def test_nothing_pending_completes(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign(phones=[])

        result = run(BlastRunner(db, StubWhatsAppProvider(), sleep=no_sleep).process_campaign(campaign.id))

        assert result.processed == 0
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED.value

    def test_unexpected_error_fails_campaign(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()

        run(BlastRunner(db, ExplodingProvider(), sleep=no_sleep).process_campaign(campaign.id))

        db.refresh(campaign)
        assert campaign.status == CampaignStatus.FAILED.value
        assert campaign.error_message == "connection pool exhausted"
        assert campaign.processing_time_minutes is not None

    def test_unknown_campaign(self, db, no_sleep, run):
        with pytest.raises(NotFound):
            run(BlastRunner(db, StubWhatsAppProvider(), sleep=no_sleep).process_campaign(uuid4()))


class TestCampaignClaim:
    """Tests for the one-sender-per-campaign claim."""

    def test_live_claim_blocks_second_runner(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        campaign.status = CampaignStatus.SENDING.value
        campaign.heartbeat_at = utcnow()
        db.commit()
        provider = StubWhatsAppProvider()

        with pytest.raises(CampaignAlreadyRunning):
            run(BlastRunner(db, provider, sleep=no_sleep).process_campaign(campaign.id))

        assert provider.get_sent_messages() == []
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.SENDING.value
        assert campaign.started_at is None

    def test_stale_claim_taken_over(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        campaign.status = CampaignStatus.SENDING.value
        campaign.heartbeat_at = utcnow() - CLAIM_STALE_AFTER - timedelta(minutes=1)
        db.commit()

        result = run(BlastRunner(db, StubWhatsAppProvider(), sleep=no_sleep).process_campaign(campaign.id))

        assert result.processed == 3
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED.value

    def test_completed_campaign_can_run_again(self, db, make_campaign, no_sleep, run):
        """Retry runs re-claim a campaign that already finished."""
        campaign = make_campaign()
        runner = BlastRunner(db, StubWhatsAppProvider(), sleep=no_sleep)
        run(runner.process_campaign(campaign.id))

        result = run(runner.process_campaign(campaign.id))

        assert result.processed == 0
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED.value

    def test_heartbeat_refreshed_while_sending(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign(phones=["6281111111111"])
        before = utcnow()

        run(BlastRunner(db, StubWhatsAppProvider(), sleep=no_sleep).process_campaign(campaign.id))

        db.refresh(campaign)
        assert as_utc(campaign.heartbeat_at) >= before


class TestProcessBatch:
    """Tests for BlastRunner.process_batch."""

    def test_sends_selected_recipients(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        recipients = _recipients(db, campaign)
        selected = [recipients["6281111111111"].id, recipients["6283333333333"].id]
        provider = StubWhatsAppProvider()

        result = run(BlastRunner(db, provider, sleep=no_sleep).process_batch(campaign.id, selected))

        assert result.to_dict() == {"processed": 2, "success": 2, "failed": 0}
        assert recipients["6282222222222"].status == RecipientStatus.PENDING.value
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.DRAFT.value

    def test_no_pending_among_ids(self, db, make_campaign, no_sleep, run):
        campaign = make_campaign()
        result = run(BlastRunner(db, StubWhatsAppProvider(), sleep=no_sleep).process_batch(campaign.id, [uuid4()]))
        assert result.processed == 0


class TestDebugReport:
    """Tests for build_debug_report."""

    def test_report(self, db, make_campaign, run):
        campaign = make_campaign()
        settings = Settings(
            WHATSAPP_PROVIDER="stub",
            WHATSAPP_ACCESS_TOKEN="EAAG1234567890abcdefghijklmnop",
            WHATSAPP_PHONE_NUMBER_ID="PHONE_123",
        )

        report = run(build_debug_report(db, settings, StubWhatsAppProvider(), campaign.id))

        assert report["environment_variables"]["WHATSAPP_ACCESS_TOKEN"] is True
        assert report["environment_values"]["WHATSAPP_ACCESS_TOKEN_PREVIEW"] == "EAAG1234567890abcdef..."
        assert report["environment_values"]["WHATSAPP_ACCESS_TOKEN_LENGTH"] == 30
        assert report["database_connection"]["success"] is True
        assert report["whatsapp_api_test"]["success"] is True
        assert report["campaign_info"]["name"] == "Reminder Gala Dinner"
        assert report["recipients_status"]["pending"] == 3
        assert len(report["recent_recipients"]) == 3

    def test_missing_meta_credentials(self, db, run):
        settings = Settings(WHATSAPP_PROVIDER="meta", WHATSAPP_ACCESS_TOKEN="", WHATSAPP_PHONE_NUMBER_ID="")

        report = run(build_debug_report(db, settings, StubWhatsAppProvider()))

        assert report["whatsapp_api_test"] == {"success": False, "error": "Missing WhatsApp credentials"}
        assert "campaign_info" not in report

    def test_unknown_campaign(self, db, run):
        report = run(build_debug_report(db, Settings(), StubWhatsAppProvider(), uuid4()))
        assert report["campaign_info"] == {"error": "Campaign not found"}
