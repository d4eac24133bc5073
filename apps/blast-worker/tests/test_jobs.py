"""
Tests for blast job handling.
"""

import asyncio
import functools
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basecore.timeutil import utcnow
from blast_worker.jobs import RETRY_BATCH_DELAY_MS, handle_job, runner_config
from messaging_whatsapp.contracts import BlastEventType, BlastJobEnvelope, BlastJobPayload
from messaging_whatsapp.persistence.models import CampaignStatus, RecipientStatus, WhatsAppBase
from messaging_whatsapp.persistence.repo import BlastRepository
from messaging_whatsapp.providers.stub import StubWhatsAppProvider
from messaging_whatsapp.service.blast import BlastRunner
from messaging_whatsapp.service.rate_limit import RATE_LIMITS
from ticketing.errors import CampaignAlreadyRunning, NotFound


async def _no_sleep(seconds):
    return None


quiet_runner = functools.partial(BlastRunner, sleep=_no_sleep)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    WhatsAppBase.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def campaign(db):
    campaign = BlastRepository(db).create_campaign(
        name="Reminder",
        template_name="event_details_reminder_duage",
        template_params={"location": "Hotel Mulia", "date": "8 Agustus 2025", "time": "19.00"},
        recipients=[("6281111111111", "Andi"), ("6282222222222", "Sari")],
    )
    db.commit()
    return campaign


def _envelope(event_type, payload):
    return BlastJobEnvelope.create(event_type, payload.to_dict())


class TestRunnerConfig:
    """Tests for runner_config."""

    def test_start_uses_defaults(self):
        assert runner_config(BlastJobPayload(campaign_id=uuid4())) is RATE_LIMITS

    def test_retry_uses_hint(self):
        config = runner_config(BlastJobPayload(campaign_id=uuid4(), mode="retry", batch_size=5))
        assert config.batch_size == 5
        assert config.batch_delay_ms == RETRY_BATCH_DELAY_MS
        assert config.messages_per_second == RATE_LIMITS.messages_per_second


class TestHandleJob:
    """Tests for handle_job."""

    def test_start_runs_campaign(self, db, campaign):
        provider = StubWhatsAppProvider()
        envelope = _envelope(
            BlastEventType.BLAST_START_REQUESTED.value,
            BlastJobPayload(campaign_id=campaign.id),
        )

        result = asyncio.run(handle_job(db, provider, envelope, runner_factory=quiet_runner))

        assert result == {
            "status": "processed",
            "campaign_id": str(campaign.id),
            "processed": 2,
            "success": 2,
            "failed": 0,
        }
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.COMPLETED.value
        assert len(provider.get_sent_messages()) == 2

    def test_retry_sends_rescheduled_recipients(self, db, campaign):
        repo = BlastRepository(db)
        andi = repo.find_recipient_by_phone(campaign.id, "6281111111111")
        repo.mark_sent(andi, "wamid.done")
        db.commit()
        provider = StubWhatsAppProvider()
        envelope = _envelope(
            BlastEventType.BLAST_RETRY_REQUESTED.value,
            BlastJobPayload(campaign_id=campaign.id, mode="retry", batch_size=1),
        )

        result = asyncio.run(handle_job(db, provider, envelope, runner_factory=quiet_runner))

        assert result["processed"] == 1
        assert [m["to"] for m in provider.get_sent_messages()] == ["6282222222222"]

    def test_explicit_recipients(self, db, campaign):
        sari = BlastRepository(db).find_recipient_by_phone(campaign.id, "6282222222222")
        envelope = _envelope(
            BlastEventType.BLAST_START_REQUESTED.value,
            BlastJobPayload(campaign_id=campaign.id, recipient_ids=[sari.id]),
        )

        result = asyncio.run(handle_job(db, StubWhatsAppProvider(), envelope, runner_factory=quiet_runner))

        assert result["processed"] == 1
        db.refresh(sari)
        assert sari.status == RecipientStatus.SENT.value

    def test_unknown_event_type_ignored(self, db):
        envelope = BlastJobEnvelope.create(BlastEventType.DLQ_ENTRY.value, {})
        result = asyncio.run(handle_job(db, StubWhatsAppProvider(), envelope))
        assert result == {"status": "ignored", "event_type": "blast_dlq_entry"}

    def test_missing_campaign(self, db):
        envelope = _envelope(
            BlastEventType.BLAST_START_REQUESTED.value,
            BlastJobPayload(campaign_id=uuid4()),
        )
        with pytest.raises(NotFound):
            asyncio.run(handle_job(db, StubWhatsAppProvider(), envelope, runner_factory=quiet_runner))

    def test_malformed_payload(self, db):
        envelope = BlastJobEnvelope.create(BlastEventType.BLAST_START_REQUESTED.value, {"mode": "start"})
        with pytest.raises(KeyError):
            asyncio.run(handle_job(db, StubWhatsAppProvider(), envelope))

    def test_reclaimed_job_for_running_campaign(self, db, campaign):
        """A second delivery of a start job sends nothing while the first still runs."""
        campaign.status = CampaignStatus.SENDING.value
        campaign.heartbeat_at = utcnow()
        db.commit()
        provider = StubWhatsAppProvider()
        envelope = _envelope(
            BlastEventType.BLAST_START_REQUESTED.value,
            BlastJobPayload(campaign_id=campaign.id),
        )

        with pytest.raises(CampaignAlreadyRunning):
            asyncio.run(handle_job(db, provider, envelope, runner_factory=quiet_runner))

        assert provider.get_sent_messages() == []
