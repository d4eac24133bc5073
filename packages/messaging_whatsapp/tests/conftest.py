"""
Pytest fixtures for WhatsApp tests.
"""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basecore.db import Base
from messaging_whatsapp.persistence.models import WhatsAppBase
from messaging_whatsapp.providers.stub import StubWhatsAppProvider
from ticketing import models as ticketing_models  # noqa: F401  (registers tables on Base)


@pytest.fixture
def sample_phone():
    """Sample normalized phone number."""
    return "6281314942011"


@pytest.fixture
def db():
    """In-memory SQLite session with the blast and ticketing tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    WhatsAppBase.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def provider():
    return StubWhatsAppProvider()


@pytest.fixture
def no_sleep():
    """Records requested sleeps instead of waiting."""
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def run():
    """Run a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def make_campaign(db):
    """Factory for a campaign with pending recipients."""
    from messaging_whatsapp.persistence.repo import BlastRepository

    def _make(phones=("6281111111111", "6282222222222", "6283333333333"), **fields):
        campaign = BlastRepository(db).create_campaign(
            name=fields.pop("name", "Reminder Gala Dinner"),
            template_name=fields.pop("template_name", "event_details_reminder_duage"),
            template_params=fields.pop(
                "template_params",
                {"location": "Hotel Mulia", "date": "8 Agustus 2025", "time": "19.00"},
            ),
            recipients=[(phone, f"Peserta {i}") for i, phone in enumerate(phones, start=1)],
            created_by=fields.pop("created_by", uuid4()),
        )
        db.commit()
        return campaign

    return _make
