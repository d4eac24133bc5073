"""
Pytest fixtures for ticketing tests.

Runs against in-memory SQLite; JSONB columns fall back to JSON there.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basecore.db import Base
from ticketing.models import Event, Registration, Ticket


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session, rolled back after each test."""
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def event(db):
    """Evening event with WhatsApp delivery enabled."""
    event = Event(
        name="Gala Dinner 2025",
        event_date=datetime(2025, 8, 8, 12, 0, tzinfo=timezone.utc),  # 19.00 WIB
        location="Hotel Mulia, Jakarta",
        custom_fields=[
            {"name": "company", "label": "Perusahaan", "type": "text", "required": False},
            {"name": "shirt_size", "label": "Ukuran Kaos", "type": "select", "required": False},
        ],
        whatsapp_enabled=True,
    )
    db.add(event)
    db.flush()
    return event


@pytest.fixture
def make_registration(db, event):
    """Factory for registrations of the sample event."""

    def _make(name="Budi Santoso", email="budi@example.com", phone="6281314942011", **fields):
        registration = Registration(
            event_id=fields.pop("event_id", event.id),
            participant_name=name,
            participant_email=email,
            phone_number=phone,
            status=fields.pop("status", "approved"),
            custom_data=fields.pop("custom_data", {}),
            **fields,
        )
        db.add(registration)
        db.flush()
        return registration

    return _make


@pytest.fixture
def registration(make_registration):
    return make_registration(custom_data={"company": "PT Maju Jaya", "shirt_size": "L"})


@pytest.fixture
def make_ticket(db):
    """Factory for tickets; short_code=None mimics tickets issued before short codes."""

    def _make(registration, qr_code="ABCD2345", short_code="ABCD2345", **fields):
        ticket = Ticket(
            registration_id=registration.id,
            qr_code=qr_code,
            short_code=short_code,
            **fields,
        )
        db.add(ticket)
        db.flush()
        db.refresh(registration)
        return ticket

    return _make
