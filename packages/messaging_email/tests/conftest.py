"""
Pytest fixtures for e-mail tests.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basecore.db import Base
from ticketing.models import Event, Registration, Ticket


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def ticket(db):
    """Issued ticket for an approved registration."""
    event = Event(name="Gala Dinner 2025", location="Hotel Mulia")
    db.add(event)
    db.flush()
    registration = Registration(
        event_id=event.id,
        participant_name="Budi Santoso",
        participant_email="budi@example.com",
        status="approved",
    )
    db.add(registration)
    db.flush()
    ticket = Ticket(registration_id=registration.id, qr_code="ABCD2345", short_code="ABCD2345")
    db.add(ticket)
    db.commit()
    return ticket
