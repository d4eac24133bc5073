"""
Pytest configuration for integration tests.

Runs the FastAPI apps against an in-memory SQLite database with stub
WhatsApp and e-mail providers, local file storage and a recording blast
job producer.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("WHATSAPP_PROVIDER", "stub")
os.environ.setdefault("EMAIL_PROVIDER", "stub")
os.environ.setdefault("STORAGE_BACKEND", "local")

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basecore.db import Base, get_db
from basecore.storage import LocalStorage
from messaging_email.providers import StubEmailProvider
from messaging_whatsapp.persistence.models import WhatsAppBase
from messaging_whatsapp.providers.stub import StubWhatsAppProvider
from ticketing import models as ticketing_models  # noqa: F401  (registers tables on Base)
from ticketing_api.deps import (
    get_blast_producer,
    get_mail_provider,
    get_storage_backend,
    get_whatsapp_provider,
)
from ticketing_api.main import app
from ticketing_api.security import create_access_token


class RecordingProducer:
    """Stands in for BlastJobProducer; keeps published jobs in memory."""

    def __init__(self):
        self.published = []

    def publish_blast_start(self, campaign_id, requested_by=None):
        self.published.append(("start", campaign_id, requested_by))
        return f"{len(self.published)}-0"

    def publish_blast_retry(self, campaign_id, batch_size=None, requested_by=None):
        self.published.append(("retry", campaign_id, batch_size))
        return f"{len(self.published)}-0"


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    WhatsAppBase.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory):
    """Session for arranging and inspecting data outside the app."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def whatsapp():
    return StubWhatsAppProvider()


@pytest.fixture
def mail():
    return StubEmailProvider()


@pytest.fixture
def producer():
    return RecordingProducer()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path, "http://testserver/storage", "event-logos")


@pytest.fixture
def client(session_factory, whatsapp, mail, producer, storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_provider] = lambda: whatsapp
    app.dependency_overrides[get_mail_provider] = lambda: mail
    app.dependency_overrides[get_blast_producer] = lambda: producer
    app.dependency_overrides[get_storage_backend] = lambda: storage

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth_headers(role):
    token = create_access_token({"sub": str(uuid4()), "email": f"{role}@example.com", "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return _auth_headers("admin")


@pytest.fixture
def user_headers():
    return _auth_headers("user")
