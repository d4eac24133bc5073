"""
Ticketing Database Models

Tables (owned by the hosted database; mapped here, never migrated here):
- events: events open for registration, with custom form fields
- registrations: one participant's registration for an event
- tickets: QR ticket issued for a registration, including check-in state
- members: association members whose numbers gate member_number form fields
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from basecore.db import Base
from basecore.timeutil import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class RegistrationStatus(str, Enum):
    """Review state of a registration."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TicketStatus(str, Enum):
    """Ticket usage state."""

    UNUSED = "unused"
    USED = "used"


class Event(Base):
    """An event participants can register for."""

    __tablename__ = "events"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)
    dresscode = Column(String(255), nullable=True)
    max_participants = Column(Integer, nullable=True)
    custom_fields = Column(JSONType, nullable=True, default=list)  # [{name, label, type, required, options}]
    branding_config = Column(JSONType, nullable=True, default=dict)
    whatsapp_enabled = Column(Boolean, nullable=False, default=False)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    registrations = relationship("Registration", back_populates="event")


class Registration(Base):
    """A participant's registration for an event."""

    __tablename__ = "registrations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    event_id = Column(Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_name = Column(String(255), nullable=False)
    participant_email = Column(String(255), nullable=True)
    phone_number = Column(String(20), nullable=True)  # normalized 62XXXXXXXXX
    status = Column(String(20), nullable=False, default=RegistrationStatus.PENDING.value)
    custom_data = Column(JSONType, nullable=True, default=dict)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(Uuid, nullable=True)

    event = relationship("Event", back_populates="registrations")
    ticket = relationship("Ticket", back_populates="registration", uselist=False)

    __table_args__ = (
        Index("idx_registrations_event_status", "event_id", "status"),
    )


class Ticket(Base):
    """
    QR ticket for a registration.

    qr_code holds the QR payload (equal to short_code for tickets issued here;
    older tickets may carry a longer payload and no short code).
    """

    __tablename__ = "tickets"

    id = Column(Uuid, primary_key=True, default=uuid4)
    registration_id = Column(
        Uuid, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    qr_code = Column(Text, nullable=False, index=True)
    short_code = Column(String(16), nullable=True, unique=True)
    qr_image_url = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=TicketStatus.UNUSED.value)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    checkin_at = Column(DateTime(timezone=True), nullable=True)
    checkin_by = Column(Uuid, nullable=True)
    checkin_location = Column(String(255), nullable=True)
    checkin_notes = Column(Text, nullable=True)
    whatsapp_sent = Column(Boolean, nullable=False, default=False)
    whatsapp_sent_at = Column(DateTime(timezone=True), nullable=True)
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(DateTime(timezone=True), nullable=True)

    registration = relationship("Registration", back_populates="ticket")

    @property
    def display_code(self) -> str:
        """Code shown to participants: short code, else the QR payload."""
        return self.short_code or self.qr_code

    @property
    def is_used(self) -> bool:
        return self.status == TicketStatus.USED.value or self.checkin_at is not None


class Member(Base):
    """Association member; registrations may require a known member number."""

    __tablename__ = "members"

    id = Column(Uuid, primary_key=True, default=uuid4)
    member_number = Column(String(20), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
