"""
Ticketing Repository

Queries and writes for events, registrations and tickets.
Callers own the transaction: methods add/flush but never commit.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from basecore.timeutil import utcnow
from ticketing.models import Event, Member, Registration, RegistrationStatus, Ticket, TicketStatus


class TicketingRepository:
    """Repository for ticketing database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Events
    # =========================================================================

    def get_event(self, event_id: UUID) -> Event | None:
        return self.db.query(Event).filter(Event.id == event_id).first()

    def list_events(self, limit: int = 100) -> list[Event]:
        """Events ordered by date, events without a date last."""
        return (
            self.db.query(Event)
            .order_by(Event.event_date.is_(None), Event.event_date.asc())
            .limit(limit)
            .all()
        )

    def create_event(self, **fields: Any) -> Event:
        event = Event(**fields)
        self.db.add(event)
        self.db.flush()
        return event

    def update_event(self, event: Event, **fields: Any) -> Event:
        for key, value in fields.items():
            setattr(event, key, value)
        event.updated_at = utcnow()
        self.db.flush()
        return event

    # =========================================================================
    # Registrations
    # =========================================================================

    def get_registration(self, registration_id: UUID) -> Registration | None:
        return (
            self.db.query(Registration)
            .options(joinedload(Registration.event), joinedload(Registration.ticket))
            .filter(Registration.id == registration_id)
            .first()
        )

    def create_registration(
        self,
        event_id: UUID,
        participant_name: str,
        participant_email: str | None,
        phone_number: str | None = None,
        custom_data: dict[str, Any] | None = None,
    ) -> Registration:
        registration = Registration(
            event_id=event_id,
            participant_name=participant_name,
            participant_email=participant_email,
            phone_number=phone_number,
            custom_data=custom_data or {},
            status=RegistrationStatus.PENDING.value,
        )
        self.db.add(registration)
        self.db.flush()
        return registration

    def count_active_registrations(self, event_id: UUID) -> int:
        """Registrations that hold a seat (everything except rejected)."""
        return (
            self.db.query(func.count(Registration.id))
            .filter(
                Registration.event_id == event_id,
                Registration.status != RegistrationStatus.REJECTED.value,
            )
            .scalar()
        ) or 0

    def set_registration_status(
        self,
        registration: Registration,
        status: RegistrationStatus,
        processed_by: UUID | None,
    ) -> Registration:
        registration.status = status.value
        registration.processed_at = utcnow()
        registration.processed_by = processed_by
        self.db.flush()
        return registration

    def email_registered(self, event_id: UUID, email: str) -> bool:
        """Case-insensitive check for an e-mail already used on the event."""
        return (
            self.db.query(Registration.id)
            .filter(
                Registration.event_id == event_id,
                func.lower(Registration.participant_email) == email.strip().lower(),
            )
            .first()
        ) is not None

    def member_number_registered(self, event_id: UUID, field_name: str, member_number: str) -> bool:
        """Whether a registration of the event carries this member number in custom_data."""
        rows = (
            self.db.query(Registration.custom_data)
            .filter(Registration.event_id == event_id)
            .all()
        )
        return any(
            str((data or {}).get(field_name, "")).strip() == member_number
            for (data,) in rows
        )

    def member_exists(self, member_number: str) -> bool:
        return (
            self.db.query(Member.id).filter(Member.member_number == member_number).first()
        ) is not None

    def delete_registration(self, registration: Registration) -> None:
        """Delete a registration together with its ticket."""
        if registration.ticket is not None:
            self.db.delete(registration.ticket)
        self.db.delete(registration)
        self.db.flush()

    def find_registrations(
        self,
        event_id: UUID | None = None,
        status: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        search_term: str | None = None,
        checkin_status: str | None = None,
    ) -> list[Registration]:
        """
        Filtered registrations with their event and ticket loaded.

        Ordered newest first. status/checkin_status of None or "all" disable
        that filter; checkin_status is "checked_in" or "not_checked_in".
        """
        query = (
            self.db.query(Registration)
            .options(joinedload(Registration.event), joinedload(Registration.ticket))
        )

        if event_id:
            query = query.filter(Registration.event_id == event_id)
        if status and status != "all":
            query = query.filter(Registration.status == status)
        if date_from:
            query = query.filter(Registration.registered_at >= date_from)
        if date_to:
            query = query.filter(Registration.registered_at <= date_to)
        if search_term:
            pattern = f"%{search_term}%"
            query = query.filter(
                or_(
                    Registration.participant_name.ilike(pattern),
                    Registration.participant_email.ilike(pattern),
                )
            )
        if checkin_status == "checked_in":
            query = query.join(Ticket, Ticket.registration_id == Registration.id).filter(
                Ticket.checkin_at.isnot(None)
            )
        elif checkin_status == "not_checked_in":
            query = query.outerjoin(Ticket, Ticket.registration_id == Registration.id).filter(
                Ticket.checkin_at.is_(None)
            )

        return query.order_by(Registration.registered_at.desc()).all()

    # =========================================================================
    # Tickets
    # =========================================================================

    def get_ticket_for_registration(self, registration_id: UUID) -> Ticket | None:
        return self.db.query(Ticket).filter(Ticket.registration_id == registration_id).first()

    def find_ticket_by_code(self, code: str) -> Ticket | None:
        """Match the QR payload exactly or the short code case-insensitively."""
        return (
            self.db.query(Ticket)
            .options(joinedload(Ticket.registration).joinedload(Registration.event))
            .filter(or_(Ticket.qr_code == code, Ticket.short_code == code.upper()))
            .first()
        )

    def short_code_exists(self, code: str) -> bool:
        return self.db.query(Ticket.id).filter(Ticket.short_code == code).first() is not None

    def create_ticket(
        self,
        registration_id: UUID,
        qr_code: str,
        short_code: str,
        qr_image_url: str | None,
    ) -> Ticket:
        ticket = Ticket(
            registration_id=registration_id,
            qr_code=qr_code,
            short_code=short_code,
            qr_image_url=qr_image_url,
            status=TicketStatus.UNUSED.value,
            issued_at=utcnow(),
        )
        self.db.add(ticket)
        self.db.flush()
        return ticket

    def tickets_missing_short_code(self) -> list[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(or_(Ticket.short_code.is_(None), Ticket.short_code == ""))
            .order_by(Ticket.issued_at.asc())
            .all()
        )

    def mark_whatsapp_sent(self, ticket: Ticket) -> None:
        ticket.whatsapp_sent = True
        ticket.whatsapp_sent_at = utcnow()
        self.db.flush()

    def mark_email_sent(self, registration_id: UUID) -> bool:
        """Flag the registration's ticket as e-mailed; False when it has no ticket."""
        ticket = self.get_ticket_for_registration(registration_id)
        if ticket is None:
            return False
        ticket.email_sent = True
        ticket.email_sent_at = utcnow()
        self.db.flush()
        return True

    def mark_ticket_used(
        self,
        ticket_id: UUID,
        operator_id: UUID | None,
        location: str,
        notes: str,
    ) -> bool:
        """
        Conditionally flip an unused ticket to used.

        Returns False when another check-in got there first.
        """
        updated = (
            self.db.query(Ticket)
            .filter(
                Ticket.id == ticket_id,
                Ticket.status != TicketStatus.USED.value,
                Ticket.checkin_at.is_(None),
            )
            .update(
                {
                    Ticket.status: TicketStatus.USED.value,
                    Ticket.checkin_at: utcnow(),
                    Ticket.checkin_by: operator_id,
                    Ticket.checkin_location: location,
                    Ticket.checkin_notes: notes,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def checkin_counts(self, event_id: UUID) -> dict[str, int]:
        """Ticket totals for an event: issued and checked in."""
        base = (
            self.db.query(func.count(Ticket.id))
            .join(Registration, Registration.id == Ticket.registration_id)
            .filter(Registration.event_id == event_id)
        )
        total = base.scalar() or 0
        checked_in = base.filter(Ticket.checkin_at.isnot(None)).scalar() or 0
        return {"total": total, "checked_in": checked_in}
