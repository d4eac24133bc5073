"""
Ticket Issuance

Creates the QR ticket for a registration:
1. Generate a unique 8-character short code (also the QR payload)
2. Render the QR PNG and upload it to public storage
3. Insert the ticket row with status "unused"

Delivery (e-mail / WhatsApp) is decided by NotificationOptions and performed
by the caller once the ticket is committed.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from basecore.storage import StorageBackend
from basecore.timeutil import utcnow
from ticketing.codes import generate_unique_short_code
from ticketing.errors import NotFound, TicketAlreadyIssued
from ticketing.models import Registration, Ticket
from ticketing.qr import qr_object_path, render_qr_png
from ticketing.repository import TicketingRepository

logger = logging.getLogger(__name__)


@dataclass
class NotificationOptions:
    """Which channels to deliver a freshly issued ticket on."""

    send_email: bool = True
    send_whatsapp: bool = True

    def wants_email(self, registration: Registration) -> bool:
        return self.send_email and bool(registration.participant_email)

    def wants_whatsapp(self, registration: Registration) -> bool:
        return (
            self.send_whatsapp
            and bool(registration.event and registration.event.whatsapp_enabled)
            and bool(registration.phone_number)
        )


class TicketIssuer:
    """Issues QR tickets for registrations."""

    def __init__(self, db: Session, storage: StorageBackend):
        self.db = db
        self.storage = storage
        self.repo = TicketingRepository(db)

    def issue(self, registration_id: UUID) -> Ticket:
        """
        Issue the ticket for a registration.

        Raises:
            NotFound: registration does not exist
            TicketAlreadyIssued: registration already has a ticket
        """
        registration = self.repo.get_registration(registration_id)
        if registration is None:
            raise NotFound(f"Registration not found: {registration_id}")

        if registration.ticket is not None:
            raise TicketAlreadyIssued(
                "Ticket already issued for this registration",
                details={"ticket_id": str(registration.ticket.id)},
            )

        short_code = generate_unique_short_code(self.repo.short_code_exists)

        png = render_qr_png(short_code)
        path = qr_object_path(registration_id, int(utcnow().timestamp() * 1000))
        qr_image_url = self.storage.upload_public(path, png, "image/png")

        ticket = self.repo.create_ticket(
            registration_id=registration_id,
            qr_code=short_code,
            short_code=short_code,
            qr_image_url=qr_image_url,
        )

        logger.info(
            f"Issued ticket {short_code} for registration {registration_id}",
            extra={"registration_id": str(registration_id), "ticket_id": str(ticket.id)},
        )
        return ticket


def backfill_short_codes(db: Session, dry_run: bool = False) -> list[tuple[Ticket, str]]:
    """
    Give every ticket without a short code a fresh one.

    The QR payload is left untouched so already-distributed QR images keep
    scanning. Returns (ticket, code) pairs; nothing is written when dry_run.
    """
    repo = TicketingRepository(db)
    assigned: set[str] = set()
    results: list[tuple[Ticket, str]] = []

    for ticket in repo.tickets_missing_short_code():
        code = generate_unique_short_code(
            lambda candidate: candidate in assigned or repo.short_code_exists(candidate)
        )
        assigned.add(code)
        results.append((ticket, code))
        if not dry_run:
            ticket.short_code = code

    if not dry_run:
        db.flush()

    logger.info(f"Short codes assigned to {len(results)} tickets", extra={"dry_run": dry_run})
    return results
