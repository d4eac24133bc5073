"""
Event Check-in

Validates a scanned QR payload or typed short code and marks the ticket used.
A ticket can be checked in exactly once.
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ticketing.formatting import format_table_datetime
from ticketing.models import Ticket
from ticketing.repository import TicketingRepository

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "QR Scanner"
DEFAULT_NOTES = "Checked in via QR scanner"


@dataclass
class CheckinResult:
    """Outcome of a check-in attempt."""

    success: bool
    message: str
    participant: dict[str, Any] | None = None
    ticket_id: UUID | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def _participant_info(ticket: Ticket) -> dict[str, Any]:
    registration = ticket.registration
    return {
        "name": registration.participant_name,
        "email": registration.participant_email,
        "event_name": registration.event.name if registration.event else None,
    }


class CheckinService:
    """Checks participants in by ticket code."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TicketingRepository(db)

    def check_in(
        self,
        code: str,
        operator_id: UUID | None,
        location: str = DEFAULT_LOCATION,
        notes: str = DEFAULT_NOTES,
    ) -> CheckinResult:
        code = (code or "").strip()
        if not code:
            return CheckinResult(False, "Invalid QR code. Ticket not found.")

        ticket = self.repo.find_ticket_by_code(code)
        if ticket is None:
            logger.info("Check-in rejected: unknown code", extra={"code": code})
            return CheckinResult(False, "Invalid QR code. Ticket not found.")

        if ticket.registration is None:
            return CheckinResult(
                False, "Ticket found but no registration associated.", ticket_id=ticket.id
            )

        if ticket.is_used:
            return self._already_used(ticket)

        if not self.repo.mark_ticket_used(ticket.id, operator_id, location, notes):
            # Another scanner checked the ticket in between the read and the write
            self.db.refresh(ticket)
            logger.info("Check-in lost race", extra={"ticket_id": str(ticket.id)})
            return self._already_used(ticket)
        self.db.refresh(ticket)

        logger.info(
            f"Checked in ticket {ticket.display_code}",
            extra={"ticket_id": str(ticket.id), "operator_id": str(operator_id)},
        )

        return CheckinResult(
            True,
            "Check-in successful!",
            participant=_participant_info(ticket),
            ticket_id=ticket.id,
        )

    def _already_used(self, ticket: Ticket) -> CheckinResult:
        checked_in_at = format_table_datetime(ticket.checkin_at) or "Unknown time"
        return CheckinResult(
            False,
            f"Ticket has already been used. Checked in at: {checked_in_at}",
            participant=_participant_info(ticket),
            ticket_id=ticket.id,
        )

    def report(self, event_id: UUID) -> dict[str, Any]:
        """Attendance summary for an event."""
        counts = self.repo.checkin_counts(event_id)
        total = counts["total"]
        checked_in = counts["checked_in"]
        return {
            "total_tickets": total,
            "checked_in": checked_in,
            "not_checked_in": total - checked_in,
            "checkin_rate": round(checked_in / total * 100, 1) if total else 0.0,
        }
