"""
Tests for check-in by QR payload or short code.
"""

from datetime import datetime, timezone
from uuid import uuid4

from ticketing.checkin import CheckinService
from ticketing.models import TicketStatus
from ticketing.repository import TicketingRepository


class TestCheckIn:
    """Tests for CheckinService.check_in."""

    def test_successful_checkin(self, db, registration, make_ticket):
        ticket = make_ticket(registration)
        operator = uuid4()

        result = CheckinService(db).check_in("ABCD2345", operator, "Pintu A", "VIP")

        assert result.success is True
        assert result.message == "Check-in successful!"
        assert result.ticket_id == ticket.id
        assert result.participant == {
            "name": "Budi Santoso",
            "email": "budi@example.com",
            "event_name": "Gala Dinner 2025",
        }
        assert ticket.status == TicketStatus.USED.value
        assert ticket.checkin_at is not None
        assert ticket.checkin_by == operator
        assert ticket.checkin_location == "Pintu A"
        assert ticket.checkin_notes == "VIP"

    def test_short_code_is_case_insensitive(self, db, registration, make_ticket):
        make_ticket(registration)
        result = CheckinService(db).check_in("  abcd2345 ", None)
        assert result.success is True

    def test_legacy_qr_payload(self, db, registration, make_ticket):
        """Tickets without a short code are found by their full payload."""
        make_ticket(registration, qr_code="TICKET-abc-123", short_code=None)
        result = CheckinService(db).check_in("TICKET-abc-123", None)
        assert result.success is True

    def test_second_scan_rejected(self, db, registration, make_ticket):
        ticket = make_ticket(registration)
        service = CheckinService(db)
        service.check_in("ABCD2345", None)
        first_checkin = ticket.checkin_at

        result = service.check_in("ABCD2345", None)

        assert result.success is False
        assert result.message.startswith("Ticket has already been used. Checked in at: ")
        assert result.participant["name"] == "Budi Santoso"
        assert ticket.checkin_at == first_checkin

    def test_concurrent_scan_loses(self, db, registration, make_ticket, monkeypatch):
        """A scanner that read the ticket as unused still fails if another wrote first."""
        ticket = make_ticket(registration)
        service = CheckinService(db)
        lookup = service.repo.find_ticket_by_code

        def lookup_then_other_scanner(code):
            found = lookup(code)
            assert TicketingRepository(db).mark_ticket_used(found.id, None, "Pintu B", "")
            return found

        monkeypatch.setattr(service.repo, "find_ticket_by_code", lookup_then_other_scanner)

        result = service.check_in("ABCD2345", uuid4(), "Pintu A")

        assert result.success is False
        assert result.message.startswith("Ticket has already been used.")
        assert ticket.checkin_location == "Pintu B"
        assert ticket.checkin_by is None

    def test_used_status_without_timestamp(self, db, registration, make_ticket):
        make_ticket(registration, status=TicketStatus.USED.value)
        result = CheckinService(db).check_in("ABCD2345", None)
        assert result.success is False
        assert result.message == "Ticket has already been used. Checked in at: Unknown time"

    def test_unknown_code(self, db, registration, make_ticket):
        make_ticket(registration)
        result = CheckinService(db).check_in("NOPE0000", None)
        assert result.success is False
        assert result.message == "Invalid QR code. Ticket not found."

    def test_blank_code(self, db):
        result = CheckinService(db).check_in("   ", None)
        assert result.success is False
        assert result.message == "Invalid QR code. Ticket not found."


class TestCheckinReport:
    """Tests for the attendance summary."""

    def test_report(self, db, make_registration, make_ticket, event):
        for i in range(3):
            checkin_at = datetime(2025, 8, 8, 12, i, tzinfo=timezone.utc) if i == 0 else None
            make_ticket(
                make_registration(name=f"Peserta {i}"),
                qr_code=f"CODE000{i}",
                short_code=f"CODE000{i}",
                checkin_at=checkin_at,
            )

        report = CheckinService(db).report(event.id)

        assert report == {
            "total_tickets": 3,
            "checked_in": 1,
            "not_checked_in": 2,
            "checkin_rate": 33.3,
        }

    def test_report_without_tickets(self, db, event):
        assert CheckinService(db).report(event.id)["checkin_rate"] == 0.0
