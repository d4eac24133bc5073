"""
Tests for the ticketing CLI.
"""

import pytest
from typer.testing import CliRunner

from ticketing.cli import main as cli
from ticketing.models import Ticket

runner = CliRunner()


@pytest.fixture
def cli_db(db, monkeypatch):
    monkeypatch.setattr(cli, "get_db", lambda: db)
    return db


class TestAddShortCodes:
    """Tests for add-short-codes."""

    def test_backfills(self, cli_db, registration, make_ticket):
        ticket_id = make_ticket(registration, qr_code="TICKET-legacy-payload", short_code=None).id

        result = runner.invoke(cli.app, ["add-short-codes"])

        assert result.exit_code == 0, result.output
        assert "Updated 1 tickets" in result.output
        stored = cli_db.query(Ticket).filter(Ticket.id == ticket_id).one()
        assert stored.short_code and len(stored.short_code) == 8
        assert stored.qr_code == "TICKET-legacy-payload"

    def test_dry_run(self, cli_db, registration, make_ticket):
        ticket_id = make_ticket(registration, qr_code="TICKET-legacy-payload", short_code=None).id
        cli_db.commit()

        result = runner.invoke(cli.app, ["add-short-codes", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "would be updated" in result.output
        assert cli_db.query(Ticket).filter(Ticket.id == ticket_id).one().short_code is None

    def test_nothing_to_do(self, cli_db):
        result = runner.invoke(cli.app, ["add-short-codes"])
        assert result.exit_code == 0
        assert "already have short codes" in result.output


class TestValidatePhone:
    """Tests for validate-phone."""

    def test_all_valid(self):
        result = runner.invoke(cli.app, ["validate-phone", "081234567890", "+6281314942011"])
        assert result.exit_code == 0, result.output
        assert "6281234567890" in result.output

    def test_invalid_exits_nonzero(self):
        result = runner.invoke(cli.app, ["validate-phone", "081234567890", "12345"])
        assert result.exit_code == 1

    def test_blast_only_number(self):
        """Numbers accepted only by the looser blast rule fail registration."""
        result = runner.invoke(cli.app, ["validate-phone", "08123456789"])
        assert result.exit_code == 1
        assert "628123456789" in result.output


class TestExport:
    """Tests for export."""

    def test_writes_file(self, cli_db, event, registration, tmp_path):
        result = runner.invoke(cli.app, ["export", str(event.id), "--output", str(tmp_path)])

        assert result.exit_code == 0, result.output
        files = list(tmp_path.glob("registrations_gala_dinner_2025_*.csv"))
        assert len(files) == 1
        assert "Budi Santoso" in files[0].read_text(encoding="utf-8")

    def test_invalid_event_id(self):
        result = runner.invoke(cli.app, ["export", "not-a-uuid"])
        assert result.exit_code == 1
        assert "Invalid event ID" in result.output

    def test_no_rows(self, cli_db, event, tmp_path):
        result = runner.invoke(cli.app, ["export", str(event.id), "-o", str(tmp_path)])
        assert result.exit_code == 1
        assert "No data found" in result.output
