"""
Ticketing CLI

Command-line interface for ticketing administration.

Commands:
- add-short-codes: Backfill short codes on tickets that have none
- validate-phone: Check and normalize phone numbers
- export: Write a registration export for an event
"""

from pathlib import Path
from typing import List, Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from basecore.logging import setup_logging

app = typer.Typer(
    name="ticketing-cli",
    help="Event ticketing administration CLI",
)

console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override LOG_LEVEL"),
):
    setup_logging(level=log_level)


def get_db():
    """Get database session."""
    from basecore.db import get_db as _get_db
    return next(_get_db())


@app.command()
def add_short_codes(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the codes without saving them"),
):
    """
    Give every ticket without a short code a fresh 8-character code.
    """
    db = get_db()

    try:
        from ticketing.issuance import backfill_short_codes

        results = backfill_short_codes(db, dry_run=dry_run)
        if not results:
            rprint("[green]All tickets already have short codes[/green]")
            raise typer.Exit(0)

        table = Table(title="Short codes" + (" (dry run)" if dry_run else ""))
        table.add_column("Ticket", style="dim")
        table.add_column("Participant")
        table.add_column("QR payload")
        table.add_column("Short code", style="bold")
        for ticket, code in results:
            participant = ticket.registration.participant_name if ticket.registration else "-"
            payload = ticket.qr_code if len(ticket.qr_code) <= 30 else ticket.qr_code[:30] + "..."
            table.add_row(str(ticket.id)[:8], participant, payload, code)
        console.print(table)

        if dry_run:
            db.rollback()
            rprint(f"[yellow]Dry run: {len(results)} tickets would be updated[/yellow]")
        else:
            db.commit()
            rprint(f"[green]Updated {len(results)} tickets[/green]")

    finally:
        db.close()


@app.command()
def validate_phone(
    numbers: List[str] = typer.Argument(..., help="Phone numbers to check"),
):
    """
    Show whether each number passes the registration rule, with its normalized
    form under both the registration and the blast rule.
    """
    from ticketing.phone import (
        is_whatsapp_ticket_number,
        try_normalize_blast_phone_number,
        try_normalize_phone_number,
    )

    table = Table(title="Phone numbers")
    table.add_column("Input")
    table.add_column("Valid")
    table.add_column("Normalized")
    table.add_column("Blast")
    table.add_column("WA ticket")

    invalid = 0
    for number in numbers:
        normalized = try_normalize_phone_number(number)
        if normalized is None:
            invalid += 1
        table.add_row(
            number,
            "[green]yes[/green]" if normalized else "[red]no[/red]",
            normalized or "-",
            try_normalize_blast_phone_number(number) or "-",
            "yes" if is_whatsapp_ticket_number(normalized) else "no",
        )
    console.print(table)

    if invalid:
        raise typer.Exit(1)


@app.command()
def export(
    event_id: str = typer.Argument(..., help="Event UUID"),
    format: str = typer.Option("csv", "--format", "-f", help="csv, excel or pdf"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file or directory"),
    include_tickets: bool = typer.Option(True, help="Include ticket columns"),
    include_checkin: bool = typer.Option(True, help="Include check-in columns"),
    include_custom_fields: bool = typer.Option(True, help="Include custom form fields"),
):
    """
    Export an event's registrations.
    """
    try:
        event_uuid = UUID(event_id)
    except ValueError:
        rprint(f"[red]Invalid event ID: {event_id}[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        from ticketing.errors import ExportError
        from ticketing.export import ExportConfig, RegistrationExporter

        config = ExportConfig(
            format=format,
            event_id=event_uuid,
            include_tickets=include_tickets,
            include_checkin_data=include_checkin,
            include_custom_fields=include_custom_fields,
        )
        try:
            result = RegistrationExporter(db).export(config)
        except ExportError as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if output is None:
            path = Path(result.filename)
        elif output.is_dir():
            path = output / result.filename
        else:
            path = output
        path.write_bytes(result.content)

        rprint(f"[green]Exported {result.record_count} registrations to {path}[/green]")

    finally:
        db.close()


if __name__ == "__main__":
    app()
