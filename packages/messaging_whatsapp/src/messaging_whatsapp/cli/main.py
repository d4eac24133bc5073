"""
WhatsApp CLI

Command-line interface for WhatsApp blast operations.

Commands:
- check-campaign-status: Campaign summary, recent activity and a recommendation
- reset-and-retry-number: Give one recipient a clean slate and queue the campaign
- retry-failed: Reschedule failed recipients
- start-campaign: Queue a campaign (or run it in-process with --sync)
- debug-env: Configuration and connectivity report
- send-test: Send the ticket template with sample values
- replay-dlq: Move dead-lettered jobs back to the jobs stream
"""

import asyncio
import json
from typing import Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from basecore.logging import setup_logging

app = typer.Typer(
    name="whatsapp-cli",
    help="WhatsApp blast and ticket delivery CLI",
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


def get_redis():
    """Get Redis client."""
    from basecore.redis import get_redis_client
    return get_redis_client()


def parse_uuid(value: str, label: str = "campaign ID") -> UUID:
    try:
        return UUID(value)
    except ValueError:
        rprint(f"[red]Invalid {label}: {value}[/red]")
        raise typer.Exit(1)


def _fmt(dt) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else "-"


@app.command()
def check_campaign_status(
    campaign_id: str = typer.Argument(..., help="Campaign UUID"),
):
    """
    Show campaign progress, recent sends and failures.
    """
    campaign_uuid = parse_uuid(campaign_id)
    db = get_db()

    try:
        from messaging_whatsapp.persistence.models import RecipientStatus
        from messaging_whatsapp.persistence.repo import BlastRepository

        repo = BlastRepository(db)
        campaign = repo.get_campaign(campaign_uuid)
        if not campaign:
            rprint(f"[red]Campaign not found: {campaign_id}[/red]")
            raise typer.Exit(1)

        rprint(f"\n[cyan]Campaign: {campaign.name}[/cyan]")
        rprint(f"  Status: {campaign.status}")
        rprint(f"  Template: {campaign.template_name}")
        rprint(f"  Created: {_fmt(campaign.created_at)}")
        rprint(f"  Started: {_fmt(campaign.started_at)}")
        rprint(f"  Completed: {_fmt(campaign.completed_at)}")

        counts = repo.status_counts(campaign_uuid)
        total = sum(counts.values())
        sent = counts["sent"] + counts["delivered"] + counts["read"]
        pending = counts["pending"]
        failed = counts["failed"]
        success_rate = (sent / total * 100) if total else 0

        table = Table(title="Recipients")
        table.add_column("Status")
        table.add_column("Count", justify="right")
        for status, count in counts.items():
            table.add_row(status, str(count))
        table.add_row("[bold]total[/bold]", f"[bold]{total}[/bold]")
        console.print(table)
        rprint(f"  Success rate: {success_rate:.2f}%")

        recent_sent = repo.recent_recipients(campaign_uuid, RecipientStatus.SENT, limit=5)
        if recent_sent:
            rprint("\n[green]Recent sends:[/green]")
            for i, r in enumerate(recent_sent, 1):
                rprint(f"  {i}. {r.phone_number} at {_fmt(r.sent_at)}")

        recent_failed = repo.recent_recipients(campaign_uuid, RecipientStatus.FAILED, limit=5)
        if recent_failed:
            rprint("\n[red]Recent failures:[/red]")
            for i, r in enumerate(recent_failed, 1):
                rprint(f"  {i}. {r.phone_number}: {r.error_message or 'Unknown error'}")

        rprint("")
        if pending > 0:
            rprint("[yellow]Campaign is still processing.[/yellow]")
            rprint(f"Recommendation: run or continue the campaign (whatsapp-cli start-campaign {campaign_id})")
        elif failed > 0 and sent == 0:
            rprint("[red]All messages failed.[/red]")
            rprint("Recommendation: check the WhatsApp configuration (whatsapp-cli debug-env) and retry")
        elif sent > 0:
            rprint("[green]Campaign completed.[/green]")

    finally:
        db.close()


@app.command()
def reset_and_retry_number(
    campaign_id: str = typer.Argument(..., help="Campaign UUID"),
    phone: str = typer.Argument(..., help="Recipient phone number (any accepted format)"),
):
    """
    Reset one recipient (retry budget, error, retry timestamps) and queue the campaign.
    """
    from ticketing.phone import try_normalize_blast_phone_number

    campaign_uuid = parse_uuid(campaign_id)
    normalized = try_normalize_blast_phone_number(phone)
    if not normalized:
        rprint(f"[red]Invalid phone number: {phone}[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        from messaging_whatsapp.persistence.repo import BlastRepository
        from messaging_whatsapp.streams import BlastJobProducer, ensure_blast_streams

        repo = BlastRepository(db)
        recipient = repo.find_recipient_by_phone(campaign_uuid, normalized)
        if not recipient:
            rprint(f"[red]No recipient {normalized} in campaign {campaign_id}[/red]")
            raise typer.Exit(1)

        rprint(f"[cyan]Found recipient {recipient.id}[/cyan]")
        rprint(f"  Status: {recipient.status}")
        rprint(f"  Retry count: {recipient.retry_count}")
        rprint(f"  Last error: {recipient.error_message or '-'}")

        repo.reset_recipient(recipient)
        db.commit()
        rprint("[green]Recipient reset to pending with retry count 0[/green]")

        redis_client = get_redis()
        ensure_blast_streams(redis_client)
        msg_id = BlastJobProducer(redis_client).publish_blast_start(campaign_uuid, requested_by="cli")
        rprint(f"[green]Campaign queued ({msg_id})[/green]")
        rprint(f"Check progress with: whatsapp-cli check-campaign-status {campaign_id}")

    finally:
        db.close()


@app.command()
def retry_failed(
    campaign_id: Optional[str] = typer.Option(None, help="Only this campaign"),
    max_retries: int = typer.Option(3, help="Skip recipients that already used this many retries"),
    delay_minutes: int = typer.Option(5, help="Base delay before a recipient is retried"),
):
    """
    Reschedule failed recipients and queue retry runs.
    """
    campaign_uuid = parse_uuid(campaign_id) if campaign_id else None
    db = get_db()

    try:
        from messaging_whatsapp.service.retry import RetryScheduler
        from messaging_whatsapp.streams import BlastJobProducer, ensure_blast_streams

        redis_client = get_redis()
        ensure_blast_streams(redis_client)
        scheduler = RetryScheduler(db, BlastJobProducer(redis_client))
        result = scheduler.run(
            campaign_id=campaign_uuid,
            max_retries=max_retries,
            delay_minutes=delay_minutes,
        )

        rprint(f"[cyan]{result['message']}[/cyan]")
        details = result["stats"]["details"]
        if details:
            table = Table(title="Recipients")
            table.add_column("Phone")
            table.add_column("Result")
            table.add_column("Reason")
            for d in details:
                table.add_row(d["phone"], d["status"], d["reason"])
            console.print(table)

        summary = result.get("summary")
        if summary:
            rprint(
                f"Retried {summary['retried']}/{summary['total_eligible']} "
                f"({summary['success_rate']}%), skipped {summary['skipped']}, errors {summary['errors']}"
            )

    finally:
        db.close()


@app.command()
def start_campaign(
    campaign_id: str = typer.Argument(..., help="Campaign UUID"),
    sync: bool = typer.Option(False, "--sync", help="Run in this process instead of queueing"),
):
    """
    Start sending a campaign.
    """
    campaign_uuid = parse_uuid(campaign_id)

    if not sync:
        from messaging_whatsapp.streams import BlastJobProducer, ensure_blast_streams

        redis_client = get_redis()
        ensure_blast_streams(redis_client)
        msg_id = BlastJobProducer(redis_client).publish_blast_start(campaign_uuid, requested_by="cli")
        rprint(f"[green]Campaign queued ({msg_id})[/green]")
        return

    db = get_db()

    try:
        from messaging_whatsapp.providers import get_provider
        from messaging_whatsapp.service.blast import BlastRunner
        from ticketing.errors import CampaignAlreadyRunning, NotFound

        async def run():
            provider = get_provider()
            try:
                return await BlastRunner(db, provider).process_campaign(campaign_uuid)
            finally:
                await provider.close()

        try:
            result = asyncio.run(run())
        except (NotFound, CampaignAlreadyRunning) as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)

        rprint(f"[green]Processed {result.processed}: {result.success} sent, {result.failed} failed[/green]")

    finally:
        db.close()


@app.command()
def debug_env(
    campaign_id: Optional[str] = typer.Option(None, help="Include this campaign's state"),
):
    """
    Show configuration presence plus database, WhatsApp and Redis connectivity.
    """
    campaign_uuid = parse_uuid(campaign_id) if campaign_id else None
    db = get_db()

    try:
        from basecore.settings import get_settings
        from messaging_whatsapp.providers import get_provider
        from messaging_whatsapp.service.blast import build_debug_report

        async def run():
            provider = get_provider()
            try:
                return await build_debug_report(db, get_settings(), provider, campaign_uuid)
            finally:
                await provider.close()

        report = asyncio.run(run())

        from basecore.redis import ping
        from messaging_whatsapp.streams.groups import BLAST_JOBS_STREAM, get_pending_count

        report["queue"] = {"redis_reachable": ping()}
        if report["queue"]["redis_reachable"]:
            report["queue"]["pending_jobs"] = get_pending_count(get_redis(), BLAST_JOBS_STREAM)

        console.print_json(json.dumps(report, default=str))

    finally:
        db.close()


@app.command()
def send_test(
    to: str = typer.Argument(..., help="Recipient phone number"),
    template: Optional[str] = typer.Option(None, help="Template name (defaults to WHATSAPP_TEMPLATE_NAME)"),
    image_url: Optional[str] = typer.Option(None, help="Header image URL"),
):
    """
    Send the ticket template with sample values.
    """
    from basecore.settings import get_settings
    from messaging_whatsapp.providers import get_provider
    from messaging_whatsapp.providers.meta_cloud.templates import TICKET_TEMPLATE, template_registry
    from ticketing.phone import try_normalize_blast_phone_number

    phone = try_normalize_blast_phone_number(to)
    if not phone:
        rprint(f"[red]Invalid phone number: {to}[/red]")
        raise typer.Exit(1)

    template_name = template or get_settings().WHATSAPP_TEMPLATE_NAME or TICKET_TEMPLATE
    variables = {
        "customer_name": "Peserta Uji",
        "event_name": "Test Event",
        "date": "Jumat, 8 Agustus 2025",
        "time": "19.00",
        "location": "Jakarta",
        "ticket_code": "TEST1234",
        "dresscode": "Smart Casual / Semi Formal",
        "qr_image_url": image_url,
    }
    components = template_registry.build_components(template_name, variables, layout=TICKET_TEMPLATE)

    async def send():
        provider = get_provider()
        try:
            return await provider.send_template(
                to=phone,
                template_name=template_name,
                language_code="id",
                components=components,
            )
        finally:
            await provider.close()

    response = asyncio.run(send())

    if response.success:
        rprint("[green]Message sent successfully![/green]")
        rprint(f"  Message ID: {response.message_id}")
    else:
        rprint("[red]Failed to send message[/red]")
        rprint(f"  Error: {response.error_message}")
        rprint(f"  Code: {response.error_code}")
        raise typer.Exit(1)


@app.command()
def replay_dlq(
    limit: int = typer.Option(10, help="Maximum messages to replay"),
):
    """
    Replay jobs from the dead letter queue.

    Reads DLQ entries and republishes the original jobs to the jobs stream.
    """
    import redis

    from messaging_whatsapp.contracts.envelope import BlastJobEnvelope
    from messaging_whatsapp.streams.groups import BLAST_JOBS_STREAM, DLQ_STREAM

    redis_client = get_redis()

    try:
        messages = redis_client.xrange(DLQ_STREAM, count=limit)
    except redis.RedisError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not messages:
        rprint("[yellow]No messages in DLQ[/yellow]")
        raise typer.Exit(0)

    rprint(f"[cyan]Found {len(messages)} messages in DLQ[/cyan]")

    replayed = 0
    for msg_id, data in messages:
        try:
            envelope = BlastJobEnvelope.from_stream_message(msg_id, data)
            original_event = envelope.payload.get("original_event", {})
            if not original_event:
                rprint(f"[yellow]Skipping {msg_id}: no original_event[/yellow]")
                continue

            original = BlastJobEnvelope.from_dict(original_event)
            original.metadata = {"replayed_from": msg_id}
            redis_client.xadd(BLAST_JOBS_STREAM, original.to_stream_data())
            redis_client.xdel(DLQ_STREAM, msg_id)
        except (KeyError, ValueError, redis.RedisError) as e:
            rprint(f"[red]Failed to replay {msg_id}: {e}[/red]")
            continue

        replayed += 1
        rprint(f"[green]Replayed {msg_id}[/green]")

    rprint(f"\n[green]Replayed {replayed} messages[/green]")


if __name__ == "__main__":
    app()
