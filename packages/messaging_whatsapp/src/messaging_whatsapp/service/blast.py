"""
WhatsApp Blast Runner

Sends a campaign's template to its pending recipients:
1. Claims the campaign (one sender at a time, stale claims are taken over)
2. Splits pending recipients into batches
3. Paces every send through the rate limiter and adaptive delay
4. Records per-recipient outcome (sent / failed)
5. Persists progress between batches and final counts

Also builds the diagnostics report served by the "debug" action.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

from basecore.settings import Settings
from basecore.timeutil import utcnow
from messaging_whatsapp.persistence.models import BlastCampaign, BlastRecipient
from messaging_whatsapp.persistence.repo import BlastRepository
from messaging_whatsapp.providers.base import ProviderError, WhatsAppProvider
from messaging_whatsapp.providers.meta_cloud.templates import BLAST_TEMPLATE, template_registry
from messaging_whatsapp.service.rate_limit import (
    GLOBAL_KEY,
    RATE_LIMITS,
    BatchQueue,
    RateLimitConfig,
    SlidingWindowRateLimiter,
    calculate_adaptive_delay,
)
from ticketing.errors import CampaignAlreadyRunning, InvalidRequest, NotFound
from ticketing.phone import digits_only, is_valid_blast_phone_number, try_normalize_blast_phone_number

logger = logging.getLogger(__name__)

BLAST_ACTIONS = ("start", "create", "batch")
DEBUG_ACTIONS = ("debug", "check_env")

# A sending campaign whose heartbeat is older than this is considered abandoned
CLAIM_STALE_AFTER = timedelta(minutes=10)

# UUID versions 1-5, RFC 4122 variant
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

DEFAULT_BLAST_PARAMS = {
    "participant_name": "Peserta",
    "location": "TBA",
    "address": "TBA",
    "date": "TBA",
    "time": "TBA",
}

Sleep = Callable[[float], Awaitable[None]]


def parse_campaign_id(value: Any) -> UUID:
    """Validate a campaign id from a request body."""
    if not value:
        raise InvalidRequest("campaign_id is required")
    if not isinstance(value, (str, UUID)) or not UUID_PATTERN.match(str(value)):
        raise InvalidRequest("campaign_id must be a valid UUID", details={"campaign_id": str(value)})
    return UUID(str(value))


def validate_action(action: str) -> str:
    if action not in BLAST_ACTIONS:
        raise InvalidRequest('action must be either "start", "create", or "batch"')
    return action


def build_blast_params(campaign: BlastCampaign, recipient: BlastRecipient) -> dict[str, Any]:
    """Campaign params with the recipient's own name as participant_name."""
    params = dict(campaign.template_params or DEFAULT_BLAST_PARAMS)
    params["participant_name"] = recipient.name or params.get("participant_name")
    return params


def is_throttle_error(message: str) -> bool:
    lowered = message.lower()
    return "rate limit" in lowered or "throttle" in lowered


class RecipientSendError(Exception):
    """A single recipient could not be sent to."""


@dataclass
class BlastResult:
    processed: int = 0
    success: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "success": self.success, "failed": self.failed}


class BlastRunner:
    """
    Runs blast campaigns against a WhatsApp provider.

    Commits after every recipient so progress survives a crash mid-campaign.
    """

    def __init__(
        self,
        db: Session,
        provider: WhatsAppProvider,
        limiter: SlidingWindowRateLimiter | None = None,
        config: RateLimitConfig = RATE_LIMITS,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.repo = BlastRepository(db)
        self.provider = provider
        self.config = config
        self.limiter = limiter or SlidingWindowRateLimiter(config)
        self._sleep = sleep
        self._clock = clock
        self.error_count = 0

    async def _pause(self, delay_ms: float) -> None:
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    # =========================================================================
    # Campaign
    # =========================================================================

    async def process_campaign(self, campaign_id: UUID) -> BlastResult:
        """
        Send a campaign to every pending recipient.

        Unexpected errors mark the campaign failed with the elapsed time;
        single-recipient failures never stop the campaign.

        Raises:
            NotFound: unknown campaign
            CampaignAlreadyRunning: another runner holds a live claim
        """
        campaign = self.repo.get_campaign(campaign_id)
        if not campaign:
            raise NotFound(f"Campaign not found: {campaign_id}")

        claimed = self.repo.claim_campaign(campaign_id, CLAIM_STALE_AFTER)
        self.db.commit()
        if not claimed:
            raise CampaignAlreadyRunning(
                f"Campaign {campaign_id} is already being sent",
                details={"campaign_id": str(campaign_id)},
            )
        self.db.refresh(campaign)

        started = self._clock()
        result = BlastResult()

        logger.info(
            f"Starting blast campaign {campaign.name}",
            extra={
                "campaign_id": str(campaign_id),
                "template": campaign.template_name,
                "rate_limits": self.config.as_dict(),
            },
        )

        try:
            recipients = self.repo.get_pending_recipients(campaign_id)
            if not recipients:
                logger.info(f"No pending recipients for campaign {campaign_id}")
                self.repo.complete_campaign(campaign)
                self.db.commit()
                return result

            queue = BatchQueue(recipients, self.config.batch_size)
            for batch in queue:
                logger.info(
                    f"Processing batch {batch.batch_number}/{batch.total_batches} ({batch.progress_pct}%)",
                    extra={"campaign_id": str(campaign_id), "batch_size": len(batch.items)},
                )
                batch_success = 0

                for position, recipient in enumerate(batch.items):
                    index = (batch.batch_number - 1) * self.config.batch_size + position
                    sent = await self._process_recipient(
                        campaign,
                        recipient,
                        progress_pct=batch.progress_pct,
                        delay_before=index > 0,
                    )
                    result.processed += 1
                    if sent:
                        result.success += 1
                        batch_success += 1
                    else:
                        result.failed += 1
                    self.repo.touch_campaign(campaign)
                    self.db.commit()

                logger.info(
                    f"Batch {batch.batch_number}/{batch.total_batches} done: "
                    f"{batch_success}/{len(batch.items)} sent",
                    extra={"campaign_id": str(campaign_id)},
                )

                if queue.has_next():
                    await self._pause(self.config.batch_delay_ms)
                    self.repo.update_progress(
                        campaign, result.success, result.failed, int(batch.progress_pct)
                    )
                    self.db.commit()

            minutes = (self._clock() - started) / 60
            self.repo.complete_campaign(campaign, result.success, result.failed, minutes)
            self.db.commit()

            logger.info(
                f"Campaign {campaign_id} completed: {result.success} sent, {result.failed} failed",
                extra={
                    "campaign_id": str(campaign_id),
                    "processing_time_minutes": round(minutes, 2),
                },
            )
            return result

        except Exception as e:
            logger.error(f"Campaign {campaign_id} failed: {e}", exc_info=True)
            self.db.rollback()
            campaign = self.repo.get_campaign(campaign_id)
            if campaign:
                self.repo.fail_campaign(campaign, str(e), (self._clock() - started) / 60)
                self.db.commit()
            return result

    async def process_batch(self, campaign_id: UUID, recipient_ids: list[UUID]) -> BlastResult:
        """Send to the given recipients of a campaign (pending ones only)."""
        campaign = self.repo.get_campaign(campaign_id)
        if not campaign:
            raise NotFound(f"Campaign not found: {campaign_id}")

        recipients = self.repo.get_pending_by_ids(campaign_id, recipient_ids)
        result = BlastResult()
        if not recipients:
            logger.info(f"No pending recipients among {len(recipient_ids)} ids for campaign {campaign_id}")
            return result

        total = len(recipients)
        for i, recipient in enumerate(recipients):
            sent = await self._process_recipient(
                campaign,
                recipient,
                progress_pct=i / total * 100,
                delay_before=i > 0,
            )
            result.processed += 1
            if sent:
                result.success += 1
            else:
                result.failed += 1

        logger.info(
            f"Manual batch for campaign {campaign_id}: {result.success} sent, {result.failed} failed",
            extra={"campaign_id": str(campaign_id), "processed": result.processed},
        )
        return result

    # =========================================================================
    # Recipient
    # =========================================================================

    async def _process_recipient(
        self,
        campaign: BlastCampaign,
        recipient: BlastRecipient,
        progress_pct: float,
        delay_before: bool,
    ) -> bool:
        phone = recipient.phone_number
        try:
            if self.limiter.is_limited(phone) or self.limiter.is_limited(GLOBAL_KEY):
                delay = calculate_adaptive_delay(self.error_count, progress_pct, self.config)
                logger.warning(f"Rate limited, extended delay {delay}ms", extra={"phone": phone})
                await self._pause(delay)

            if not is_valid_blast_phone_number(phone):
                raise RecipientSendError("Invalid phone number format")

            if delay_before:
                await self._pause(calculate_adaptive_delay(self.error_count, progress_pct, self.config))

            message_id = await self._send(campaign, recipient)

        except (RecipientSendError, ProviderError, ValueError) as e:
            self._record_failure(recipient, str(e))
            if is_throttle_error(str(e)):
                cooldown = self.config.cooldown_ms / 10
                self.limiter.add_cooldown(GLOBAL_KEY, cooldown)
                await self._pause(cooldown)
            return False

        self.limiter.record(phone, True)
        self.limiter.record(GLOBAL_KEY, True)
        self.error_count = max(0, self.error_count - 1)
        self.repo.mark_sent(recipient, message_id)
        self.db.commit()
        logger.info(
            f"Blast message sent to {phone}",
            extra={"campaign_id": str(campaign.id), "message_id": message_id},
        )
        return True

    async def _send(self, campaign: BlastCampaign, recipient: BlastRecipient) -> str | None:
        to = try_normalize_blast_phone_number(recipient.phone_number) or digits_only(recipient.phone_number)
        components = template_registry.build_components(
            campaign.template_name,
            build_blast_params(campaign, recipient),
            layout=BLAST_TEMPLATE,
        )
        response = await self.provider.send_template(
            to=to,
            template_name=campaign.template_name,
            language_code="id",
            components=components,
        )
        if not response.success:
            raise RecipientSendError(f"WhatsApp API error: {response.error_message or 'Unknown error'}")
        return response.message_id

    def _record_failure(self, recipient: BlastRecipient, error: str) -> None:
        self.limiter.record(recipient.phone_number, False)
        self.error_count += 1
        self.repo.mark_failed(recipient, error)
        self.db.commit()
        logger.warning(
            f"Blast message to {recipient.phone_number} failed: {error}",
            extra={"recipient_id": str(recipient.id), "retry_count": recipient.retry_count},
        )


# =============================================================================
# Diagnostics
# =============================================================================


def _preview(value: str, length: int) -> str | None:
    return f"{value[:length]}..." if value else None


async def build_debug_report(
    db: Session,
    settings: Settings,
    provider: WhatsAppProvider,
    campaign_id: UUID | None = None,
    config: RateLimitConfig = RATE_LIMITS,
) -> dict[str, Any]:
    """
    Report configuration presence, connectivity and campaign state.

    Secrets are never included beyond a short preview and their length.
    """
    report: dict[str, Any] = {
        "timestamp": utcnow().isoformat(),
        "environment_variables": {
            "DATABASE_URL": bool(settings.DATABASE_URL),
            "REDIS_URL": bool(settings.REDIS_URL),
            "WHATSAPP_PROVIDER": settings.WHATSAPP_PROVIDER,
            "WHATSAPP_ACCESS_TOKEN": bool(settings.WHATSAPP_ACCESS_TOKEN),
            "WHATSAPP_PHONE_NUMBER_ID": bool(settings.WHATSAPP_PHONE_NUMBER_ID),
            "WHATSAPP_TEMPLATE_NAME": settings.WHATSAPP_TEMPLATE_NAME or "not_set",
            "WHATSAPP_BLAST_TEMPLATE_NAME": settings.WHATSAPP_BLAST_TEMPLATE_NAME or "not_set",
        },
        "environment_values": {
            "WHATSAPP_PHONE_NUMBER_ID": settings.WHATSAPP_PHONE_NUMBER_ID or None,
            "WHATSAPP_ACCESS_TOKEN_LENGTH": len(settings.WHATSAPP_ACCESS_TOKEN or ""),
            "WHATSAPP_ACCESS_TOKEN_PREVIEW": _preview(settings.WHATSAPP_ACCESS_TOKEN, 20),
        },
        "rate_limits": config.as_dict(),
    }

    try:
        db.execute(text("SELECT 1"))
        report["database_connection"] = {"success": True, "error": None}
    except Exception as e:
        db.rollback()
        report["database_connection"] = {"success": False, "error": str(e)}

    if settings.WHATSAPP_PROVIDER == "meta" and not settings.whatsapp_configured:
        report["whatsapp_api_test"] = {"success": False, "error": "Missing WhatsApp credentials"}
    else:
        try:
            report["whatsapp_api_test"] = {
                "success": True,
                "response": await provider.get_phone_number_info(),
            }
        except ProviderError as e:
            report["whatsapp_api_test"] = {
                "success": False,
                "error": str(e),
                "status_code": e.details.get("status_code"),
            }

    if campaign_id:
        repo = BlastRepository(db)
        campaign = repo.get_campaign(campaign_id)
        if not campaign:
            report["campaign_info"] = {"error": "Campaign not found"}
        else:
            report["campaign_info"] = campaign_summary(campaign)
            report["recipients_status"] = repo.status_counts(campaign_id)
            report["recent_recipients"] = [
                recipient_summary(r) for r in repo.recent_recipients(campaign_id, limit=10)
            ]

    return report


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def campaign_summary(campaign: BlastCampaign) -> dict[str, Any]:
    return {
        "id": str(campaign.id),
        "name": campaign.name,
        "template_name": campaign.template_name,
        "template_params": campaign.template_params,
        "status": campaign.status,
        "total_recipients": campaign.total_recipients,
        "sent_count": campaign.sent_count,
        "failed_count": campaign.failed_count,
        "progress_percentage": campaign.progress_percentage,
        "processing_time_minutes": (
            float(campaign.processing_time_minutes)
            if campaign.processing_time_minutes is not None else None
        ),
        "error_message": campaign.error_message,
        "created_at": _iso(campaign.created_at),
        "started_at": _iso(campaign.started_at),
        "completed_at": _iso(campaign.completed_at),
    }


def recipient_summary(recipient: BlastRecipient) -> dict[str, Any]:
    return {
        "id": str(recipient.id),
        "phone_number": recipient.phone_number,
        "name": recipient.name,
        "status": recipient.status,
        "message_id": recipient.message_id,
        "retry_count": recipient.retry_count,
        "sent_at": _iso(recipient.sent_at),
        "delivered_at": _iso(recipient.delivered_at),
        "read_at": _iso(recipient.read_at),
        "failed_at": _iso(recipient.failed_at),
        "error_message": recipient.error_message,
    }
