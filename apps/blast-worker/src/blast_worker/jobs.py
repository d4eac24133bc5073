"""
Blast Job Handling

Turns one envelope from the blast stream into a BlastRunner run.
Kept apart from the worker loop so it can run without Redis or signals.
"""

import dataclasses
import logging
from typing import Any

from sqlalchemy.orm import Session

from messaging_whatsapp.contracts.envelope import BlastJobEnvelope
from messaging_whatsapp.contracts.event_types import BlastEventType
from messaging_whatsapp.contracts.payloads import BlastJobPayload
from messaging_whatsapp.providers.base import WhatsAppProvider
from messaging_whatsapp.service.blast import BlastRunner
from messaging_whatsapp.service.rate_limit import RATE_LIMITS, RateLimitConfig

logger = logging.getLogger(__name__)

# Retry runs are small; they do not need the full pause between batches
RETRY_BATCH_DELAY_MS = 30000


def runner_config(payload: BlastJobPayload) -> RateLimitConfig:
    """Rate-limit settings for a job, honoring the retry batch size hint."""
    if payload.mode == "retry" and payload.batch_size:
        return dataclasses.replace(
            RATE_LIMITS,
            batch_size=payload.batch_size,
            batch_delay_ms=RETRY_BATCH_DELAY_MS,
        )
    return RATE_LIMITS


async def handle_job(
    db: Session,
    provider: WhatsAppProvider,
    envelope: BlastJobEnvelope,
    runner_factory=BlastRunner,
) -> dict[str, Any]:
    """
    Run the campaign a job points at.

    Raises:
        NotFound: campaign no longer exists (caller should ack)
        ValueError/KeyError: payload is malformed (caller should ack)
    """
    if envelope.event_type not in (
        BlastEventType.BLAST_START_REQUESTED.value,
        BlastEventType.BLAST_RETRY_REQUESTED.value,
    ):
        logger.warning(f"Ignoring event type: {envelope.event_type}")
        return {"status": "ignored", "event_type": envelope.event_type}

    payload = BlastJobPayload.from_dict(envelope.payload)
    runner = runner_factory(db, provider, config=runner_config(payload))

    if payload.recipient_ids:
        result = await runner.process_batch(payload.campaign_id, payload.recipient_ids)
    else:
        result = await runner.process_campaign(payload.campaign_id)

    logger.info(
        f"Blast job for campaign {payload.campaign_id} finished",
        extra={
            "event_id": str(envelope.event_id),
            "mode": payload.mode,
            **result.to_dict(),
        },
    )
    return {"status": "processed", "campaign_id": str(payload.campaign_id), **result.to_dict()}
