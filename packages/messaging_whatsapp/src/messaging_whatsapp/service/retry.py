"""
Blast Retry Scheduler

Puts failed blast recipients back to pending so the next blast run picks
them up. The delay before a recipient becomes eligible again depends on
what the last error looked like; permanent errors are never retried.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from basecore.timeutil import as_utc, utcnow
from messaging_whatsapp.persistence.repo import BlastRepository
from messaging_whatsapp.streams.producer import BlastJobProducer

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_DELAY_MINUTES = 5
MAX_RETRY_BATCH = 5

PERMANENT_ERROR_REASON = "Permanent error - not retryable"


@dataclass
class RetryDecision:
    retry: bool
    delay_minutes: int


def classify_error(error_message: str | None, delay_minutes: int) -> RetryDecision:
    """
    Decide whether and when to retry based on the stored error text.

    - phone format errors: retry now (numbers are re-normalized on send)
    - rate limit / too many requests: twice the normal delay
    - timeout / network: normal delay
    - invalid number / blocked: never
    Anything else retries after the normal delay.
    """
    if not error_message:
        return RetryDecision(True, delay_minutes)

    msg = error_message.lower()
    if "invalid phone number format" in msg:
        return RetryDecision(True, 0)
    if "rate limit" in msg or "too many requests" in msg:
        return RetryDecision(True, delay_minutes * 2)
    if "timeout" in msg or "network" in msg:
        return RetryDecision(True, delay_minutes)
    if "invalid number" in msg or "blocked" in msg:
        return RetryDecision(False, 0)
    return RetryDecision(True, delay_minutes)


@dataclass
class RetryStats:
    total_eligible: int = 0
    retried: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    def add(self, recipient_id: UUID, phone: str, status: str, reason: str) -> None:
        self.details.append({
            "recipient_id": str(recipient_id),
            "phone": phone,
            "status": status,
            "reason": reason,
        })

    @property
    def success_rate(self) -> int:
        if not self.total_eligible:
            return 0
        return math.floor(self.retried / self.total_eligible * 100 + 0.5)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_eligible": self.total_eligible,
            "retried": self.retried,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": self.details,
        }

    def summary(self) -> dict[str, int]:
        return {
            "total_eligible": self.total_eligible,
            "retried": self.retried,
            "skipped": self.skipped,
            "errors": self.errors,
            "success_rate": self.success_rate,
        }


class RetryScheduler:
    """
    Reschedules failed blast recipients.

    When anything was rescheduled and a producer is available, a retry job
    is queued for each affected campaign.
    """

    def __init__(self, db: Session, producer: BlastJobProducer | None = None):
        self.db = db
        self.repo = BlastRepository(db)
        self.producer = producer

    def run(
        self,
        campaign_id: UUID | None = None,
        recipient_ids: list[UUID] | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delay_minutes: int = DEFAULT_DELAY_MINUTES,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        now = now or utcnow()
        candidates = self.repo.get_retry_candidates(max_retries, campaign_id, recipient_ids)

        logger.info(
            f"Retry requested: {len(candidates)} eligible recipients",
            extra={
                "campaign_id": str(campaign_id) if campaign_id else None,
                "recipient_ids": len(recipient_ids) if recipient_ids else "all",
                "max_retries": max_retries,
                "delay_minutes": delay_minutes,
            },
        )

        if not candidates:
            return {
                "message": "No eligible recipients found for retry",
                "stats": RetryStats().to_dict(),
            }

        stats = RetryStats(total_eligible=len(candidates))
        retried_campaigns: dict[UUID, int] = {}

        for recipient in candidates:
            # Plain values up front; a rollback below expires the instance
            recipient_id = recipient.id
            phone = recipient.phone_number
            recipient_campaign = recipient.campaign_id

            last_retry = as_utc(recipient.last_retry_at)
            if last_retry is not None:
                eligible_at = last_retry + timedelta(minutes=delay_minutes)
                if now < eligible_at:
                    wait = math.ceil((eligible_at - now).total_seconds() / 60)
                    stats.skipped += 1
                    stats.add(recipient_id, phone, "skipped", f"Too soon for retry (wait {wait} more minutes)")
                    continue

            decision = classify_error(recipient.error_message, delay_minutes)
            if not decision.retry:
                stats.skipped += 1
                stats.add(recipient_id, phone, "skipped", PERMANENT_ERROR_REASON)
                continue

            attempt = (recipient.retry_count or 0) + 1
            reason = f"Retry attempt {attempt} - {recipient.error_message or 'Unknown error'}"
            try:
                self.repo.schedule_retry(
                    recipient,
                    now=now,
                    next_retry_at=now + timedelta(minutes=decision.delay_minutes),
                    reason=reason,
                )
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to reschedule recipient {recipient_id}: {e}", exc_info=True)
                stats.errors += 1
                stats.add(recipient_id, phone, "error", f"Update failed: {e}")
                continue

            stats.retried += 1
            stats.add(recipient_id, phone, "retried", f"Scheduled for retry in {decision.delay_minutes} minutes")
            retried_campaigns[recipient_campaign] = retried_campaigns.get(recipient_campaign, 0) + 1

        self._trigger_blasts(retried_campaigns)

        logger.info("Retry summary", extra=stats.summary())
        return {
            "message": "Retry process completed",
            "stats": stats.to_dict(),
            "summary": stats.summary(),
        }

    def _trigger_blasts(self, retried_campaigns: dict[UUID, int]) -> None:
        if not self.producer:
            return
        for campaign_id, count in retried_campaigns.items():
            try:
                self.producer.publish_blast_retry(campaign_id, batch_size=min(count, MAX_RETRY_BATCH))
            except redis.RedisError as e:
                # Recipients stay pending; the next blast run still sends them
                logger.warning(f"Failed to queue retry blast for campaign {campaign_id}: {e}")
