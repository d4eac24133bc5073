"""
WhatsApp Blast Repository

Repository pattern for blast campaign database operations.
Callers own the transaction; nothing here commits.
"""

from datetime import datetime, timedelta
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from basecore.timeutil import utcnow
from messaging_whatsapp.persistence.models import (
    BlastCampaign,
    BlastRecipient,
    CampaignStatus,
    RecipientStatus,
)


class BlastRepository:
    """Repository for blast campaigns and recipients."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Campaigns
    # =========================================================================

    def get_campaign(self, campaign_id: UUID) -> BlastCampaign | None:
        return self.db.query(BlastCampaign).filter(BlastCampaign.id == campaign_id).first()

    def list_campaigns(self, limit: int = 100) -> list[BlastCampaign]:
        """Newest first."""
        return (
            self.db.query(BlastCampaign)
            .order_by(BlastCampaign.created_at.desc())
            .limit(limit)
            .all()
        )

    def delete_campaign(self, campaign: BlastCampaign) -> int:
        """Delete a campaign and its recipients; returns the recipient count removed."""
        removed = (
            self.db.query(BlastRecipient)
            .filter(BlastRecipient.campaign_id == campaign.id)
            .delete(synchronize_session=False)
        )
        # Loaded recipients are gone already; keep the ORM from re-parenting them
        self.db.expire(campaign, ["recipients"])
        self.db.delete(campaign)
        self.db.flush()
        return removed

    def create_campaign(
        self,
        name: str,
        template_name: str,
        template_params: dict[str, Any],
        recipients: Iterable[tuple[str, str | None]],
        created_by: UUID | None = None,
    ) -> BlastCampaign:
        """Create a draft campaign with its pending recipients."""
        recipients = list(recipients)
        campaign = BlastCampaign(
            name=name,
            template_name=template_name,
            template_params=template_params,
            status=CampaignStatus.DRAFT.value,
            total_recipients=len(recipients),
            created_by=created_by,
        )
        self.db.add(campaign)
        self.db.flush()

        self.db.add_all([
            BlastRecipient(
                campaign_id=campaign.id,
                phone_number=phone,
                name=name_,
                status=RecipientStatus.PENDING.value,
            )
            for phone, name_ in recipients
        ])
        self.db.flush()
        return campaign

    def claim_campaign(self, campaign_id: UUID, stale_after: timedelta) -> bool:
        """
        Atomically move a campaign to sending.

        Fails while another worker is sending it, unless that worker's
        heartbeat is older than stale_after.
        """
        now = utcnow()
        claimed = (
            self.db.query(BlastCampaign)
            .filter(
                BlastCampaign.id == campaign_id,
                or_(
                    BlastCampaign.status != CampaignStatus.SENDING.value,
                    BlastCampaign.heartbeat_at.is_(None),
                    BlastCampaign.heartbeat_at < now - stale_after,
                ),
            )
            .update(
                {
                    BlastCampaign.status: CampaignStatus.SENDING.value,
                    BlastCampaign.started_at: now,
                    BlastCampaign.heartbeat_at: now,
                    BlastCampaign.error_message: None,
                },
                synchronize_session=False,
            )
        )
        return claimed == 1

    def touch_campaign(self, campaign: BlastCampaign) -> None:
        campaign.heartbeat_at = utcnow()
        self.db.flush()

    def update_progress(self, campaign: BlastCampaign, sent: int, failed: int, progress: int) -> None:
        campaign.sent_count = sent
        campaign.failed_count = failed
        campaign.progress_percentage = progress
        campaign.heartbeat_at = utcnow()
        self.db.flush()

    def complete_campaign(
        self,
        campaign: BlastCampaign,
        sent: int | None = None,
        failed: int | None = None,
        processing_minutes: float | None = None,
    ) -> None:
        campaign.status = CampaignStatus.COMPLETED.value
        campaign.completed_at = utcnow()
        campaign.progress_percentage = 100
        if sent is not None:
            campaign.sent_count = sent
        if failed is not None:
            campaign.failed_count = failed
        if processing_minutes is not None:
            campaign.processing_time_minutes = round(processing_minutes, 2)
        self.db.flush()

    def fail_campaign(self, campaign: BlastCampaign, error: str, processing_minutes: float) -> None:
        campaign.status = CampaignStatus.FAILED.value
        campaign.completed_at = utcnow()
        campaign.error_message = error
        campaign.processing_time_minutes = round(processing_minutes, 2)
        self.db.flush()

    def status_counts(self, campaign_id: UUID) -> dict[str, int]:
        """Recipient count per status (every status present, zero when absent)."""
        rows = (
            self.db.query(BlastRecipient.status, func.count(BlastRecipient.id))
            .filter(BlastRecipient.campaign_id == campaign_id)
            .group_by(BlastRecipient.status)
            .all()
        )
        counts = {status.value: 0 for status in RecipientStatus}
        counts.update({status: count for status, count in rows})
        return counts

    # =========================================================================
    # Recipients
    # =========================================================================

    def get_pending_recipients(self, campaign_id: UUID) -> list[BlastRecipient]:
        return (
            self.db.query(BlastRecipient)
            .filter(
                BlastRecipient.campaign_id == campaign_id,
                BlastRecipient.status == RecipientStatus.PENDING.value,
            )
            .order_by(BlastRecipient.created_at.asc())
            .all()
        )

    def get_pending_by_ids(self, campaign_id: UUID, recipient_ids: list[UUID]) -> list[BlastRecipient]:
        return (
            self.db.query(BlastRecipient)
            .filter(
                BlastRecipient.campaign_id == campaign_id,
                BlastRecipient.id.in_(recipient_ids),
                BlastRecipient.status == RecipientStatus.PENDING.value,
            )
            .order_by(BlastRecipient.created_at.asc())
            .all()
        )

    def recent_recipients(
        self,
        campaign_id: UUID,
        status: RecipientStatus | None = None,
        limit: int = 10,
    ) -> list[BlastRecipient]:
        query = self.db.query(BlastRecipient).filter(BlastRecipient.campaign_id == campaign_id)
        if status is not None:
            query = query.filter(BlastRecipient.status == status.value)
        order = BlastRecipient.sent_at if status == RecipientStatus.SENT else BlastRecipient.created_at
        if status == RecipientStatus.FAILED:
            order = BlastRecipient.failed_at
        return query.order_by(order.desc()).limit(limit).all()

    def find_recipient_by_phone(self, campaign_id: UUID, phone_number: str) -> BlastRecipient | None:
        return (
            self.db.query(BlastRecipient)
            .filter(
                BlastRecipient.campaign_id == campaign_id,
                BlastRecipient.phone_number == phone_number,
            )
            .first()
        )

    def mark_sent(self, recipient: BlastRecipient, message_id: str | None) -> None:
        recipient.status = RecipientStatus.SENT.value
        recipient.message_id = message_id
        recipient.sent_at = utcnow()
        recipient.error_message = None
        self.db.flush()

    def mark_failed(self, recipient: BlastRecipient, error: str) -> None:
        recipient.status = RecipientStatus.FAILED.value
        recipient.failed_at = utcnow()
        recipient.error_message = error
        recipient.retry_count = (recipient.retry_count or 0) + 1
        self.db.flush()

    def get_retry_candidates(
        self,
        max_retries: int,
        campaign_id: UUID | None = None,
        recipient_ids: list[UUID] | None = None,
    ) -> list[BlastRecipient]:
        """Failed recipients that still have retry budget."""
        query = self.db.query(BlastRecipient).filter(
            BlastRecipient.status == RecipientStatus.FAILED.value,
            BlastRecipient.retry_count < max_retries,
        )
        if campaign_id:
            query = query.filter(BlastRecipient.campaign_id == campaign_id)
        if recipient_ids:
            query = query.filter(BlastRecipient.id.in_(recipient_ids))
        return query.order_by(BlastRecipient.failed_at.asc()).all()

    def schedule_retry(
        self,
        recipient: BlastRecipient,
        now: datetime,
        next_retry_at: datetime,
        reason: str,
    ) -> None:
        recipient.status = RecipientStatus.PENDING.value
        recipient.retry_count = (recipient.retry_count or 0) + 1
        recipient.last_retry_at = now
        recipient.next_retry_at = next_retry_at
        recipient.retry_reason = reason
        recipient.error_message = None
        self.db.flush()

    def reset_recipient(self, recipient: BlastRecipient) -> None:
        """Give a recipient a clean slate (retry budget, error, timestamps)."""
        recipient.status = RecipientStatus.PENDING.value
        recipient.retry_count = 0
        recipient.error_message = None
        recipient.last_retry_at = None
        recipient.next_retry_at = None
        recipient.retry_reason = None
        recipient.failed_at = None
        self.db.flush()

    def find_by_message_id(self, message_id: str) -> list[BlastRecipient]:
        return self.db.query(BlastRecipient).filter(BlastRecipient.message_id == message_id).all()

    def update_delivery_status(
        self,
        recipient: BlastRecipient,
        status: RecipientStatus,
        timestamp: datetime,
        error_message: str | None = None,
    ) -> None:
        """Apply a webhook status; each status owns one timestamp column."""
        recipient.status = status.value
        if status == RecipientStatus.SENT:
            recipient.sent_at = timestamp
        elif status == RecipientStatus.DELIVERED:
            recipient.delivered_at = timestamp
        elif status == RecipientStatus.READ:
            recipient.read_at = timestamp
        elif status == RecipientStatus.FAILED:
            recipient.failed_at = timestamp
            if error_message:
                recipient.error_message = error_message
        self.db.flush()
