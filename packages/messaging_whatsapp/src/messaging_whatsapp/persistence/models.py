"""
WhatsApp Blast Database Models

Tables owned by the WhatsApp blast feature:
- whatsapp_blast_campaigns: one bulk send of a template to an uploaded list
- whatsapp_blast_recipients: per-number delivery state and retry bookkeeping
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

from basecore.timeutil import utcnow

WhatsAppBase = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


class CampaignStatus(str, Enum):
    """Lifecycle of a blast campaign."""

    DRAFT = "draft"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"


class RecipientStatus(str, Enum):
    """Delivery state of one blast recipient."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class BlastCampaign(WhatsAppBase):
    """A bulk template send."""

    __tablename__ = "whatsapp_blast_campaigns"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    template_name = Column(String(100), nullable=False)
    template_params = Column(JSONType, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=CampaignStatus.DRAFT.value)
    total_recipients = Column(Integer, nullable=False, default=0)
    sent_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    progress_percentage = Column(Integer, nullable=False, default=0)
    processing_time_minutes = Column(Numeric(10, 2), nullable=True)
    error_message = Column(Text, nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Refreshed while a worker sends; a stale value lets another worker take over
    heartbeat_at = Column(DateTime(timezone=True), nullable=True)

    recipients = relationship("BlastRecipient", back_populates="campaign")


class BlastRecipient(WhatsAppBase):
    """
    One phone number in a campaign.

    message_id is the provider id of the last send and is how webhook
    status updates find the row.
    """

    __tablename__ = "whatsapp_blast_recipients"

    id = Column(Uuid, primary_key=True, default=uuid4)
    campaign_id = Column(
        Uuid, ForeignKey("whatsapp_blast_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    phone_number = Column(String(20), nullable=False)
    name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=RecipientStatus.PENDING.value)
    message_id = Column(String(128), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)
    retry_reason = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    campaign = relationship("BlastCampaign", back_populates="recipients")

    __table_args__ = (
        Index("idx_blast_recipients_campaign_status", "campaign_id", "status"),
        Index("idx_blast_recipients_message_id", "message_id"),
    )
