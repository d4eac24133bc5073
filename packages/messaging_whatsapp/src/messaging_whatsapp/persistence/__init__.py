"""
WhatsApp Blast Persistence

SQLAlchemy models and repository for blast campaigns and recipients.
"""

from messaging_whatsapp.persistence.models import (
    BlastCampaign,
    BlastRecipient,
    CampaignStatus,
    RecipientStatus,
    WhatsAppBase,
)
from messaging_whatsapp.persistence.repo import BlastRepository

__all__ = [
    "WhatsAppBase",
    "BlastCampaign",
    "BlastRecipient",
    "BlastRepository",
    "CampaignStatus",
    "RecipientStatus",
]
