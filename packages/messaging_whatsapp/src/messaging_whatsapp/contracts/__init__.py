"""
Blast Job Contracts

Event types, payloads, and envelope for blast jobs on Redis Streams.
"""

from messaging_whatsapp.contracts.envelope import BlastJobEnvelope
from messaging_whatsapp.contracts.event_types import BlastEventType
from messaging_whatsapp.contracts.payloads import BlastJobPayload

__all__ = [
    "BlastEventType",
    "BlastJobEnvelope",
    "BlastJobPayload",
]
