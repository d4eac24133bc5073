"""
Blast Job Streams

Producer and consumer for blast jobs via Redis Streams.
"""

from messaging_whatsapp.streams.consumer import BlastJobConsumer
from messaging_whatsapp.streams.groups import (
    BLAST_JOBS_STREAM,
    BLAST_WORKER_GROUP,
    DLQ_STREAM,
    StreamConfig,
    ensure_blast_streams,
)
from messaging_whatsapp.streams.producer import BlastJobProducer

__all__ = [
    "BlastJobProducer",
    "BlastJobConsumer",
    "ensure_blast_streams",
    "StreamConfig",
    "BLAST_JOBS_STREAM",
    "BLAST_WORKER_GROUP",
    "DLQ_STREAM",
]
