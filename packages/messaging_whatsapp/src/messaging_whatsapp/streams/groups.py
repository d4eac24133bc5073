"""
Redis Stream Configuration

Stream names, consumer groups, and setup utilities for blast jobs.
"""

import logging
from dataclasses import dataclass

import redis

from basecore.redis import ensure_stream_group

logger = logging.getLogger(__name__)

# Stream names
BLAST_JOBS_STREAM = "tk:whatsapp:blast_jobs"
DLQ_STREAM = "tk:whatsapp:dlq"

# Consumer group
BLAST_WORKER_GROUP = "blast-worker"


@dataclass
class StreamConfig:
    """Configuration for a stream and its consumer group."""

    stream_name: str
    group_name: str
    max_len: int = 100000
    start_id: str = "0"  # "0" = all history, "$" = new only


STREAM_CONFIGS = [
    StreamConfig(BLAST_JOBS_STREAM, BLAST_WORKER_GROUP),
    StreamConfig(DLQ_STREAM, BLAST_WORKER_GROUP),
]


def ensure_blast_streams(client: redis.Redis) -> None:
    """
    Ensure blast streams and consumer groups exist.

    Called on startup by the worker and before the first publish.
    """
    for config in STREAM_CONFIGS:
        created = ensure_stream_group(
            client,
            config.stream_name,
            config.group_name,
            config.start_id,
        )
        if created:
            logger.info(f"Created consumer group '{config.group_name}' for stream '{config.stream_name}'")


def get_pending_count(
    client: redis.Redis,
    stream_name: str,
    group_name: str = BLAST_WORKER_GROUP,
) -> int:
    """Get count of pending (unacknowledged) messages in a group."""
    try:
        info = client.xpending(stream_name, group_name)
        return info.get("pending", 0) if info else 0
    except redis.ResponseError:
        return 0
