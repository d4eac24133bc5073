"""
Blast Job Consumer

Consumes blast jobs from Redis Streams using XREADGROUP.
"""

import logging
from typing import Any

import redis

from messaging_whatsapp.contracts.envelope import BlastJobEnvelope
from messaging_whatsapp.streams.groups import BLAST_WORKER_GROUP

logger = logging.getLogger(__name__)


class BlastJobConsumer:
    """
    Consumer for reading blast jobs from Redis Streams.

    Uses XREADGROUP for consumer group support and reliable delivery.
    Reclaimed messages carry their delivery count in
    envelope.metadata["delivery_count"].
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        consumer_name: str,
        group_name: str = BLAST_WORKER_GROUP,
    ):
        self.redis = redis_client
        self.consumer_name = consumer_name
        self.group_name = group_name

    def _parse(self, stream_name: str, msg_id: str, data: dict[str, str]) -> BlastJobEnvelope | None:
        try:
            return BlastJobEnvelope.from_stream_message(msg_id, data)
        except (KeyError, ValueError) as e:
            logger.error(f"Failed to parse message {msg_id}: {e}")
            # ACK invalid messages to prevent blocking
            self.ack(stream_name, msg_id)
            return None

    def read_messages(
        self,
        stream_name: str,
        count: int = 1,
        block_ms: int = 5000,
    ) -> list[tuple[str, BlastJobEnvelope]]:
        """
        Read new messages from a stream.

        Returns:
            List of (message_id, envelope) tuples
        """
        try:
            result = self.redis.xreadgroup(
                self.group_name,
                self.consumer_name,
                {stream_name: ">"},
                count=count,
                block=block_ms,
            )
        except redis.ResponseError as e:
            if "NOGROUP" in str(e):
                logger.error(f"Consumer group {self.group_name} does not exist for {stream_name}")
            raise

        if not result:
            return []

        messages = []
        for _stream, entries in result:
            for msg_id, data in entries:
                envelope = self._parse(stream_name, msg_id, data)
                if envelope:
                    envelope.metadata.setdefault("delivery_count", 1)
                    messages.append((msg_id, envelope))
        return messages

    def ack(self, stream_name: str, message_id: str) -> int:
        """
        Acknowledge a message as processed.

        Returns:
            Number of messages acknowledged (0 or 1)
        """
        return self.redis.xack(stream_name, self.group_name, message_id)

    def get_pending(
        self,
        stream_name: str,
        min_idle_ms: int = 60000,
        count: int = 100,
    ) -> list[dict[str, Any]]:
        """
        Get pending messages that have been idle too long.

        Returns:
            List of pending message info dicts
        """
        try:
            pending_info = self.redis.xpending(stream_name, self.group_name)
            if not pending_info or pending_info.get("pending", 0) == 0:
                return []

            pending_range = self.redis.xpending_range(
                stream_name,
                self.group_name,
                min="-",
                max="+",
                count=count,
            )
        except redis.ResponseError:
            return []

        return [
            {
                "message_id": entry["message_id"],
                "consumer": entry["consumer"],
                "idle_ms": entry["time_since_delivered"],
                "delivery_count": entry["times_delivered"],
            }
            for entry in pending_range
            if entry.get("time_since_delivered", 0) >= min_idle_ms
        ]

    def reclaim_pending(
        self,
        stream_name: str,
        min_idle_ms: int = 60000,
        count: int = 100,
    ) -> list[tuple[str, BlastJobEnvelope]]:
        """
        Claim idle pending messages from crashed or stuck consumers.

        XCLAIM increments the delivery counter, so the returned count
        includes this delivery.
        """
        pending = self.get_pending(stream_name, min_idle_ms, count)
        if not pending:
            return []

        deliveries = {p["message_id"]: p["delivery_count"] for p in pending}
        try:
            result = self.redis.xclaim(
                stream_name,
                self.group_name,
                self.consumer_name,
                min_idle_ms,
                list(deliveries),
            )
        except redis.ResponseError as e:
            logger.error(f"Failed to claim messages: {e}")
            return []

        messages = []
        for msg_id, data in result:
            if not data:
                # Entry was trimmed from the stream
                self.ack(stream_name, msg_id)
                continue
            envelope = self._parse(stream_name, msg_id, data)
            if envelope:
                envelope.metadata["delivery_count"] = deliveries.get(msg_id, 0) + 1
                messages.append((msg_id, envelope))
        return messages
