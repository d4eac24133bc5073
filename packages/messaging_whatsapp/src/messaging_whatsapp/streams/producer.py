"""
Blast Job Producer

Publishes blast jobs to Redis Streams.
"""

import logging
from uuid import UUID

import redis

from messaging_whatsapp.contracts.envelope import BlastJobEnvelope
from messaging_whatsapp.contracts.event_types import BlastEventType
from messaging_whatsapp.contracts.payloads import BlastJobPayload
from messaging_whatsapp.streams.groups import BLAST_JOBS_STREAM, DLQ_STREAM

logger = logging.getLogger(__name__)


class BlastJobProducer:
    """
    Producer for publishing blast jobs to Redis Streams.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        max_len: int = 100000,
    ):
        self.redis = redis_client
        self.max_len = max_len

    def publish_blast_start(
        self,
        campaign_id: UUID,
        requested_by: str | None = None,
        correlation_id: str | None = None,
    ) -> str:
        """
        Queue a campaign for sending.

        Returns:
            Stream message ID
        """
        payload = BlastJobPayload(campaign_id=campaign_id, mode="start", requested_by=requested_by)
        envelope = BlastJobEnvelope.create(
            event_type=BlastEventType.BLAST_START_REQUESTED.value,
            payload=payload.to_dict(),
            correlation_id=correlation_id,
        )
        return self._publish(BLAST_JOBS_STREAM, envelope)

    def publish_blast_retry(
        self,
        campaign_id: UUID,
        batch_size: int,
        requested_by: str | None = None,
    ) -> str:
        """
        Queue a retry run for recipients rescheduled to pending.

        Returns:
            Stream message ID
        """
        payload = BlastJobPayload(
            campaign_id=campaign_id,
            mode="retry",
            batch_size=batch_size,
            requested_by=requested_by,
        )
        envelope = BlastJobEnvelope.create(
            event_type=BlastEventType.BLAST_RETRY_REQUESTED.value,
            payload=payload.to_dict(),
        )
        return self._publish(BLAST_JOBS_STREAM, envelope)

    def publish_to_dlq(
        self,
        original_envelope: BlastJobEnvelope,
        error: str,
        delivery_count: int,
    ) -> str:
        """
        Park a job that kept failing on the dead letter queue.

        Returns:
            Stream message ID
        """
        dlq_envelope = BlastJobEnvelope.create(
            event_type=BlastEventType.DLQ_ENTRY.value,
            payload={
                "original_event": original_envelope.to_dict(),
                "error": error,
                "delivery_count": delivery_count,
            },
            correlation_id=original_envelope.correlation_id,
        )
        return self._publish(DLQ_STREAM, dlq_envelope)

    def _publish(self, stream_name: str, envelope: BlastJobEnvelope) -> str:
        """
        Publish an envelope to a stream.

        Returns:
            Stream message ID
        """
        msg_id = self.redis.xadd(
            stream_name,
            envelope.to_stream_data(),
            maxlen=self.max_len,
            approximate=True,
        )

        logger.info(
            f"Published {envelope.event_type} to {stream_name}",
            extra={
                "stream": stream_name,
                "event_type": envelope.event_type,
                "event_id": str(envelope.event_id),
                "msg_id": msg_id,
            },
        )

        return msg_id
