"""
Blast Worker Service

Consumes blast jobs from Redis Streams and runs them.

Features:
- XREADGROUP consumer for horizontal scaling
- PEL reclaim for stuck jobs (fed back into the main loop)
- Dead letter queue after MAX_DELIVERIES failed attempts
- Graceful shutdown
"""

import asyncio
import logging
import os
import queue
import signal
import socket
import threading
import time

from basecore.db import get_db
from basecore.logging import setup_logging
from basecore.redis import get_redis_client
from basecore.settings import get_settings
from messaging_whatsapp.contracts.envelope import BlastJobEnvelope
from messaging_whatsapp.providers import get_provider
from messaging_whatsapp.providers.base import WhatsAppProvider
from messaging_whatsapp.streams.consumer import BlastJobConsumer
from messaging_whatsapp.streams.groups import BLAST_JOBS_STREAM, ensure_blast_streams
from messaging_whatsapp.streams.producer import BlastJobProducer
from ticketing.errors import CampaignAlreadyRunning, NotFound

from blast_worker.jobs import handle_job

setup_logging()
logger = logging.getLogger(__name__)

# Configuration
CONSUMER_NAME = os.getenv(
    "BLAST_CONSUMER_NAME",
    f"blast-worker-{socket.gethostname()}-{os.getpid()}",
)
BLOCK_MS = int(os.getenv("BLAST_BLOCK_MS", "5000"))
RECLAIM_INTERVAL_SEC = int(os.getenv("BLAST_RECLAIM_INTERVAL", "60"))
# Campaigns can outlast this; a reclaimed job whose campaign still has a live
# claim is dropped by the runner
RECLAIM_IDLE_MS = int(os.getenv("BLAST_RECLAIM_IDLE_MS", "1800000"))
MAX_DELIVERIES = int(os.getenv("BLAST_MAX_DELIVERIES", "3"))

# Graceful shutdown
shutdown_requested = False

# Jobs reclaimed by the background thread, processed by the main loop
reclaimed_jobs: "queue.Queue[tuple[str, BlastJobEnvelope]]" = queue.Queue()


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


signal.signal(signal.SIGTERM, signal_handler)
signal.signal(signal.SIGINT, signal_handler)


async def process_job(
    consumer: BlastJobConsumer,
    producer: BlastJobProducer,
    provider: WhatsAppProvider,
    msg_id: str,
    envelope: BlastJobEnvelope,
) -> bool:
    """
    Process a single job and ack it when it is done for good.

    Returns:
        True if the job was acked
    """
    delivery_count = envelope.metadata.get("delivery_count", 1)
    db = next(get_db())

    try:
        result = await handle_job(db, provider, envelope)
        consumer.ack(BLAST_JOBS_STREAM, msg_id)
        logger.debug("Processed blast job", extra={"msg_id": msg_id, "result": result})
        return True

    except NotFound as e:
        logger.warning(f"Dropping blast job {msg_id}: {e}")
        consumer.ack(BLAST_JOBS_STREAM, msg_id)
        return True

    except CampaignAlreadyRunning as e:
        # Reclaimed while the first worker is still sending
        logger.info(f"Dropping blast job {msg_id}: {e}")
        consumer.ack(BLAST_JOBS_STREAM, msg_id)
        return True

    except (KeyError, ValueError) as e:
        logger.error(f"Malformed blast job {msg_id}: {e}")
        producer.publish_to_dlq(envelope, str(e), delivery_count)
        consumer.ack(BLAST_JOBS_STREAM, msg_id)
        return True

    except Exception as e:
        logger.error(
            f"Failed to process blast job {msg_id} (delivery {delivery_count}): {e}",
            exc_info=True,
        )
        if delivery_count >= MAX_DELIVERIES:
            producer.publish_to_dlq(envelope, str(e), delivery_count)
            consumer.ack(BLAST_JOBS_STREAM, msg_id)
            logger.warning(f"Moved blast job {msg_id} to DLQ")
            return True
        # Don't ACK - will be reclaimed
        return False

    finally:
        db.close()


def run_reclaim_loop(redis_client):
    """Background thread for reclaiming pending jobs."""
    logger.info(
        f"Starting PEL reclaim loop "
        f"(interval={RECLAIM_INTERVAL_SEC}s, idle_threshold={RECLAIM_IDLE_MS}ms)"
    )

    consumer = BlastJobConsumer(redis_client, CONSUMER_NAME)

    while not shutdown_requested:
        try:
            # Sleep first
            for _ in range(RECLAIM_INTERVAL_SEC):
                if shutdown_requested:
                    return
                time.sleep(1)

            reclaimed = consumer.reclaim_pending(
                BLAST_JOBS_STREAM,
                min_idle_ms=RECLAIM_IDLE_MS,
                count=100,
            )
            for item in reclaimed:
                reclaimed_jobs.put(item)
            if reclaimed:
                logger.info(f"Reclaimed {len(reclaimed)} blast jobs")

        except Exception as e:
            logger.error(f"Error in reclaim loop: {e}", exc_info=True)


def _drain_reclaimed() -> list[tuple[str, BlastJobEnvelope]]:
    jobs = []
    while True:
        try:
            jobs.append(reclaimed_jobs.get_nowait())
        except queue.Empty:
            return jobs


async def main_loop():
    """Main worker loop."""
    redis_client = get_redis_client()
    ensure_blast_streams(redis_client)

    consumer = BlastJobConsumer(redis_client, CONSUMER_NAME)
    producer = BlastJobProducer(redis_client)
    provider = get_provider()

    logger.info(
        f"Starting blast worker "
        f"(consumer={CONSUMER_NAME}, provider={get_settings().WHATSAPP_PROVIDER})"
    )

    reclaim_thread = threading.Thread(
        target=run_reclaim_loop,
        args=(redis_client,),
        daemon=True,
    )
    reclaim_thread.start()

    try:
        while not shutdown_requested:
            try:
                jobs = _drain_reclaimed()
                # One campaign at a time; each run already paces itself
                jobs += consumer.read_messages(BLAST_JOBS_STREAM, count=1, block_ms=BLOCK_MS)

                for msg_id, envelope in jobs:
                    await process_job(consumer, producer, provider, msg_id, envelope)

                if not jobs:
                    await asyncio.sleep(0.1)

            except KeyboardInterrupt:
                break
            except Exception as e:
                logger.error(f"Error in main loop: {e}", exc_info=True)
                await asyncio.sleep(1)
    finally:
        await provider.close()

    logger.info("Blast worker shutting down gracefully")


def main():
    """Entry point."""
    logger.info("Blast worker starting...")
    asyncio.run(main_loop())


if __name__ == "__main__":
    main()
