"""
Blast Job Event Types

Jobs published by the API and CLI, consumed by the blast worker.
"""

from enum import Enum


class BlastEventType(str, Enum):
    """
    Event types on the blast jobs stream.

    - BLAST_START_REQUESTED: send a campaign to all pending recipients
    - BLAST_RETRY_REQUESTED: recipients were rescheduled, send the pending ones again
    - DLQ_ENTRY: a job that kept failing, parked for inspection
    """

    BLAST_START_REQUESTED = "blast_start_requested"
    BLAST_RETRY_REQUESTED = "blast_retry_requested"
    DLQ_ENTRY = "blast_dlq_entry"

    def __str__(self) -> str:
        return self.value
