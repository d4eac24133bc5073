"""
Blast Job Envelope

Standard wrapper for jobs on the blast Redis Stream.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from basecore.timeutil import utcnow


@dataclass
class BlastJobEnvelope:
    """
    Event envelope for blast jobs.

    This envelope is used:
    - By the API and CLI to publish campaign jobs
    - By the blast worker to consume them
    - By the worker to park poisoned jobs on the DLQ

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Type of event (BlastEventType value)
        occurred_at: When the event occurred (UTC)
        version: Event contract version
        payload: Event-specific data
        correlation_id: Optional correlation ID for tracing
        metadata: Additional metadata (stream id, delivery count, source)
    """

    event_id: UUID
    event_type: str
    occurred_at: datetime
    payload: dict[str, Any]
    version: int = 1
    correlation_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: str,
        payload: dict[str, Any],
        correlation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "BlastJobEnvelope":
        """Create a new envelope with auto-generated event_id and timestamp."""
        return cls(
            event_id=uuid4(),
            event_type=event_type,
            occurred_at=utcnow(),
            payload=payload,
            correlation_id=correlation_id,
            metadata=metadata or {},
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlastJobEnvelope":
        """Create an envelope from to_dict() output (e.g., a DLQ entry)."""
        return cls(
            event_id=UUID(str(data["event_id"])),
            event_type=data["event_type"],
            occurred_at=(
                datetime.fromisoformat(data["occurred_at"])
                if isinstance(data["occurred_at"], str)
                else data["occurred_at"]
            ),
            version=int(data.get("version", 1)),
            payload=data.get("payload", {}),
            correlation_id=data.get("correlation_id"),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def from_stream_message(cls, msg_id: str, data: dict[str, str]) -> "BlastJobEnvelope":
        """Parse a Redis Stream message into an envelope."""
        payload = json.loads(data.get("payload", "{}"))
        metadata = json.loads(data.get("metadata", "{}"))
        metadata["stream_msg_id"] = msg_id

        return cls(
            event_id=UUID(data["event_id"]),
            event_type=data["event_type"],
            occurred_at=(
                datetime.fromisoformat(data["occurred_at"])
                if data.get("occurred_at")
                else utcnow()
            ),
            version=int(data.get("version", "1")),
            payload=payload,
            correlation_id=data.get("correlation_id") or None,
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": self.version,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "metadata": self.metadata,
        }

    def to_stream_data(self) -> dict[str, str]:
        """Convert to dictionary suitable for Redis Stream (all string values)."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": str(self.version),
            "payload": json.dumps(self.payload),
            "correlation_id": self.correlation_id or "",
            "metadata": json.dumps(self.metadata),
        }
