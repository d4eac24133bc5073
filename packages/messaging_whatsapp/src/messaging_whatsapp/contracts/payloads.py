"""
Blast Job Payloads

Payload carried inside a BlastJobEnvelope.
"""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID


@dataclass
class BlastJobPayload:
    """
    A request to run a campaign.

    mode is "start" for a fresh campaign and "retry" after the retry
    scheduler put failed recipients back to pending; batch_size is only a
    hint for retry runs.
    """

    campaign_id: UUID
    mode: str = "start"
    batch_size: int | None = None
    requested_by: str | None = None
    recipient_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": str(self.campaign_id),
            "mode": self.mode,
            "batch_size": self.batch_size,
            "requested_by": self.requested_by,
            "recipient_ids": [str(r) for r in self.recipient_ids],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlastJobPayload":
        return cls(
            campaign_id=UUID(str(data["campaign_id"])),
            mode=data.get("mode", "start"),
            batch_size=data.get("batch_size"),
            requested_by=data.get("requested_by"),
            recipient_ids=[UUID(str(r)) for r in data.get("recipient_ids") or []],
        )
