"""
Stub WhatsApp Provider

Development provider that logs all operations without making real API calls.
Useful for local development and testing.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from messaging_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    ProviderResponse,
    WhatsAppProvider,
)
from messaging_whatsapp.providers.meta_cloud.webhook import (
    parse_meta_webhook,
    parse_message,
    parse_status,
)

logger = logging.getLogger(__name__)


class StubWhatsAppProvider(WhatsAppProvider):
    """
    Stub provider for development and testing.

    - Logs all outbound messages
    - Accepts any webhook signature
    - Generates fake message IDs
    - Can fail specific numbers, or a random share of sends
    """

    def __init__(
        self,
        simulate_failures: bool = False,
        failure_rate: float = 0.1,
        fail_numbers: dict[str, str] | None = None,
    ):
        self.simulate_failures = simulate_failures
        self.failure_rate = failure_rate
        # phone -> error message returned for that recipient
        self.fail_numbers = fail_numbers or {}
        self.sent_messages: list[dict[str, Any]] = []

    async def send_template(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]] | None = None,
    ) -> ProviderResponse:
        """Log and return success for template message."""
        if to in self.fail_numbers:
            logger.info(f"[STUB] Failing template message to {to}")
            return ProviderResponse(
                success=False,
                error_code="STUB_FAILURE",
                error_message=self.fail_numbers[to],
            )

        if self._should_fail():
            return ProviderResponse(
                success=False,
                error_code="STUB_SIMULATED_FAILURE",
                error_message="Simulated failure for testing",
            )

        message_id = f"wamid.stub_{uuid4().hex[:16]}"

        self.sent_messages.append({
            "type": "template",
            "to": to,
            "template_name": template_name,
            "language_code": language_code,
            "components": components,
            "message_id": message_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        logger.info(
            "[STUB] Sending template message",
            extra={
                "to": to,
                "template": template_name,
                "language": language_code,
                "message_id": message_id,
            },
        )

        return ProviderResponse(
            success=True,
            message_id=message_id,
            raw_response={"stub": True, "messages": [{"id": message_id}]},
        )

    async def get_phone_number_info(self) -> dict[str, Any]:
        return {
            "id": "stub_phone_id",
            "display_phone_number": "62 800-0000-0000",
            "verified_name": "Stub Sender",
            "quality_rating": "GREEN",
        }

    def validate_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        app_secret: str,
    ) -> bool:
        """Always accept signatures in stub mode."""
        logger.debug("[STUB] Accepting webhook signature (stub mode)")
        return True

    def parse_webhook(
        self,
        payload: dict[str, Any],
    ) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
        """
        Parse webhook payload.

        Accepts the full Meta format, and a flat status shortcut for manual
        testing: {"message_id": "...", "status": "delivered"}.
        """
        if "message_id" in payload and "status" in payload:
            status = parse_status({
                "id": payload["message_id"],
                "status": payload["status"],
                "recipient_id": payload.get("recipient_id", ""),
                "timestamp": payload.get("timestamp"),
                "errors": payload.get("errors"),
            })
            return [], [status] if status else []

        normalized = parse_meta_webhook(payload)
        messages = [
            m for m in (
                parse_message(normalized["phone_number_id"] or "stub_phone_id", data)
                for data in normalized["messages"]
            ) if m
        ]
        statuses = [s for s in (parse_status(data) for data in normalized["statuses"]) if s]
        return messages, statuses

    def verify_webhook_challenge(
        self,
        mode: str,
        token: str,
        challenge: str,
        verify_token: str,
    ) -> str | None:
        """Accept any token unless a verify token is configured."""
        if mode == "subscribe" and (not verify_token or token == verify_token):
            logger.info("[STUB] Accepting webhook verification challenge")
            return challenge
        return None

    def _should_fail(self) -> bool:
        """Check if we should simulate a failure."""
        if not self.simulate_failures:
            return False
        return random.random() < self.failure_rate

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Get all sent messages (for testing)."""
        return self.sent_messages.copy()

    def clear_sent_messages(self) -> None:
        """Clear sent messages history (for testing)."""
        self.sent_messages.clear()
