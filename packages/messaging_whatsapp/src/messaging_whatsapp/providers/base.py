"""
WhatsApp Provider Base

Abstract interface for WhatsApp API providers.
Implementations: Meta Cloud API, Stub (for development and tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ProviderError(Exception):
    """Error from WhatsApp provider."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.retryable = retryable


class MessageType(str, Enum):
    """Types of inbound WhatsApp messages."""

    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    BUTTON = "button"
    INTERACTIVE = "interactive"
    LOCATION = "location"
    STICKER = "sticker"
    REACTION = "reaction"
    UNKNOWN = "unknown"


@dataclass
class InboundMessage:
    """
    Parsed inbound message from webhook.

    Participants occasionally reply to ticket or blast messages; these are
    only logged.
    """

    message_id: str
    from_phone: str
    phone_number_id: str
    message_type: MessageType
    timestamp: datetime
    text: str | None = None
    contact_name: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeliveryStatus:
    """
    Parsed delivery status update from webhook.

    error_message joins every reported error as "title: message" with "; ".
    """

    message_id: str
    recipient_phone: str
    status: str  # sent, delivered, read, failed
    timestamp: datetime
    error_code: str | None = None
    error_message: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResponse:
    """
    Response from provider after sending a message.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class WhatsAppProvider(ABC):
    """
    Abstract interface for WhatsApp API providers.

    Implementations must handle:
    - Sending approved template messages
    - Probing the configured business number
    - Webhook signature validation, challenge and payload parsing
    """

    @abstractmethod
    async def send_template(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]] | None = None,
    ) -> ProviderResponse:
        """
        Send a template message.

        Args:
            to: Recipient phone number (62XXXXXXXXX digits)
            template_name: Approved template name
            language_code: Template language code (e.g., "id")
            components: Template components (header, body variables)

        Returns:
            ProviderResponse with message ID if successful
        """
        ...

    @abstractmethod
    async def get_phone_number_info(self) -> dict[str, Any]:
        """
        Fetch details of the configured business phone number.

        Used by diagnostics to prove credentials work.

        Raises:
            ProviderError: if the API rejects the request
        """
        ...

    async def close(self) -> None:
        """Release network resources."""

    @abstractmethod
    def validate_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        app_secret: str,
    ) -> bool:
        """
        Validate webhook signature.

        Args:
            payload: Raw request body
            signature: X-Hub-Signature-256 header value
            app_secret: Facebook App Secret

        Returns:
            True if signature is valid
        """
        ...

    @abstractmethod
    def parse_webhook(
        self,
        payload: dict[str, Any],
    ) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
        """
        Parse webhook payload into messages and status updates.

        Returns:
            Tuple of (list of inbound messages, list of delivery statuses)
        """
        ...

    @abstractmethod
    def verify_webhook_challenge(
        self,
        mode: str,
        token: str,
        challenge: str,
        verify_token: str,
    ) -> str | None:
        """
        Handle webhook verification challenge.

        Returns:
            challenge string if valid, None otherwise
        """
        ...
