"""
E-mail Provider Base

Abstract interface for transactional e-mail providers.
Implementations: Resend, Stub (for development and tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class EmailProviderError(Exception):
    """Error from e-mail provider."""

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


@dataclass
class EmailMessage:
    sender: str
    to: list[str]
    subject: str
    html: str
    text: str | None = None


@dataclass
class EmailResponse:
    """Response from provider after sending an e-mail."""

    success: bool
    email_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class EmailProvider(ABC):
    """Abstract interface for e-mail providers."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResponse:
        """
        Send one e-mail.

        Provider failures are returned as an unsuccessful EmailResponse,
        never raised.
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
