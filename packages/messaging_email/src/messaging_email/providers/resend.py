"""
Resend E-mail Provider

Sends through the Resend REST API (POST /emails).
"""

import logging
from typing import Any

import httpx

from messaging_email.providers.base import (
    EmailMessage,
    EmailProvider,
    EmailProviderError,
    EmailResponse,
)

logger = logging.getLogger(__name__)

RESEND_API_BASE_URL = "https://api.resend.com"


class ResendEmailProvider(EmailProvider):
    """Resend provider authenticated with an API key."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=RESEND_API_BASE_URL,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _post(self, path: str, json_data: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(
                path,
                json=json_data,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise EmailProviderError(f"Network error: {e}", code="HTTP_ERROR", retryable=True) from e

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if response.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            raise EmailProviderError(
                message or f"Resend API error: HTTP {response.status_code}",
                code=str(data.get("name", response.status_code)) if isinstance(data, dict) else None,
                details=data if isinstance(data, dict) else {},
                retryable=response.status_code >= 500 or response.status_code == 429,
            )
        return data

    async def send(self, message: EmailMessage) -> EmailResponse:
        payload: dict[str, Any] = {
            "from": message.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text

        try:
            data = await self._post("/emails", payload)
        except EmailProviderError as e:
            logger.error(
                f"Failed to send e-mail: {e}",
                extra={"to": message.to, "error_code": e.code},
            )
            return EmailResponse(
                success=False,
                error_code=e.code,
                error_message=str(e),
                raw_response=e.details,
            )

        logger.info("Sent e-mail via Resend", extra={"to": message.to, "email_id": data.get("id")})
        return EmailResponse(success=True, email_id=data.get("id"), raw_response=data)
