"""
Meta Cloud API WhatsApp Provider

Production provider for WhatsApp Business Cloud API.
Implements the Graph API v18.0 for template sends and webhooks.
"""

import logging
from typing import Any

import httpx

from messaging_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
)
from messaging_whatsapp.providers.meta_cloud.webhook import (
    parse_meta_webhook,
    parse_message,
    parse_status,
    validate_signature,
)

logger = logging.getLogger(__name__)

# Meta Graph API configuration
GRAPH_API_VERSION = "v18.0"
GRAPH_API_BASE_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}"


class MetaCloudWhatsAppProvider(WhatsAppProvider):
    """
    Meta Cloud API provider for WhatsApp Business.

    Sends from a single business number configured by phone_number_id.
    """

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _make_request(
        self,
        method: str,
        url: str,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated API request."""
        client = await self._get_client()

        headers = {"Authorization": f"Bearer {self.access_token}"}

        try:
            if method.upper() == "GET":
                response = await client.get(url, headers=headers)
            else:
                response = await client.post(url, headers=headers, json=json_data)
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise ProviderError(
                message=f"Network error: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"raw": response.text}

        if response.status_code >= 400:
            error = response_data.get("error", {}) if isinstance(response_data, dict) else {}
            raise ProviderError(
                message=error.get("message") or f"WhatsApp API error: HTTP {response.status_code}",
                code=str(error.get("code", response.status_code)),
                details=error or response_data,
                retryable=response.status_code >= 500 or response.status_code == 429,
            )

        return response_data

    async def send_template(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]] | None = None,
    ) -> ProviderResponse:
        """Send a template message via Graph API."""
        url = f"{GRAPH_API_BASE_URL}/{self.phone_number_id}/messages"

        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": language_code},
            },
        }

        if components:
            payload["template"]["components"] = components

        try:
            response = await self._make_request("POST", url, payload)
            message_id = response.get("messages", [{}])[0].get("id")

            logger.info(
                "Sent template message via Meta API",
                extra={"to": to, "template": template_name, "message_id": message_id},
            )

            return ProviderResponse(
                success=True,
                message_id=message_id,
                raw_response=response,
            )

        except ProviderError as e:
            logger.error(
                f"Failed to send template message: {e}",
                extra={"to": to, "template": template_name, "error_code": e.code},
            )
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=str(e),
                raw_response=e.details,
            )

    async def get_phone_number_info(self) -> dict[str, Any]:
        """GET /{phone_number_id} (display number, verified name, quality)."""
        url = f"{GRAPH_API_BASE_URL}/{self.phone_number_id}"
        return await self._make_request("GET", url)

    def validate_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        app_secret: str,
    ) -> bool:
        """
        Validate webhook signature using HMAC-SHA256.

        The signature header format: sha256=<signature>
        """
        is_valid = validate_signature(payload, signature, app_secret)
        if not is_valid:
            logger.warning("Webhook signature validation failed")
        return is_valid

    def parse_webhook(
        self,
        payload: dict[str, Any],
    ) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
        """
        Parse Meta webhook payload into messages and status updates.

        Webhook format:
        {
            "object": "whatsapp_business_account",
            "entry": [{
                "id": "WABA_ID",
                "changes": [{
                    "value": {
                        "metadata": {"display_phone_number": "...", "phone_number_id": "..."},
                        "contacts": [...],
                        "messages": [...],
                        "statuses": [...]
                    },
                    "field": "messages"
                }]
            }]
        }
        """
        messages: list[InboundMessage] = []
        statuses: list[DeliveryStatus] = []

        normalized = parse_meta_webhook(payload)
        for msg_data in normalized["messages"]:
            msg = parse_message(normalized["phone_number_id"] or "", msg_data)
            if msg:
                messages.append(msg)

        for status_data in normalized["statuses"]:
            status = parse_status(status_data)
            if status:
                statuses.append(status)

        return messages, statuses

    def verify_webhook_challenge(
        self,
        mode: str,
        token: str,
        challenge: str,
        verify_token: str,
    ) -> str | None:
        """Handle Meta webhook verification challenge."""
        if mode == "subscribe" and verify_token and token == verify_token:
            logger.info("Webhook verification successful")
            return challenge

        logger.warning(f"Webhook verification failed: mode={mode}, token mismatch")
        return None
