"""
Meta Webhook Utilities

Helper functions for processing Meta Cloud API webhooks.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any

from messaging_whatsapp.providers.base import DeliveryStatus, InboundMessage, MessageType

logger = logging.getLogger(__name__)


def validate_signature(
    payload: bytes,
    signature_header: str | None,
    app_secret: str,
) -> bool:
    """
    Validate Meta webhook signature.

    Args:
        payload: Raw request body bytes
        signature_header: X-Hub-Signature-256 header value
        app_secret: Facebook App Secret

    Returns:
        True if signature is valid
    """
    if not signature_header:
        logger.warning("Missing signature header")
        return False

    if not signature_header.startswith("sha256="):
        logger.warning("Invalid signature format")
        return False

    expected = signature_header[7:]

    computed = hmac.new(
        app_secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(computed, expected)


def parse_meta_webhook(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Parse and normalize a Meta webhook payload.

    Returns a normalized structure:
    {
        "phone_number_id": "...",
        "display_number": "...",
        "messages": [...],
        "statuses": [...],
    }
    """
    result: dict[str, Any] = {
        "phone_number_id": None,
        "display_number": None,
        "messages": [],
        "statuses": [],
    }

    if payload.get("object") != "whatsapp_business_account":
        return result

    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            if change.get("field", "messages") != "messages":
                continue

            value = change.get("value", {})
            metadata = value.get("metadata", {})

            result["phone_number_id"] = metadata.get("phone_number_id")
            result["display_number"] = metadata.get("display_phone_number")

            # Add messages with contact info
            contacts = value.get("contacts", [])
            for msg in value.get("messages", []):
                msg_with_contact = {**msg}
                if contacts:
                    msg_with_contact["_contact"] = contacts[0]
                result["messages"].append(msg_with_contact)

            result["statuses"].extend(value.get("statuses", []))

    return result


def parse_timestamp(value: str | int | None) -> datetime:
    """Webhook timestamps are epoch seconds as strings."""
    if value in (None, ""):
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def join_errors(errors: list[dict[str, Any]]) -> str | None:
    """Render webhook errors as "title: message; title: message"."""
    if not errors:
        return None
    return "; ".join(f"{e.get('title', '')}: {e.get('message', '')}" for e in errors)


def parse_status(status_data: dict[str, Any]) -> DeliveryStatus | None:
    """Parse a single status update."""
    try:
        errors = status_data.get("errors") or []
        return DeliveryStatus(
            message_id=status_data.get("id", ""),
            recipient_phone=status_data.get("recipient_id", ""),
            status=status_data.get("status", ""),
            timestamp=parse_timestamp(status_data.get("timestamp")),
            error_code=str(errors[0].get("code", "")) if errors else None,
            error_message=join_errors(errors),
            raw_payload=status_data,
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to parse status: {e}", extra={"status": status_data})
        return None


def parse_message(phone_number_id: str, msg_data: dict[str, Any]) -> InboundMessage | None:
    """Parse a single inbound message (as produced by parse_meta_webhook)."""
    try:
        type_str = msg_data.get("type", "unknown")
        try:
            msg_type = MessageType(type_str)
        except ValueError:
            msg_type = MessageType.UNKNOWN

        text = None
        if msg_type == MessageType.TEXT:
            text = msg_data.get("text", {}).get("body")
        elif msg_type == MessageType.BUTTON:
            text = msg_data.get("button", {}).get("text")

        contact = msg_data.get("_contact", {})

        return InboundMessage(
            message_id=msg_data.get("id", ""),
            from_phone=msg_data.get("from", ""),
            phone_number_id=phone_number_id,
            message_type=msg_type,
            timestamp=parse_timestamp(msg_data.get("timestamp")),
            text=text,
            contact_name=contact.get("profile", {}).get("name"),
            raw_payload=msg_data,
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to parse message: {e}", extra={"raw_message": msg_data})
        return None


def is_status_webhook(payload: dict[str, Any]) -> bool:
    """Check if this webhook contains status updates."""
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            if change.get("value", {}).get("statuses"):
                return True
    return False
