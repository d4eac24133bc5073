"""
Delivery Status Handler

Applies WhatsApp webhook events to blast recipients:
- delivery statuses update the recipient holding that message_id
- inbound replies are only logged
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from messaging_whatsapp.persistence.models import RecipientStatus
from messaging_whatsapp.persistence.repo import BlastRepository
from messaging_whatsapp.providers.base import DeliveryStatus, InboundMessage

logger = logging.getLogger(__name__)


class StatusUpdateHandler:
    """
    Handles parsed webhook events for blast recipients.

    Unknown message ids are skipped; ticket sends are not tracked per
    message so their statuses land here too.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BlastRepository(db)

    def handle_delivery_status(self, status: DeliveryStatus) -> dict[str, Any]:
        try:
            new_status = RecipientStatus(status.status)
        except ValueError:
            logger.warning(f"Ignoring unknown delivery status: {status.status}")
            return {"status": "skipped", "reason": "unknown_status"}

        recipients = self.repo.find_by_message_id(status.message_id)
        if not recipients:
            logger.debug(f"No recipient found for message ID: {status.message_id}")
            return {"status": "skipped", "reason": "message_not_found"}

        for recipient in recipients:
            self.repo.update_delivery_status(
                recipient,
                new_status,
                status.timestamp,
                error_message=status.error_message,
            )

        logger.info(
            f"Recipient status updated to {new_status.value}",
            extra={
                "message_id": status.message_id,
                "recipients": len(recipients),
                "error_code": status.error_code,
            },
        )
        return {"status": "updated", "new_status": new_status.value, "recipients": len(recipients)}

    def handle_inbound_message(self, message: InboundMessage) -> dict[str, Any]:
        logger.info(
            f"Received message from {message.from_phone}",
            extra={
                "message_id": message.message_id,
                "type": message.message_type.value,
                "text": message.text,
            },
        )
        return {"status": "logged"}

    def handle(
        self,
        messages: list[InboundMessage],
        statuses: list[DeliveryStatus],
    ) -> dict[str, int]:
        """Process one webhook delivery; commits once at the end."""
        updated = 0
        for status in statuses:
            if self.handle_delivery_status(status)["status"] == "updated":
                updated += 1
        for message in messages:
            self.handle_inbound_message(message)
        self.db.commit()
        return {"statuses": len(statuses), "updated": updated, "messages": len(messages)}
