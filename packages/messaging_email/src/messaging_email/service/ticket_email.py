"""
Ticket E-mail Sender

Renders the ticket e-mail, sends it through the configured provider and
flags the registration's ticket as e-mailed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from messaging_email.providers.base import EmailMessage, EmailProvider
from messaging_email.rendering import TicketEmailContext, render_ticket_email, ticket_subject
from ticketing.errors import TicketingError
from ticketing.formatting import format_event_datetime
from ticketing.repository import TicketingRepository

logger = logging.getLogger(__name__)

DOMAIN_NOT_VERIFIED = (
    "Email sending failed: You need to verify a domain at resend.com/domains to send "
    "emails to other recipients. Currently, you can only send emails to your own email address."
)


class EmailSendError(TicketingError):
    """Ticket e-mail could not be sent."""


@dataclass
class TicketEmailRequest:
    participant_email: str
    participant_name: str
    event_name: str
    event_date: datetime | None = None
    event_location: str | None = None
    qr_code_data: str | None = None
    short_code: str | None = None
    qr_image_url: str | None = None
    registration_id: UUID | None = None

    def context(self) -> TicketEmailContext:
        return TicketEmailContext(
            participant_name=self.participant_name,
            event_name=self.event_name,
            event_date=format_event_datetime(self.event_date) if self.event_date else "TBA",
            event_location=self.event_location or "TBA",
            ticket_code=self.short_code or self.qr_code_data or "",
            qr_image_url=self.qr_image_url,
        )


class TicketEmailSender:
    def __init__(self, db: Session, provider: EmailProvider, sender: str):
        self.db = db
        self.provider = provider
        self.sender = sender

    async def send(self, request: TicketEmailRequest) -> dict[str, Any]:
        """
        Send a ticket e-mail.

        Raises:
            EmailSendError: when the provider rejects the e-mail
        """
        html, text = render_ticket_email(request.context())
        message = EmailMessage(
            sender=self.sender,
            to=[request.participant_email],
            subject=ticket_subject(request.event_name),
            html=html,
            text=text,
        )

        logger.info(
            f"Sending ticket e-mail for {request.event_name}",
            extra={
                "to": request.participant_email,
                "has_qr_image": bool(request.qr_image_url),
                "short_code": request.short_code or "not provided",
            },
        )

        response = await self.provider.send(message)
        if not response.success:
            error = response.error_message or "Unknown error"
            if "verify a domain" in error:
                raise EmailSendError(DOMAIN_NOT_VERIFIED, details={"provider_error": error})
            raise EmailSendError(f"Failed to send email: {error}", details={"error_code": response.error_code})

        if request.registration_id:
            self._mark_sent(request.registration_id)

        return {
            "success": True,
            "message": "Email sent successfully",
            "recipient": request.participant_email,
            "email_id": response.email_id,
        }

    def _mark_sent(self, registration_id: UUID) -> None:
        # The e-mail is already out; a failed flag update is only logged
        try:
            marked = TicketingRepository(self.db).mark_email_sent(registration_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating ticket email status: {e}", extra={"registration_id": str(registration_id)})
            return

        if not marked:
            logger.warning(f"No ticket to flag for registration {registration_id}")
