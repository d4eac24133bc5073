"""
WhatsApp Ticket Sender

Sends an issued ticket to the participant as an approved template message
with the QR image as header, then flags the ticket as sent.
"""

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from basecore.settings import get_settings
from messaging_whatsapp.providers.base import ProviderError, WhatsAppProvider
from messaging_whatsapp.providers.meta_cloud.templates import TICKET_TEMPLATE, template_registry
from messaging_whatsapp.service.rate_limit import RateLimitConfig, SlidingWindowRateLimiter
from ticketing.errors import NotFound, WhatsAppTicketError
from ticketing.formatting import LONG, SHORT, default_dresscode, format_event_date, format_event_time
from ticketing.models import Event, Registration, Ticket
from ticketing.phone import EXAMPLE_NUMBER, is_whatsapp_ticket_number
from ticketing.repository import TicketingRepository

logger = logging.getLogger(__name__)

TICKET_RATE_LIMITS = RateLimitConfig(
    messages_per_second=5,
    messages_per_minute=250,
    messages_per_hour=1000,
)

# Shared by every sender in the process
_phone_limiter = SlidingWindowRateLimiter(TICKET_RATE_LIMITS)


def _truncate(value: str, limit: int, suffix: str = "...") -> str:
    return value[:limit] + suffix if len(value) > limit else value


@dataclass
class TicketSendOptions:
    template_name: str | None = None
    language_code: str | None = None
    include_header: bool = True
    custom_date_format: str | None = None
    use_short_params: bool = False


def build_ticket_variables(
    registration: Registration,
    event: Event,
    ticket: Ticket | None,
    options: TicketSendOptions,
) -> dict[str, Any]:
    """
    Template variables for the ticket message.

    use_short_params keeps every value within template length limits:
    name 20, event 30, location 20 (with "...") and a 10-character code.
    """
    customer_name = registration.participant_name or ""
    event_name = event.name or ""
    location = event.location or "TBA"
    ticket_code = (ticket.display_code if ticket else "") or ""

    if event.event_date:
        style = SHORT if options.use_short_params else (options.custom_date_format or LONG)
        date = format_event_date(event.event_date, style)
        time = format_event_time(event.event_date)
    else:
        date = time = "TBA"

    if options.use_short_params:
        customer_name = _truncate(customer_name, 20)
        event_name = _truncate(event_name, 30)
        location = _truncate(location, 20)
        ticket_code = ticket_code[:10]

    variables = {
        "customer_name": customer_name,
        "event_name": event_name,
        "date": date,
        "time": time,
        "location": location,
        "ticket_code": ticket_code,
        "dresscode": default_dresscode(event.event_date, event.dresscode),
    }
    if options.include_header and ticket and ticket.qr_image_url:
        variables["qr_image_url"] = ticket.qr_image_url
    return variables


class WhatsAppTicketSender:
    """Sends registration tickets over WhatsApp."""

    def __init__(
        self,
        db: Session,
        provider: WhatsAppProvider,
        limiter: SlidingWindowRateLimiter | None = None,
    ):
        self.db = db
        self.repo = TicketingRepository(db)
        self.provider = provider
        self.limiter = limiter or _phone_limiter

    def _load(self, registration_id: UUID) -> tuple[Registration, Event, Ticket]:
        registration = self.repo.get_registration(registration_id)
        if not registration:
            raise NotFound("Registration not found")

        event = registration.event
        if not event:
            raise NotFound("Event not found")
        if not event.whatsapp_enabled:
            raise WhatsAppTicketError("WhatsApp is not enabled for this event")

        phone = registration.phone_number
        if not phone:
            raise WhatsAppTicketError("Phone number not provided for registration")
        if not is_whatsapp_ticket_number(phone):
            raise WhatsAppTicketError(
                f"Invalid phone number format. Expected format: {EXAMPLE_NUMBER}",
                details={"phone_number": phone},
            )

        ticket = registration.ticket
        if ticket is None:
            raise WhatsAppTicketError("Ticket not issued for this registration")
        if ticket.whatsapp_sent:
            raise WhatsAppTicketError("WhatsApp ticket already sent for this registration")

        return registration, event, ticket

    async def send(
        self,
        registration_id: UUID,
        options: TicketSendOptions | None = None,
    ) -> dict[str, Any]:
        """
        Send the ticket of a registration.

        Raises:
            NotFound: registration or event missing
            WhatsAppTicketError: any precondition or the API call failed
        """
        options = options or TicketSendOptions()
        registration, event, ticket = self._load(registration_id)
        phone = registration.phone_number

        if self.limiter.is_limited(phone):
            raise WhatsAppTicketError("Rate limit exceeded for this phone number")
        self.limiter.record(phone, True)

        template_name = options.template_name or get_settings().WHATSAPP_TEMPLATE_NAME or TICKET_TEMPLATE
        language_code = options.language_code or "id"
        variables = build_ticket_variables(registration, event, ticket, options)

        try:
            components = template_registry.build_components(template_name, variables, layout=TICKET_TEMPLATE)
        except ValueError as e:
            raise WhatsAppTicketError(str(e)) from e

        logger.info(
            f"Sending WhatsApp ticket to {phone}",
            extra={
                "registration_id": str(registration_id),
                "template": template_name,
                "has_qr_image": bool(ticket and ticket.qr_image_url),
                "use_short_params": options.use_short_params,
            },
        )

        try:
            response = await self.provider.send_template(
                to=phone,
                template_name=template_name,
                language_code=language_code,
                components=components,
            )
        except ProviderError as e:
            raise WhatsAppTicketError(f"WhatsApp API error: {e}") from e

        if not response.success:
            raise WhatsAppTicketError(
                f"WhatsApp API error: {response.error_message or 'Unknown error'}",
                details={"error_code": response.error_code},
            )

        if ticket:
            self.repo.mark_whatsapp_sent(ticket)
            self.db.commit()

        return {
            "success": True,
            "message": "WhatsApp ticket sent successfully",
            "recipient": phone,
            "message_id": response.message_id,
            "template_used": template_name,
            "language_used": language_code,
            "include_header": options.include_header,
            "use_short_params": options.use_short_params,
            "custom_date_format": options.custom_date_format,
            "dresscode": variables["dresscode"],
        }
