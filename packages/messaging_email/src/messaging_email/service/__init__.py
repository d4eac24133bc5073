"""E-mail services."""

from messaging_email.service.ticket_email import TicketEmailRequest, TicketEmailSender

__all__ = ["TicketEmailRequest", "TicketEmailSender"]
