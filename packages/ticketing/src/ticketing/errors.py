"""
Ticketing Errors

Domain exceptions raised by ticketing services.
The HTTP layer maps NotFound to 404 and every other TicketingError to 400.
"""

from typing import Any


class TicketingError(Exception):
    """Base error for ticketing operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(TicketingError):
    """A referenced row does not exist."""


class InvalidPhoneNumber(TicketingError, ValueError):
    """Phone number cannot be normalized."""


class TicketAlreadyIssued(TicketingError):
    """Registration already has a ticket."""


class ShortCodeExhausted(TicketingError):
    """No unused short code could be generated."""


class WhatsAppTicketError(TicketingError):
    """Ticket could not be sent over WhatsApp."""


class RecipientFileError(TicketingError):
    """Uploaded recipient file cannot be used."""


class ExportError(TicketingError):
    """Export could not be produced."""


class RegistrationClosed(TicketingError):
    """Event is full or registration is otherwise not accepted."""


class InvalidRequest(TicketingError):
    """Request parameters are missing or malformed."""


class CampaignAlreadyRunning(TicketingError):
    """Another worker is currently sending the campaign."""


class DuplicateRegistration(TicketingError):
    """E-mail or member number already registered for the event."""


class InvalidMemberNumber(TicketingError):
    """Member number is malformed or unknown."""
