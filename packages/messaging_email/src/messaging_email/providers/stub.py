"""
Stub E-mail Provider

Records e-mails instead of sending them.
"""

import logging
from uuid import uuid4

from messaging_email.providers.base import EmailMessage, EmailProvider, EmailResponse

logger = logging.getLogger(__name__)


class StubEmailProvider(EmailProvider):
    """
    Stub provider for development and testing.

    error_message, when set, makes every send fail with that message.
    """

    def __init__(self, error_message: str | None = None):
        self.error_message = error_message
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> EmailResponse:
        if self.error_message:
            return EmailResponse(success=False, error_code="STUB_FAILURE", error_message=self.error_message)

        self.sent.append(message)
        email_id = f"stub_{uuid4().hex[:16]}"
        logger.info("[STUB] Sending e-mail", extra={"to": message.to, "subject": message.subject})
        return EmailResponse(success=True, email_id=email_id, raw_response={"id": email_id})
