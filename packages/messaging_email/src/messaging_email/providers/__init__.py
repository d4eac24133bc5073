"""
E-mail Providers

Resend (production) and Stub (development).
"""

from basecore.settings import Settings, get_settings
from messaging_email.providers.base import (
    EmailMessage,
    EmailProvider,
    EmailProviderError,
    EmailResponse,
)
from messaging_email.providers.resend import ResendEmailProvider
from messaging_email.providers.stub import StubEmailProvider


def get_email_provider(settings: Settings | None = None) -> EmailProvider:
    """Build the provider selected by EMAIL_PROVIDER."""
    settings = settings or get_settings()
    if settings.EMAIL_PROVIDER == "resend":
        return ResendEmailProvider(api_key=settings.RESEND_API_KEY)
    return StubEmailProvider()


__all__ = [
    "EmailProvider",
    "EmailMessage",
    "EmailResponse",
    "EmailProviderError",
    "ResendEmailProvider",
    "StubEmailProvider",
    "get_email_provider",
]
