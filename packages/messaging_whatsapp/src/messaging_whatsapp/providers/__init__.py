"""
WhatsApp Providers

Provider implementations for different WhatsApp APIs.
Supports Meta Cloud API (production) and Stub (development).
"""

from basecore.settings import Settings, get_settings
from messaging_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
)


def get_provider(settings: Settings | None = None) -> WhatsAppProvider:
    """Build the provider selected by WHATSAPP_PROVIDER."""
    from messaging_whatsapp.providers.meta_cloud import MetaCloudWhatsAppProvider
    from messaging_whatsapp.providers.stub import StubWhatsAppProvider

    settings = settings or get_settings()
    if settings.WHATSAPP_PROVIDER == "meta":
        return MetaCloudWhatsAppProvider(
            phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
            access_token=settings.WHATSAPP_ACCESS_TOKEN,
        )
    return StubWhatsAppProvider()


__all__ = [
    "WhatsAppProvider",
    "ProviderResponse",
    "InboundMessage",
    "DeliveryStatus",
    "ProviderError",
    "get_provider",
]
