"""Stub WhatsApp provider."""

from messaging_whatsapp.providers.stub.client import StubWhatsAppProvider

__all__ = ["StubWhatsAppProvider"]
