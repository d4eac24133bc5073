"""Meta Cloud API WhatsApp provider."""

from messaging_whatsapp.providers.meta_cloud.client import MetaCloudWhatsAppProvider
from messaging_whatsapp.providers.meta_cloud.templates import TemplateRegistry, template_registry
from messaging_whatsapp.providers.meta_cloud.webhook import parse_meta_webhook

__all__ = [
    "MetaCloudWhatsAppProvider",
    "parse_meta_webhook",
    "TemplateRegistry",
    "template_registry",
]
