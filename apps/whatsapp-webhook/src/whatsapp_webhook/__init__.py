"""Receives WhatsApp Cloud API webhooks and records delivery statuses."""
