"""
WhatsApp Service Layer

Blast campaigns, retries, delivery statuses and ticket sends.
"""

from messaging_whatsapp.service.blast import BlastResult, BlastRunner, build_debug_report
from messaging_whatsapp.service.rate_limit import (
    RATE_LIMITS,
    BatchQueue,
    RateLimitConfig,
    SlidingWindowRateLimiter,
    calculate_adaptive_delay,
)
from messaging_whatsapp.service.retry import RetryScheduler, classify_error
from messaging_whatsapp.service.status_updates import StatusUpdateHandler
from messaging_whatsapp.service.ticket_sender import TicketSendOptions, WhatsAppTicketSender

__all__ = [
    "BlastRunner",
    "BlastResult",
    "build_debug_report",
    "RATE_LIMITS",
    "RateLimitConfig",
    "SlidingWindowRateLimiter",
    "BatchQueue",
    "calculate_adaptive_delay",
    "RetryScheduler",
    "classify_error",
    "StatusUpdateHandler",
    "WhatsAppTicketSender",
    "TicketSendOptions",
]
