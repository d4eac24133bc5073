"""
Ticket E-mail Rendering

Jinja2 templates for the HTML and plain-text ticket e-mail.
"""

import functools
from dataclasses import asdict, dataclass, field

from jinja2 import Environment, PackageLoader, select_autoescape

INSTRUCTIONS = [
    "Please arrive 15 minutes before the event starts",
    "Show this QR code or ticket code at the entrance",
    "Keep this email accessible on your phone",
    "Contact us if you have any questions",
]


@dataclass
class TicketEmailContext:
    participant_name: str
    event_name: str
    event_date: str
    event_location: str
    ticket_code: str
    qr_image_url: str | None = None
    instructions: list[str] = field(default_factory=lambda: list(INSTRUCTIONS))


@functools.lru_cache()
def get_environment() -> Environment:
    return Environment(
        loader=PackageLoader("messaging_email", "templates"),
        autoescape=select_autoescape(enabled_extensions=("html.j2",), default_for_string=False),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def ticket_subject(event_name: str) -> str:
    return f"🎫 Your Ticket for {event_name}"


def render_ticket_email(context: TicketEmailContext) -> tuple[str, str]:
    """Render (html, text) bodies."""
    env = get_environment()
    data = asdict(context)
    html = env.get_template("ticket.html.j2").render(**data)
    text = env.get_template("ticket.txt.j2").render(**data)
    return html, text
