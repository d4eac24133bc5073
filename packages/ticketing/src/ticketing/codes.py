"""Ticket short codes."""

import secrets
import string
from typing import Callable

from ticketing.errors import ShortCodeExhausted

SHORT_CODE_ALPHABET = string.ascii_uppercase + string.digits
SHORT_CODE_LENGTH = 8


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    """Random code over A-Z0-9 from a CSPRNG."""
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def generate_unique_short_code(
    exists: Callable[[str], bool],
    attempts: int = 10,
    length: int = SHORT_CODE_LENGTH,
) -> str:
    """Generate a short code for which exists(code) is False."""
    for _ in range(attempts):
        code = generate_short_code(length)
        if not exists(code):
            return code
    raise ShortCodeExhausted(f"Could not generate a unique short code after {attempts} attempts")


def is_short_code(value: str) -> bool:
    return len(value) == SHORT_CODE_LENGTH and all(c in SHORT_CODE_ALPHABET for c in value)
