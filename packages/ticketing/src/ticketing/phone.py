"""
Indonesian Phone Numbers

Validation and normalization to the canonical 62-prefixed digit form used
for WhatsApp delivery. Every rule strips non-digits first.

Registration rule (participant form, exact lengths):
- 62XXXXXXXXXXX  13 digits
- 08XXXXXXXXXX   12 digits
- 8XXXXXXXXXX    11 digits
- XXXXXXXXXX     10 digits not starting with 0 or 8, prefixed with 62

Blast rule (campaign recipients and imports, length ranges):
- 62XXXXXXXXX    11-15 digits
- 08XXXXXXXX     10-13 digits
- 8XXXXXXXX       9-12 digits
"""

import re

from ticketing.errors import InvalidPhoneNumber

_NON_DIGITS = re.compile(r"\D")

# Stored numbers must match this before a ticket is sent over WhatsApp
WHATSAPP_TICKET_PATTERN = re.compile(r"^628[0-9]{8,11}$")

EXAMPLE_NUMBER = "6281314942011"


def digits_only(raw: str | None) -> str:
    if not raw:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def _registration_digits(raw: str | None) -> str | None:
    """Canonical form under the registration rule, or None."""
    if raw is None or not str(raw).strip():
        return None

    digits = digits_only(raw)
    if digits.startswith("62") and len(digits) == 13:
        return digits
    if digits.startswith("08") and len(digits) == 12:
        return "62" + digits[1:]
    if digits.startswith("8") and len(digits) == 11:
        return "62" + digits
    if len(digits) == 10 and digits[0] not in "08":
        return "62" + digits
    return None


def is_valid_phone_number(raw: str | None) -> bool:
    """Check a participant phone against the registration rule."""
    return _registration_digits(raw) is not None


def normalize_phone_number(raw: str | None) -> str:
    """
    Normalize a participant phone number to 62-prefixed digits.

    Raises:
        InvalidPhoneNumber: if the input fails the registration rule
    """
    normalized = _registration_digits(raw)
    if normalized is None:
        raise InvalidPhoneNumber(
            f"Invalid phone number: {raw!r}",
            details={"phone_number": raw},
        )
    return normalized


def try_normalize_phone_number(raw: str | None) -> str | None:
    """Normalize, returning None instead of raising."""
    return _registration_digits(raw)


def is_valid_blast_phone_number(raw: str | None) -> bool:
    """Check a campaign recipient phone against the looser blast rule."""
    if raw is None or not str(raw).strip():
        return False

    digits = digits_only(raw)
    if digits.startswith("62"):
        return 11 <= len(digits) <= 15
    if digits.startswith("08"):
        return 10 <= len(digits) <= 13
    if digits.startswith("8"):
        return 9 <= len(digits) <= 12
    return False


def normalize_blast_phone_number(raw: str | None) -> str:
    """
    Normalize a campaign recipient phone to 62-prefixed digits.

    Raises:
        InvalidPhoneNumber: if the input fails the blast rule
    """
    if not is_valid_blast_phone_number(raw):
        raise InvalidPhoneNumber(
            f"Invalid phone number: {raw!r}",
            details={"phone_number": raw},
        )

    digits = digits_only(raw)
    if digits.startswith("62"):
        return digits
    if digits.startswith("0"):
        return "62" + digits[1:]
    return "62" + digits


def try_normalize_blast_phone_number(raw: str | None) -> str | None:
    try:
        return normalize_blast_phone_number(raw)
    except InvalidPhoneNumber:
        return None


def is_whatsapp_ticket_number(phone: str | None) -> bool:
    """Stricter check applied to stored numbers before a WhatsApp ticket send."""
    return bool(phone) and WHATSAPP_TICKET_PATTERN.match(phone) is not None
