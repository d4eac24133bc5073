"""
Tests for Indonesian phone number validation and normalization.
"""

import pytest

from ticketing.errors import InvalidPhoneNumber, TicketingError
from ticketing.phone import (
    EXAMPLE_NUMBER,
    digits_only,
    is_valid_blast_phone_number,
    is_valid_phone_number,
    is_whatsapp_ticket_number,
    normalize_blast_phone_number,
    normalize_phone_number,
    try_normalize_blast_phone_number,
    try_normalize_phone_number,
)


def _number(prefix: str, length: int) -> str:
    """Build a digit string of the given total length starting with prefix."""
    return prefix + "1" * (length - len(prefix))


# (prefix, accepted length) under the registration rule
REGISTRATION_LENGTHS = [("62", 13), ("08", 12), ("8", 11), ("2", 10)]

# (prefix, min, max) under the blast rule
BLAST_RANGES = [("62", 11, 15), ("08", 10, 13), ("8", 9, 12)]


class TestIsValidPhoneNumber:
    """Tests for the registration rule."""

    @pytest.mark.parametrize(
        "raw",
        [
            "6281314942011",
            "+62 813-1494-2011",
            "081314942011",
            "0813 1494 2011",
            "81314942011",
            "2131494201",
        ],
    )
    def test_accepts_valid_numbers(self, raw):
        """International, trunk-prefixed, bare local and bare 10-digit forms."""
        assert is_valid_phone_number(raw) is True

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "   ",
            "abc",
            "812345678",
            "628123456789012",
            "08123456789",
            "0212345678",  # 10 digits starting with 0
            "8123456789",  # 10 digits starting with 8
            "5511999999999",
        ],
    )
    def test_rejects_invalid_numbers(self, raw):
        assert is_valid_phone_number(raw) is False

    @pytest.mark.parametrize("prefix,length", REGISTRATION_LENGTHS)
    def test_length_is_exact(self, prefix, length):
        """Each prefix accepts exactly one length; one digit either side is rejected."""
        assert is_valid_phone_number(_number(prefix, length)) is True
        assert is_valid_phone_number(_number(prefix, length - 1)) is False
        assert is_valid_phone_number(_number(prefix, length + 1)) is False


class TestNormalizePhoneNumber:
    """Tests for normalization to the 62 form."""

    def test_international_kept(self):
        assert normalize_phone_number("+62 813 1494 2011") == "6281314942011"

    def test_trunk_prefix_replaced(self):
        assert normalize_phone_number("0813-1494-2011") == "6281314942011"

    def test_bare_local_prefixed(self):
        assert normalize_phone_number("813 1494 2011") == "6281314942011"

    def test_bare_ten_digits_prefixed(self):
        assert normalize_phone_number("2131494201") == "622131494201"
        assert try_normalize_phone_number("2131494201") == "622131494201"

    def test_invalid_raises(self):
        """Invalid input raises a ValueError-compatible domain error."""
        with pytest.raises(InvalidPhoneNumber) as exc_info:
            normalize_phone_number("12345")

        assert isinstance(exc_info.value, ValueError)
        assert isinstance(exc_info.value, TicketingError)
        assert exc_info.value.details == {"phone_number": "12345"}

    def test_try_normalize_returns_none(self):
        assert try_normalize_phone_number("not a phone") is None
        assert try_normalize_phone_number("081234567890") == "6281234567890"

    @pytest.mark.parametrize("prefix,length", REGISTRATION_LENGTHS)
    def test_output_is_canonical(self, prefix, length):
        """Every accepted input normalizes to 62-prefixed digits."""
        normalized = normalize_phone_number(_number(prefix, length))

        assert normalized.startswith("62")
        assert normalized.isdigit()

    @pytest.mark.parametrize("prefix,length", [("62", 13), ("08", 12), ("8", 11)])
    def test_prefixed_forms_are_idempotent(self, prefix, length):
        """Prefixed forms land on the 13-digit canonical form, which is a fixed point."""
        normalized = normalize_phone_number(_number(prefix, length))

        assert len(normalized) == 13
        assert normalize_phone_number(normalized) == normalized


class TestBlastRule:
    """Tests for the looser rule used by campaigns and recipient imports."""

    @pytest.mark.parametrize("prefix,low,high", BLAST_RANGES)
    def test_range_edges(self, prefix, low, high):
        assert is_valid_blast_phone_number(_number(prefix, low)) is True
        assert is_valid_blast_phone_number(_number(prefix, high)) is True
        assert is_valid_blast_phone_number(_number(prefix, low - 1)) is False
        assert is_valid_blast_phone_number(_number(prefix, high + 1)) is False

    @pytest.mark.parametrize(
        "prefix,length",
        [(prefix, length) for prefix, low, high in BLAST_RANGES for length in (low, high)],
    )
    def test_output_is_canonical_and_idempotent(self, prefix, length):
        normalized = normalize_blast_phone_number(_number(prefix, length))

        assert normalized.startswith("62")
        assert normalized.isdigit()
        assert normalize_blast_phone_number(normalized) == normalized

    def test_bare_numbers_rejected(self):
        """The blast rule has no bare 10-digit form."""
        assert is_valid_blast_phone_number("2131494201") is False
        assert try_normalize_blast_phone_number("2131494201") is None

    def test_short_local_numbers(self):
        assert normalize_blast_phone_number("08123456789") == "628123456789"
        assert normalize_blast_phone_number("812345678") == "62812345678"

    def test_invalid_raises(self):
        with pytest.raises(InvalidPhoneNumber):
            normalize_blast_phone_number("   ")


class TestHelpers:
    """Tests for digit stripping and the WhatsApp ticket check."""

    def test_digits_only(self):
        assert digits_only("+62 (813) 1494-2011") == "6281314942011"
        assert digits_only(None) == ""

    def test_whatsapp_ticket_number(self):
        """Only normalized mobile numbers pass."""
        assert is_whatsapp_ticket_number(EXAMPLE_NUMBER) is True
        assert is_whatsapp_ticket_number("081314942011") is False
        assert is_whatsapp_ticket_number("622112345678") is False
        assert is_whatsapp_ticket_number(None) is False
