"""
Indonesian Date Formatting

Event times are stored as UTC timestamps and always shown in WIB
(Asia/Jakarta). Month and weekday names are Indonesian.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

WIB = ZoneInfo("Asia/Jakarta")

DAY_NAMES = ["Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]

MONTH_NAMES = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "Mei", "Jun",
    "Jul", "Agu", "Sep", "Okt", "Nov", "Des",
]

# Styles accepted by format_event_date
LONG = "long"
SHORT = "short"
NUMERIC = "DD/MM/YYYY HH:mm"


def to_wib(dt: datetime) -> datetime:
    """Convert to WIB; naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(WIB)


def format_event_date(dt: datetime, style: str = LONG) -> str:
    """
    Format an event date.

    long     -> "Jumat, 8 Agustus 2025"
    short    -> "8 Agu 2025"
    numeric  -> "08/08/2025 19:00"
    """
    local = to_wib(dt)

    if style == SHORT:
        return f"{local.day} {MONTH_ABBREVIATIONS[local.month - 1]} {local.year}"
    if style == NUMERIC:
        return local.strftime("%d/%m/%Y %H:%M")

    return f"{DAY_NAMES[local.weekday()]}, {local.day} {MONTH_NAMES[local.month - 1]} {local.year}"


def format_event_time(dt: datetime) -> str:
    """Format the WIB time of day as "19.00"."""
    return to_wib(dt).strftime("%H.%M")


def format_event_datetime(dt: datetime) -> str:
    """Long date followed by time, e.g. "Jumat, 8 Agustus 2025 pukul 19.00"."""
    return f"{format_event_date(dt)} pukul {format_event_time(dt)}"


def format_report_timestamp(dt: datetime) -> str:
    """Timestamp for report headers: "08 Agustus 2025, 19:00"."""
    local = to_wib(dt)
    return f"{local.day:02d} {MONTH_NAMES[local.month - 1]} {local.year}, {local:%H:%M}"


def format_table_datetime(dt: datetime | None) -> str:
    """Cell value for exports: "08/08/2025 19:00", empty when missing."""
    if dt is None:
        return ""
    return to_wib(dt).strftime("%d/%m/%Y %H:%M")


def default_dresscode(event_date: datetime | None, dresscode: str | None = None) -> str:
    """Dresscode from the event, or derived from the WIB hour of the event."""
    if dresscode:
        return dresscode

    hour = to_wib(event_date).hour if event_date else 12
    if hour >= 18 or hour < 6:
        return "Smart Casual / Semi Formal"
    if 12 <= hour < 18:
        return "Casual / Smart Casual"
    return "Casual / Comfortable"
