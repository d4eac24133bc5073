"""
Recipient File Import

Parses an uploaded CSV/XLSX list of WhatsApp blast recipients.

The first row is the header. The phone column is the first header containing
"phone" or "nomor"; the optional name column the first containing "name" or
"nama". Row numbers in results are positions in the file, the header being
row 1; blank rows inside the data are reported as empty phones.
"""

import csv
import io
import logging
from dataclasses import dataclass, field

from openpyxl import Workbook, load_workbook

from ticketing.errors import RecipientFileError
from ticketing.phone import is_valid_blast_phone_number, normalize_blast_phone_number

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = (".csv", ".xlsx")


@dataclass
class ParsedRecipient:
    phone_number: str
    name: str | None
    row: int


@dataclass
class RowError:
    row: int
    phone_number: str
    error: str


@dataclass
class RecipientImport:
    recipients: list[ParsedRecipient] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


def _cell_text(value) -> str:
    if value is None:
        return ""
    # Spreadsheets store phone numbers as numbers
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _read_rows(filename: str, content: bytes) -> list[list[str]]:
    if filename.lower().endswith(".csv"):
        text = content.decode("utf-8-sig", errors="replace")
        return [[_cell_text(c) for c in row] for row in csv.reader(io.StringIO(text))]

    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise RecipientFileError(f"File Excel tidak dapat dibaca: {e}") from e

    ws = wb.worksheets[0]
    rows = [[_cell_text(c) for c in row] for row in ws.iter_rows(values_only=True)]
    wb.close()
    return rows


def _find_column(headers: list[str], needles: tuple[str, ...]) -> int:
    for index, header in enumerate(headers):
        lowered = header.lower()
        if any(needle in lowered for needle in needles):
            return index
    return -1


def parse_recipient_file(filename: str, content: bytes) -> RecipientImport:
    """
    Parse and validate a recipient file.

    Raises:
        RecipientFileError: for file-level problems (type, size, header, empty)
    """
    if not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise RecipientFileError("File harus berformat CSV atau Excel (.xlsx)")
    if len(content) > MAX_FILE_SIZE:
        raise RecipientFileError("Ukuran file maksimal 10MB")

    rows = _read_rows(filename, content)
    # Interior blank rows keep their place so row numbers match the file
    while rows and not any(rows[-1]):
        rows.pop()
    if len(rows) < 2:
        raise RecipientFileError("File harus memiliki minimal 1 baris data (selain header)")

    headers = rows[0]
    phone_index = _find_column(headers, ("phone", "nomor"))
    name_index = _find_column(headers, ("name", "nama"))
    if phone_index == -1:
        raise RecipientFileError(
            'Kolom phone_number tidak ditemukan. Pastikan ada kolom dengan nama yang '
            'mengandung "phone" atau "nomor"'
        )

    result = RecipientImport()
    seen: set[str] = set()

    for i, row in enumerate(rows[1:], start=1):
        row_number = i + 1
        phone = row[phone_index] if phone_index < len(row) else ""
        name = row[name_index] if 0 <= name_index < len(row) else ""

        if not phone:
            result.errors.append(RowError(row_number, "", "Nomor telepon kosong"))
            continue
        if not is_valid_blast_phone_number(phone):
            result.errors.append(RowError(row_number, phone, "Format nomor telepon tidak valid"))
            continue

        normalized = normalize_blast_phone_number(phone)
        if normalized in seen:
            result.errors.append(RowError(row_number, phone, "Nomor telepon duplikat"))
            continue

        seen.add(normalized)
        result.recipients.append(ParsedRecipient(normalized, name or None, row_number))

    logger.info(
        f"Parsed recipient file {filename}",
        extra={"valid": len(result.recipients), "errors": len(result.errors)},
    )
    return result


def build_template_workbook() -> bytes:
    """Downloadable recipient template with two sample rows."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Recipients"
    ws.append(["phone_number", "name"])
    ws.append(["08123456789", "John Doe"])
    ws.append(["08987654321", "Jane Smith"])
    ws.column_dimensions["A"].width = 15
    ws.column_dimensions["B"].width = 20

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()
