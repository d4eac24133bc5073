"""
Registration Export

Builds CSV, Excel and PDF reports of registrations.

Columns:
- base: ID, Nama Peserta, Email, Nomor Telepon, Status, Tanggal Registrasi, Nama Event
- common custom fields read from custom_data through alias lists
- optional check-in columns, ticket columns and the event's own custom fields
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from basecore.timeutil import utcnow
from ticketing.errors import ExportError
from ticketing.formatting import format_report_timestamp, format_table_datetime, to_wib
from ticketing.models import Registration
from ticketing.repository import TicketingRepository

logger = logging.getLogger(__name__)

BASE_HEADERS = [
    "ID",
    "Nama Peserta",
    "Email",
    "Nomor Telepon",
    "Status",
    "Tanggal Registrasi",
    "Nama Event",
]

# Header -> custom_data keys tried in order; first non-empty value wins
COMMON_FIELD_ALIASES: dict[str, list[str]] = {
    "Nomor Anggota": ["member_number", "nomor_anggota", "Nomor Anggota"],
    "Perusahaan/Instansi": ["company", "instansi", "perusahaan", "Perusahaan", "Instansi"],
    "Jabatan": ["position", "jabatan", "Jabatan"],
    "Department/Bagian": ["department", "bagian", "Department", "Bagian"],
    "Alamat": ["address", "alamat", "Address", "Alamat"],
    "Kota": ["city", "kota", "City", "Kota"],
    "Pembatasan Diet": ["dietary_restrictions", "Dietary Restrictions", "Pembatasan Diet"],
    "Permintaan Khusus": ["special_requests", "Special Requests", "Permintaan Khusus"],
}
COMMON_HEADERS = list(COMMON_FIELD_ALIASES)

CHECKIN_HEADERS = ["Waktu Check-in", "Lokasi Check-in", "Catatan Check-in"]
TICKET_HEADERS = ["Kode Tiket", "Kode Pendek"]

COLUMN_WIDTHS = {
    "ID": 10,
    "Nama Peserta": 25,
    "Email": 35,
    "Nomor Telepon": 20,
    "Status": 15,
    "Tanggal Registrasi": 20,
    "Nama Event": 30,
    "Nomor Anggota": 18,
    "Perusahaan/Instansi": 30,
    "Jabatan": 20,
    "Department/Bagian": 25,
    "Alamat": 35,
    "Kota": 15,
    "Pembatasan Diet": 25,
    "Permintaan Khusus": 30,
    "Waktu Check-in": 20,
    "Lokasi Check-in": 25,
    "Catatan Check-in": 30,
    "Kode Tiket": 25,
    "Kode Pendek": 15,
}

FORMATS = {
    "csv": ("csv", "text/csv; charset=utf-8"),
    "excel": ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "pdf": ("pdf", "application/pdf"),
}

HEADER_COLOR = "4F46E5"


@dataclass
class ExportFilters:
    """Row filters; "all" or None disables a filter."""

    status: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search_term: str | None = None
    checkin_status: str | None = None  # checked_in, not_checked_in, all


@dataclass
class ExportConfig:
    """What to export and how."""

    format: str = "csv"
    event_id: UUID | None = None
    filters: ExportFilters = field(default_factory=ExportFilters)
    include_custom_fields: bool = False
    include_tickets: bool = False
    include_checkin_data: bool = False
    custom_field_selection: list[str] | None = None


@dataclass
class ExportResult:
    filename: str
    content: bytes
    media_type: str
    record_count: int


def column_width(header: str) -> int:
    return COLUMN_WIDTHS.get(header, min(max(len(header), 15), 40))


def common_field_value(custom_data: dict[str, Any] | None, header: str) -> str:
    """First non-empty alias value for a common custom column."""
    if not custom_data:
        return ""
    for key in COMMON_FIELD_ALIASES[header]:
        value = custom_data.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


def export_filename(event_name: str | None, now: datetime, extension: str) -> str:
    """registrations_{event}_{yyyy-MM-dd_HH-mm}.{ext} with the event name sanitized."""
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", event_name or "all-events").lower()
    return f"registrations_{sanitized}_{to_wib(now):%Y-%m-%d_%H-%M}.{extension}"


def _selected_custom_fields(
    registrations: list[Registration],
    selection: list[str] | None,
) -> list[dict[str, Any]]:
    # Event custom fields are taken from the first row, like the report header
    event = registrations[0].event if registrations else None
    fields = list(event.custom_fields or []) if event else []
    if selection is not None:
        fields = [f for f in fields if f.get("name") in selection]
    return fields


def build_headers(registrations: list[Registration], config: ExportConfig) -> list[str]:
    headers = BASE_HEADERS + COMMON_HEADERS
    if config.include_checkin_data:
        headers = headers + CHECKIN_HEADERS
    if config.include_tickets:
        headers = headers + TICKET_HEADERS
    if config.include_custom_fields and registrations:
        headers = headers + [
            f.get("label") or f.get("name")
            for f in _selected_custom_fields(registrations, config.custom_field_selection)
        ]
    return headers


def build_row(
    registration: Registration,
    config: ExportConfig,
    custom_fields: list[dict[str, Any]],
) -> list[str]:
    custom_data = registration.custom_data or {}
    ticket = registration.ticket

    row = [
        str(registration.id),
        registration.participant_name or "",
        registration.participant_email or "",
        registration.phone_number or "",
        registration.status or "",
        format_table_datetime(registration.registered_at),
        registration.event.name if registration.event else "",
    ]
    row.extend(common_field_value(custom_data, header) for header in COMMON_HEADERS)

    if config.include_checkin_data:
        row.extend([
            format_table_datetime(ticket.checkin_at) if ticket else "",
            (ticket.checkin_location or "") if ticket else "",
            (ticket.checkin_notes or "") if ticket else "",
        ])

    if config.include_tickets:
        row.extend([
            (ticket.qr_code or "") if ticket else "",
            (ticket.short_code or "") if ticket else "",
        ])

    if config.include_custom_fields:
        for custom_field in custom_fields:
            value = custom_data.get(custom_field.get("name"), "")
            row.append("" if value is None else str(value))

    return row


def write_csv(headers: list[str], rows: list[list[str]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue().encode("utf-8")


def write_xlsx(headers: list[str], rows: list[list[str]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Registrations"

    ws.append(headers)
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color=HEADER_COLOR, end_color=HEADER_COLOR, fill_type="solid")
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")

    for row in rows:
        ws.append(row)

    for index, header in enumerate(headers, start=1):
        ws.column_dimensions[get_column_letter(index)].width = column_width(header)
    ws.freeze_panes = "A2"

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def write_pdf(
    headers: list[str],
    rows: list[list[str]],
    title: str,
    subtitle: str,
    summary: dict[str, int] | None = None,
) -> bytes:
    output = io.BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Heading1"],
        fontSize=16,
        textColor=colors.HexColor(f"#{HEADER_COLOR}"),
        spaceAfter=4,
    )
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=6, leading=7)
    head_style = ParagraphStyle(
        "HeadCell", parent=cell_style, fontName="Helvetica-Bold", textColor=colors.white
    )

    elements = [
        Paragraph(escape(title), title_style),
        Paragraph(subtitle, styles["Normal"]),
        Spacer(1, 6),
    ]

    if summary:
        elements.append(Paragraph(
            f"Total: {summary['total']} | Approved: {summary['approved']} | "
            f"Pending: {summary['pending']} | Checked-in: {summary['checked_in']}",
            styles["Normal"],
        ))
        elements.append(Spacer(1, 8))

    data = [[Paragraph(escape(h), head_style) for h in headers]]
    data.extend([[Paragraph(escape(str(v)), cell_style) for v in row] for row in rows])

    available = landscape(A4)[0] - 20 * mm
    weights = [column_width(h) for h in headers]
    col_widths = [available * w / sum(weights) for w in weights]

    table = Table(data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{HEADER_COLOR}")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F3F4F6")]),
        ("TOPPADDING", (0, 0), (-1, -1), 2),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
    ]))
    elements.append(table)

    doc.build(elements)
    return output.getvalue()


def summarize(registrations: list[Registration]) -> dict[str, int]:
    return {
        "total": len(registrations),
        "approved": sum(1 for r in registrations if r.status == "approved"),
        "pending": sum(1 for r in registrations if r.status == "pending"),
        "checked_in": sum(1 for r in registrations if r.ticket and r.ticket.checkin_at),
    }


class RegistrationExporter:
    """Produces export files from filtered registrations."""

    def __init__(self, db: Session):
        self.repo = TicketingRepository(db)

    def export(self, config: ExportConfig, now: datetime | None = None) -> ExportResult:
        if config.format not in FORMATS:
            raise ExportError(f"Unsupported export format: {config.format}")

        filters = config.filters
        registrations = self.repo.find_registrations(
            event_id=config.event_id,
            status=filters.status,
            date_from=filters.date_from,
            date_to=filters.date_to,
            search_term=filters.search_term,
            checkin_status=filters.checkin_status,
        )
        if not registrations:
            raise ExportError("No data found matching the criteria")

        now = now or utcnow()
        headers = build_headers(registrations, config)
        custom_fields = (
            _selected_custom_fields(registrations, config.custom_field_selection)
            if config.include_custom_fields
            else []
        )
        rows = [build_row(r, config, custom_fields) for r in registrations]

        event_name = None
        if config.event_id and registrations[0].event:
            event_name = registrations[0].event.name
        extension, media_type = FORMATS[config.format]

        if config.format == "csv":
            content = write_csv(headers, rows)
        elif config.format == "excel":
            content = write_xlsx(headers, rows)
        else:
            content = write_pdf(
                headers,
                rows,
                title=f"Laporan Registrasi: {event_name or 'Semua Event'}",
                subtitle=f"Dibuat pada: {format_report_timestamp(now)}",
                summary=summarize(registrations),
            )

        filename = export_filename(event_name, now, extension)
        logger.info(
            f"Exported {len(rows)} registrations as {config.format}",
            extra={"event_id": str(config.event_id), "export_filename": filename},
        )
        return ExportResult(
            filename=filename,
            content=content,
            media_type=media_type,
            record_count=len(rows),
        )
