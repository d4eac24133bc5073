"""
Tests for blast recipient file parsing.
"""

import io

import pytest
from openpyxl import Workbook, load_workbook

from ticketing.errors import RecipientFileError
from ticketing.recipients import build_template_workbook, parse_recipient_file


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


class TestParseRecipientFile:
    """Tests for parse_recipient_file."""

    def test_csv(self):
        content = (
            "phone_number,name\n"
            "08123456789,John Doe\n"
            "+62 898-7654-321,Jane Smith\n"
        ).encode("utf-8")

        result = parse_recipient_file("recipients.csv", content)

        assert result.errors == []
        assert [(r.phone_number, r.name, r.row) for r in result.recipients] == [
            ("628123456789", "John Doe", 2),
            ("628987654321", "Jane Smith", 3),
        ]

    def test_row_errors_keep_row_numbers(self):
        """Empty, invalid and duplicate rows are reported but don't stop the import."""
        content = (
            "Nomor WhatsApp,Nama Lengkap\n"
            "08123456789,Andi\n"
            ",Tanpa Nomor\n"
            "12345,Salah\n"
            "628123456789,Andi Lagi\n"
            "081314942011,\n"
        ).encode("utf-8")

        result = parse_recipient_file("daftar.CSV", content)

        assert [(r.phone_number, r.name) for r in result.recipients] == [
            ("628123456789", "Andi"),
            ("6281314942011", None),
        ]
        assert [(e.row, e.phone_number, e.error) for e in result.errors] == [
            (3, "", "Nomor telepon kosong"),
            (4, "12345", "Format nomor telepon tidak valid"),
            (5, "628123456789", "Nomor telepon duplikat"),
        ]

    def test_blank_rows_counted(self):
        """Blank rows inside the data are reported; trailing ones are dropped."""
        content = b"phone_number,name\n08123456789,A\n,\n12345,B\n,\n\n"

        result = parse_recipient_file("list.csv", content)

        assert [r.row for r in result.recipients] == [2]
        assert [(e.row, e.error) for e in result.errors] == [
            (3, "Nomor telepon kosong"),
            (4, "Format nomor telepon tidak valid"),
        ]

    def test_xlsx_numeric_phone_cells(self):
        """Phone numbers typed as numbers lose their leading zero but still parse."""
        content = _xlsx([["phone", "name"], [8123456789, "Numeric"], ["081314942011", "Text"]])

        result = parse_recipient_file("list.xlsx", content)

        assert [r.phone_number for r in result.recipients] == ["628123456789", "6281314942011"]

    def test_utf8_bom_header(self):
        content = "\ufeffphone_number\n08123456789\n".encode("utf-8")
        result = parse_recipient_file("bom.csv", content)
        assert len(result.recipients) == 1

    def test_unsupported_extension(self):
        with pytest.raises(RecipientFileError, match="CSV atau Excel"):
            parse_recipient_file("recipients.xls", b"whatever")

    def test_too_large(self):
        content = b"phone\n" + b"0" * (10 * 1024 * 1024)
        with pytest.raises(RecipientFileError, match="10MB"):
            parse_recipient_file("big.csv", content)

    def test_header_only(self):
        with pytest.raises(RecipientFileError, match="minimal 1 baris data"):
            parse_recipient_file("empty.csv", b"phone_number,name\n")

    def test_missing_phone_column(self):
        with pytest.raises(RecipientFileError, match="Kolom phone_number tidak ditemukan"):
            parse_recipient_file("bad.csv", b"email,name\na@b.c,A\n")

    def test_unreadable_excel(self):
        with pytest.raises(RecipientFileError):
            parse_recipient_file("broken.xlsx", b"not a zip file")


class TestTemplateWorkbook:
    """Tests for the downloadable template."""

    def test_template(self):
        wb = load_workbook(io.BytesIO(build_template_workbook()))
        ws = wb.active

        assert ws.title == "Recipients"
        rows = list(ws.iter_rows(values_only=True))
        assert rows[0] == ("phone_number", "name")
        assert len(rows) == 3

    def test_template_parses(self):
        result = parse_recipient_file("template.xlsx", build_template_workbook())
        assert len(result.recipients) == 2
        assert result.errors == []
