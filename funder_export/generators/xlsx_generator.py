"""Excel workbook generators.

The data sheet is written with ``DataFrame.to_excel`` through an openpyxl
``ExcelWriter`` and then styled in place. Cells keep their types: values
from ``date:`` fields become real dates and values from ``number:`` fields
become numbers whenever they parse back cleanly.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from io import BytesIO
from typing import TYPE_CHECKING, Any

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from funder_export.extractor import is_empty
from funder_export.generators.base import RowFormatter, cell_text
from funder_export.transformer import (
    DATE_FORMATS,
    DateTransform,
    NumberTransform,
    parse_transformer_spec,
    to_number,
)
from funder_export.types import ExportType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from openpyxl.worksheet.worksheet import Worksheet

    from funder_export.types import ExtractedRecord, FieldMapping, OutputConfig

__all__ = ["XLSX_CONTENT_TYPE", "CalGrantsXlsxGenerator", "XlsxGenerator", "excel_value"]

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_FONT = Font(bold=True, color="FFFFFFFF")
STRIPE_FILL = PatternFill(start_color="FFF2F2F2", end_color="FFF2F2F2", fill_type="solid")
MIN_COLUMN_WIDTH = 15


def _solid(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def excel_value(value: Any, mapping: FieldMapping) -> Any:
    """Convert one mapped value to a typed Excel cell value.

    Empty values take the mapping default; with no default the cell stays
    blank. Dates produced by a ``date:`` transformer are parsed back into
    :class:`datetime.date` and numbers from a ``number:`` transformer back
    into numbers. Anything that does not parse is written as text.
    """
    if is_empty(value):
        if mapping.default_value is None:
            return None
        value = mapping.default_value

    spec = parse_transformer_spec(mapping.transformer) if mapping.transformer else None
    match spec:
        case DateTransform(format=fmt):
            if isinstance(value, date):
                return value
            try:
                return datetime.strptime(str(value), DATE_FORMATS.get(fmt, "%Y-%m-%d")).date()  # noqa: DTZ007
            except ValueError:
                return cell_text(value)
        case NumberTransform():
            number = to_number(value)
            return number if number is not None else cell_text(value)
    return cell_text(value)


class XlsxGenerator:
    """Single data sheet plus an ``Export Info`` metadata sheet."""

    data_sheet = "Export Data"
    header_color = "FF4472C4"

    def __init__(self, mappings: Sequence[FieldMapping], export_type: ExportType = ExportType.CUSTOM) -> None:
        self.formatter = RowFormatter.from_mappings(mappings)
        self.export_type = export_type

    def file_extension(self) -> str:
        return "xlsx"

    def content_type(self) -> str:
        return XLSX_CONTENT_TYPE

    def excel_rows(self, records: Sequence[ExtractedRecord]) -> list[list[Any]]:
        mappings = self.formatter.mappings
        return [[excel_value(record.data.get(m.external_field), m) for m in mappings] for record in records]

    def generate(self, records: Sequence[ExtractedRecord], config: OutputConfig) -> bytes:
        """Build the workbook in memory; ``config`` text settings do not apply."""
        output = BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl", date_format="yyyy-mm-dd") as writer:
            writer.book.properties.creator = "funder-export"
            self._write_data_sheet(writer, records)
            self._write_extra_sheets(writer, records)
        return output.getvalue()

    # -------------------------------------------------------------------------
    # Sheets
    # -------------------------------------------------------------------------

    def _write_data_sheet(self, writer: pd.ExcelWriter, records: Sequence[ExtractedRecord]) -> Worksheet:
        headers = self.formatter.headers()
        df = pd.DataFrame(self.excel_rows(records), columns=headers, dtype=object)
        df.to_excel(writer, sheet_name=self.data_sheet, index=False)

        ws = writer.sheets[self.data_sheet]
        self._style_header(ws, headers)
        ws.freeze_panes = "A2"
        if headers:
            ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"
        return ws

    def _style_header(self, ws: Worksheet, headers: list[str]) -> None:
        ws.sheet_properties.tabColor = self.header_color
        fill = _solid(self.header_color)
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_idx)
            cell.font = HEADER_FONT
            cell.fill = fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
            ws.column_dimensions[get_column_letter(col_idx)].width = max(len(header) + 5, MIN_COLUMN_WIDTH)

        # Alternate rows shaded, starting with the first even row
        for row in ws.iter_rows(min_row=2, max_col=len(headers)):
            if row and row[0].row % 2 == 0:
                for cell in row:
                    cell.fill = STRIPE_FILL

    def _write_extra_sheets(self, writer: pd.ExcelWriter, records: Sequence[ExtractedRecord]) -> None:
        info = writer.book.create_sheet("Export Info")
        info.append(["Export Type", str(self.export_type)])
        info.append(["Generated At", datetime.now(UTC).isoformat()])
        info.append(["Total Records", len(records)])
        info.append(["Field Count", len(self.formatter.mappings)])


class CalGrantsXlsxGenerator(XlsxGenerator):
    """CalGrants workbook: participant data, summary statistics and export info."""

    data_sheet = "Participant Data"
    header_color = "FF2E7D32"
    top_counties = 10

    def __init__(self, mappings: Sequence[FieldMapping]) -> None:
        super().__init__(mappings, ExportType.CALI_GRANTS)

    def _style_header(self, ws: Worksheet, headers: list[str]) -> None:
        fill = _solid(self.header_color)
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_idx)
            cell.font = HEADER_FONT
            cell.fill = fill
            ws.column_dimensions[get_column_letter(col_idx)].width = max(len(header) + 5, MIN_COLUMN_WIDTH)

    def _write_extra_sheets(self, writer: pd.ExcelWriter, records: Sequence[ExtractedRecord]) -> None:
        self._write_summary(writer.book.create_sheet("Summary Statistics"), records)
        self._write_info(writer.book.create_sheet("Export Info"), records)

    @staticmethod
    def _counts(records: Sequence[ExtractedRecord], field: str) -> pd.Series:
        values = [cell_text(record.data.get(field) or "Unknown") for record in records]
        return pd.Series(values, dtype=object).value_counts(sort=False)

    def _write_summary(self, ws: Worksheet, records: Sequence[ExtractedRecord]) -> None:
        ws.append(["Summary Statistics"])
        ws.cell(row=1, column=1).font = Font(bold=True, size=14)
        ws.append([])

        ws.append(["Completion Status", "Count"])
        self._bold_row(ws, ws.max_row)
        for status, count in self._counts(records, "Completion_Status").items():
            ws.append([status, int(count)])
        ws.append([])

        ws.append(["County", "Participants"])
        self._bold_row(ws, ws.max_row)
        counties = self._counts(records, "County_of_Residence").sort_values(ascending=False, kind="stable")
        for county, count in counties.head(self.top_counties).items():
            ws.append([county, int(count)])

    def _write_info(self, ws: Worksheet, records: Sequence[ExtractedRecord]) -> None:
        ws.append(["Export Information"])
        ws.cell(row=1, column=1).font = Font(bold=True, size=14)
        ws.append([])

        info: list[tuple[str, Any]] = [
            ("Export Type", "CalGrants Performance Report"),
            ("Generated At", datetime.now(UTC).isoformat()),
            ("Total Participants", len(records)),
            ("Field Count", len(self.formatter.mappings)),
            ("Format", "XLSX (Excel)"),
        ]
        for label, value in info:
            ws.append([label, value])
            ws.cell(row=ws.max_row, column=1).font = Font(bold=True)

    @staticmethod
    def _bold_row(ws: Worksheet, row: int) -> None:
        for cell in ws[row]:
            cell.font = Font(bold=True)
