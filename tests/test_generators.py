"""Tests for the CSV, pipe-delimited and XLSX generators and their factory."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime

import pytest
from openpyxl import load_workbook

from funder_export.errors import ConfigurationError
from funder_export.generators import (
    XLSX_CONTENT_TYPE,
    CalGrantsXlsxGenerator,
    CsvGenerator,
    PipeGenerator,
    RowFormatter,
    XlsxGenerator,
    cell_text,
    create_generator,
    excel_value,
    get_content_type,
    get_file_extension,
    sanitize_pipe_cell,
    split_records,
)
from funder_export.types import ExportType, ExtractedRecord, FieldMapping, OutputConfig, OutputFormat
from tests.conftest import make_record

MAPPINGS = [
    FieldMapping("ID", "client.id"),
    FieldMapping("Name", "client.firstName"),
    FieldMapping("Note", "form:note", default_value="n/a"),
]


@pytest.fixture
def records() -> list:
    return [
        make_record("c-1", ID="c-1", Name="Ana", Note='Said "hi", left'),
        make_record("c-2", ID="c-2", Name="Ben", Note=""),
        make_record("c-3", ID="c-3", Name="Multi\nLine", Note="a|b"),
    ]


class TestRowFormatter:
    """Tests for the shared row formatter."""

    def test_headers_and_defaults(self, records: list) -> None:
        formatter = RowFormatter.from_mappings(MAPPINGS)
        assert formatter.headers() == ["ID", "Name", "Note"]
        assert formatter.text_cells(records[1]) == ["c-2", "Ben", "n/a"]

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            (True, "true"),
            (3.0, "3"),
            (2.5, "2.5"),
            (date(2024, 1, 2), "2024-01-02"),
            (datetime(2024, 1, 2, 3, 4), "2024-01-02T03:04:00"),
        ],
    )
    def test_cell_text(self, value: object, expected: str) -> None:
        assert cell_text(value) == expected


class TestCsvGenerator:
    """Tests for CsvGenerator."""

    def test_round_trips_through_csv_reader(self, records: list) -> None:
        content = CsvGenerator(MAPPINGS).generate(records, OutputConfig())
        rows = list(csv.reader(io.StringIO(content.decode("utf-8"), newline="")))

        assert rows == [
            ["ID", "Name", "Note"],
            ["c-1", "Ana", 'Said "hi", left'],
            ["c-2", "Ben", "n/a"],
            ["c-3", "Multi\nLine", "a|b"],
        ]

    def test_crlf_without_trailing_line_ending(self, records: list) -> None:
        text = CsvGenerator(MAPPINGS).render(records[:2], OutputConfig())
        assert text == 'ID,Name,Note\r\nc-1,Ana,"Said ""hi"", left"\r\nc-2,Ben,n/a'

    def test_custom_delimiter_lf_and_no_headers(self, records: list) -> None:
        config = OutputConfig(delimiter=";", line_ending="LF", include_headers=False)
        text = CsvGenerator(MAPPINGS).render(records[1:2], config)
        assert text == "c-2;Ben;n/a"

    @pytest.mark.parametrize("value", ["x\ry", "x\ny", "x\r\ny"])
    def test_line_breaks_quoted_with_lf_endings(self, value: str) -> None:
        config = OutputConfig(line_ending="LF")
        text = CsvGenerator([FieldMapping("A", "form:a")]).render([make_record("c", A=value)], config)

        assert text == f'A\n"{value}"'
        rows = list(csv.reader(io.StringIO(text, newline="")))
        assert rows == [["A"], [value]]

    def test_split_records_honors_quotes_and_escapes(self) -> None:
        text = 'A,B\r\n"x\r\ny",1\r\n"a\\"\r\n",2\r\n'
        assert list(split_records(text, '"', "\\")) == ["A,B", '"x\r\ny",1', '"a\\"\r\n",2']

    def test_escape_char_differs_from_quote(self) -> None:
        config = OutputConfig(escape_char="\\")
        text = CsvGenerator([FieldMapping("Q", "form:q")]).render([make_record(Q='a"b')], config)
        assert text.splitlines()[1] == '"a\\"b"'

    def test_encoding_replaces_unrepresentable(self) -> None:
        config = OutputConfig(encoding="ascii", include_headers=False)
        content = CsvGenerator([FieldMapping("N", "form:n")]).generate([make_record(N="José")], config)
        assert content == b"Jos?"

    def test_invalid_delimiter_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            OutputConfig(delimiter="||")


class TestPipeGenerator:
    """Tests for PipeGenerator."""

    def test_no_pipes_or_line_breaks_in_cells(self, records: list) -> None:
        text = PipeGenerator(MAPPINGS).render(records, OutputConfig())
        lines = text.split("\r\n")

        assert lines[0] == "ID|Name|Note"
        for line in lines:
            assert line.count("|") == 2
        assert lines[3] == "c-3|Multi Line|ab"

    def test_ignores_configured_delimiter(self, records: list) -> None:
        text = PipeGenerator(MAPPINGS).render(records[:1], OutputConfig(delimiter=",", line_ending="LF"))
        assert text.splitlines()[1] == 'c-1|Ana|Said "hi", left'

    def test_truncates_known_fields(self) -> None:
        mappings = [FieldMapping("STATE", "form:state"), FieldMapping("CITY", "form:city")]
        generator = PipeGenerator(mappings, {"CITY": 4})
        text = generator.render([make_record(STATE="California", CITY="Sacramento")], OutputConfig())
        assert text.split("\r\n")[1] == "Ca|Sacr"

    def test_sanitize_pipe_cell(self) -> None:
        assert sanitize_pipe_cell("a|b\r\nc", 3) == "ab "


def _participant(participant_id: str, county: str, status: str) -> ExtractedRecord:
    data = {"Participant_ID": participant_id, "County_of_Residence": county, "Completion_Status": status}
    return make_record(participant_id, **data)


class TestXlsxGenerator:
    """Tests for the workbook generators."""

    def test_typed_cells_and_sheets(self) -> None:
        mappings = [
            FieldMapping("ID", "client.id"),
            FieldMapping("DOB", "form:dob", transformer="date:MM/DD/YYYY"),
            FieldMapping("Income", "form:income", transformer="number:decimal2"),
            FieldMapping("Code", "form:code", default_value="99"),
            FieldMapping("Empty", "form:empty"),
        ]
        record = make_record(ID="c-1", DOB="03/04/1990", Income="1250.50", Code="", Empty="")
        content = XlsxGenerator(mappings, ExportType.HUD_HMIS).generate([record], OutputConfig())

        workbook = load_workbook(io.BytesIO(content))
        assert workbook.sheetnames == ["Export Data", "Export Info"]

        ws = workbook["Export Data"]
        assert [c.value for c in ws[1]] == ["ID", "DOB", "Income", "Code", "Empty"]
        assert ws["A1"].font.bold
        assert ws.freeze_panes == "A2"
        assert ws.auto_filter.ref == "A1:E1"
        assert ws["B2"].value.date() == date(1990, 3, 4)
        assert ws["C2"].value == 1250.5
        assert ws["D2"].value == "99"
        assert ws["E2"].value is None

        info = {row[0].value: row[1].value for row in workbook["Export Info"].iter_rows()}
        assert info["Export Type"] == "HUD_HMIS"
        assert info["Total Records"] == 1
        assert info["Field Count"] == 5

    def test_excel_value_falls_back_to_text(self) -> None:
        mapping = FieldMapping("DOB", "form:dob", transformer="date:YYYY-MM-DD")
        assert excel_value("sometime", mapping) == "sometime"
        assert excel_value("2024-02-03", mapping) == date(2024, 2, 3)
        number = FieldMapping("N", "form:n", transformer="number:percent")
        assert excel_value("25.0%", number) == "25.0%"

    def test_calgrants_summary_sheets(self) -> None:
        mappings = [
            FieldMapping("Participant_ID", "client.id"),
            FieldMapping("County_of_Residence", "form:county"),
            FieldMapping("Completion_Status", "enrollment.status"),
        ]
        records = [
            _participant("p-1", "06001", "Completed"),
            _participant("p-2", "06075", "Enrolled"),
            _participant("p-3", "06075", "Completed"),
            _participant("p-4", "", "Completed"),
        ]
        content = CalGrantsXlsxGenerator(mappings).generate(records, OutputConfig())
        workbook = load_workbook(io.BytesIO(content))

        assert workbook.sheetnames == ["Participant Data", "Summary Statistics", "Export Info"]
        summary = [[c.value for c in row] for row in workbook["Summary Statistics"].iter_rows()]
        assert ["Completed", 3] in summary
        assert ["Enrolled", 1] in summary
        county_header = summary.index(["County", "Participants"])
        assert summary[county_header + 1] == ["06075", 2]
        assert ["Unknown", 1] in summary[county_header:]

        info = {row[0].value: row[1].value for row in workbook["Export Info"].iter_rows() if row[0].value}
        assert info["Export Type"] == "CalGrants Performance Report"
        assert info["Total Participants"] == 4
        assert info["Format"] == "XLSX (Excel)"


class TestFactory:
    """Tests for create_generator and format lookups."""

    def test_selection(self) -> None:
        assert isinstance(create_generator(ExportType.HUD_HMIS, OutputFormat.CSV, MAPPINGS), CsvGenerator)
        assert isinstance(create_generator(ExportType.DOL_WIPS, OutputFormat.TXT, MAPPINGS), PipeGenerator)
        assert isinstance(create_generator(ExportType.CAP60, OutputFormat.TXT, MAPPINGS), PipeGenerator)
        calgrants = create_generator(ExportType.CALI_GRANTS, OutputFormat.XLSX, MAPPINGS)
        assert isinstance(calgrants, CalGrantsXlsxGenerator)
        plain = create_generator(ExportType.CUSTOM, OutputFormat.XLSX, MAPPINGS)
        assert type(plain) is XlsxGenerator

    def test_field_max_lengths_reach_pipe_generator(self) -> None:
        generator = create_generator(ExportType.DOL_WIPS, OutputFormat.TXT, MAPPINGS, {"Name": 2})
        assert isinstance(generator, PipeGenerator)
        assert generator.max_lengths["Name"] == 2

    def test_extensions_and_content_types(self) -> None:
        assert get_file_extension(OutputFormat.TXT) == "txt"
        assert get_content_type(OutputFormat.CSV) == "text/csv"
        assert get_content_type(OutputFormat.XLSX) == XLSX_CONTENT_TYPE
