"""Generator selection by export type and output format."""

from __future__ import annotations

from typing import TYPE_CHECKING

from funder_export.generators.csv_generator import CsvGenerator
from funder_export.generators.pipe_generator import PipeGenerator
from funder_export.generators.xlsx_generator import XLSX_CONTENT_TYPE, CalGrantsXlsxGenerator, XlsxGenerator
from funder_export.types import ExportType, OutputFormat

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from funder_export.generators.base import ExportGenerator
    from funder_export.types import FieldMapping

__all__ = ["create_generator", "get_content_type", "get_file_extension"]

_EXTENSIONS = {
    OutputFormat.CSV: "csv",
    OutputFormat.TXT: "txt",
    OutputFormat.XLSX: "xlsx",
}

_CONTENT_TYPES = {
    OutputFormat.CSV: "text/csv",
    OutputFormat.TXT: "text/plain",
    OutputFormat.XLSX: XLSX_CONTENT_TYPE,
}


def create_generator(
    export_type: ExportType,
    output_format: OutputFormat,
    mappings: Sequence[FieldMapping],
    field_max_lengths: Mapping[str, int] | None = None,
) -> ExportGenerator:
    """Return the generator for a template's format.

    ``TXT`` always produces pipe-delimited output. ``XLSX`` for CalGrants
    adds the summary sheets; every other combination of type and ``CSV``
    uses the plain delimited writer.
    """
    match OutputFormat(output_format):
        case OutputFormat.TXT:
            return PipeGenerator(mappings, field_max_lengths)
        case OutputFormat.XLSX if export_type == ExportType.CALI_GRANTS:
            return CalGrantsXlsxGenerator(mappings)
        case OutputFormat.XLSX:
            return XlsxGenerator(mappings, ExportType(export_type))
        case _:
            return CsvGenerator(mappings)


def get_file_extension(output_format: OutputFormat) -> str:
    return _EXTENSIONS[OutputFormat(output_format)]


def get_content_type(output_format: OutputFormat) -> str:
    return _CONTENT_TYPES[OutputFormat(output_format)]
