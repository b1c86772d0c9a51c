"""Output generators: CSV, pipe-delimited TXT and XLSX."""

from funder_export.generators.base import ExportGenerator, RowFormatter, cell_text, encode_text
from funder_export.generators.csv_generator import CsvGenerator, split_records
from funder_export.generators.factory import create_generator, get_content_type, get_file_extension
from funder_export.generators.pipe_generator import (
    DEFAULT_MAX_LENGTHS,
    PIPE_DELIMITER,
    PipeGenerator,
    sanitize_pipe_cell,
)
from funder_export.generators.xlsx_generator import (
    XLSX_CONTENT_TYPE,
    CalGrantsXlsxGenerator,
    XlsxGenerator,
    excel_value,
)

__all__ = [
    "DEFAULT_MAX_LENGTHS",
    "PIPE_DELIMITER",
    "XLSX_CONTENT_TYPE",
    "CalGrantsXlsxGenerator",
    "CsvGenerator",
    "ExportGenerator",
    "PipeGenerator",
    "RowFormatter",
    "XlsxGenerator",
    "cell_text",
    "create_generator",
    "encode_text",
    "excel_value",
    "get_content_type",
    "get_file_extension",
    "sanitize_pipe_cell",
    "split_records",
]
