"""Pipe-delimited TXT generator.

The pipe format has no quoting, so a literal ``|`` can never appear inside a
cell: pipes are stripped and line breaks collapse to spaces. Well-known
fields are silently truncated to the funder's maximum lengths.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from funder_export.generators.base import RowFormatter, encode_text

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from funder_export.types import ExtractedRecord, FieldMapping, OutputConfig

__all__ = ["DEFAULT_MAX_LENGTHS", "PIPE_DELIMITER", "PipeGenerator", "sanitize_pipe_cell"]

PIPE_DELIMITER = "|"

# Built-in length limits by external field name.
DEFAULT_MAX_LENGTHS: dict[str, int] = {
    "FIRST_NAME": 35,
    "LAST_NAME": 35,
    "MIDDLE_NAME": 35,
    "MIDDLE_INITIAL": 1,
    "STATE": 2,
    "ZIP_CODE": 10,
    "SSN": 9,
    "PHONE": 10,
    "ADDRESS_LINE_1": 50,
    "ADDRESS_LINE_2": 50,
    "CITY": 35,
    "DATE_OF_BIRTH": 8,
    "PARTICIPATION_DATE": 8,
    "EXIT_DATE": 8,
}

_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


def sanitize_pipe_cell(text: str, max_length: int | None = None) -> str:
    """Remove pipes, flatten line breaks and truncate to ``max_length``."""
    cleaned = _LINE_BREAKS.sub(" ", text).replace(PIPE_DELIMITER, "")
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned


class PipeGenerator:
    """Writer for ``|``-delimited text; the configured delimiter is ignored."""

    def __init__(
        self,
        mappings: Sequence[FieldMapping],
        max_lengths: Mapping[str, int] | None = None,
    ) -> None:
        self.formatter = RowFormatter.from_mappings(mappings)
        self.max_lengths = {**DEFAULT_MAX_LENGTHS, **(max_lengths or {})}

    def file_extension(self) -> str:
        return "txt"

    def content_type(self) -> str:
        return "text/plain"

    def render(self, records: Sequence[ExtractedRecord], config: OutputConfig) -> str:
        headers = self.formatter.headers()
        limits = [self.max_lengths.get(name) for name in headers]

        lines: list[str] = []
        if config.include_headers:
            lines.append(PIPE_DELIMITER.join(sanitize_pipe_cell(h) for h in headers))
        for row in self.formatter.text_rows(records):
            cells = (sanitize_pipe_cell(cell, limit) for cell, limit in zip(row, limits, strict=True))
            lines.append(PIPE_DELIMITER.join(cells))
        return config.line_terminator.join(lines)

    def generate(self, records: Sequence[ExtractedRecord], config: OutputConfig) -> bytes:
        return encode_text(self.render(records, config), config.encoding)
