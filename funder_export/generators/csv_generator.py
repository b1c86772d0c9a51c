"""Comma-separated (delimited text) generator."""

from __future__ import annotations

import csv
from typing import TYPE_CHECKING

import pandas as pd

from funder_export.generators.base import RowFormatter, encode_text

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from funder_export.types import ExtractedRecord, FieldMapping, OutputConfig

__all__ = ["CsvGenerator", "split_records"]

# The csv module quotes only characters found in its line terminator, so rows
# are always written with CRLF and re-joined with the configured ending.
_WRITE_TERMINATOR = "\r\n"


def split_records(text: str, quote_char: str, escape_char: str | None = None) -> Iterator[str]:
    """Split CSV text on CRLF terminators that fall outside quoted fields."""
    start = 0
    in_quotes = False
    i = 0
    while i < len(text):
        c = text[i]
        if escape_char and c == escape_char:
            i += 2
            continue
        if c == quote_char:
            in_quotes = not in_quotes
        elif not in_quotes and text.startswith(_WRITE_TERMINATOR, i):
            yield text[start:i]
            i += len(_WRITE_TERMINATOR)
            start = i
            continue
        i += 1
    if start < len(text):
        yield text[start:]


class CsvGenerator:
    """Delimited text writer backed by ``DataFrame.to_csv``.

    Cells containing the delimiter, the quote character or a line break
    (``\\r`` or ``\\n``, whatever the configured line ending) are quoted.
    Embedded quote characters are doubled, or prefixed with the configured
    escape character when it differs from the quote character. Lines are
    joined with the configured line ending, without a trailing one.
    """

    def __init__(self, mappings: Sequence[FieldMapping]) -> None:
        self.formatter = RowFormatter.from_mappings(mappings)

    def file_extension(self) -> str:
        return "csv"

    def content_type(self) -> str:
        return "text/csv"

    def render(self, records: Sequence[ExtractedRecord], config: OutputConfig) -> str:
        """Return the delimited text before encoding."""
        headers = self.formatter.headers()
        df = pd.DataFrame(list(self.formatter.text_rows(records)), columns=headers, dtype=object)

        doublequote = config.escape_char == config.quote_char
        escapechar = None if doublequote else config.escape_char
        text = df.to_csv(
            None,
            sep=config.delimiter,
            index=False,
            header=config.include_headers,
            lineterminator=_WRITE_TERMINATOR,
            quotechar=config.quote_char,
            quoting=csv.QUOTE_MINIMAL,
            doublequote=doublequote,
            escapechar=escapechar,
            na_rep="",
        )
        if config.line_terminator == _WRITE_TERMINATOR:
            return text.removesuffix(_WRITE_TERMINATOR)
        return config.line_terminator.join(split_records(text, config.quote_char, escapechar))

    def generate(self, records: Sequence[ExtractedRecord], config: OutputConfig) -> bytes:
        return encode_text(self.render(records, config), config.encoding)
