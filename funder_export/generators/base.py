"""Shared generator contract and row formatting.

Generators compose a :class:`RowFormatter` instead of inheriting from a base
class. The formatter owns header order and default substitution, so every
format sees the same logical cell values for the same record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Protocol

from funder_export.extractor import resolve_default

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from funder_export.types import ExtractedRecord, FieldMapping, OutputConfig

logger = logging.getLogger(__name__)

__all__ = [
    "ExportGenerator",
    "RowFormatter",
    "cell_text",
    "encode_text",
]


class ExportGenerator(Protocol):
    """Serializer for one output format."""

    def generate(self, records: Sequence[ExtractedRecord], config: OutputConfig) -> bytes:
        """Serialize ``records``; must not re-run validation."""
        ...

    def file_extension(self) -> str: ...

    def content_type(self) -> str: ...


def cell_text(value: Any) -> str:
    """Stringify a cell value for text formats.

    Booleans render as ``true``/``false``, integral floats without a trailing
    ``.0`` and dates in ISO form.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value)


def encode_text(text: str, encoding: str) -> bytes:
    """Encode output text; characters the encoding lacks become ``?``."""
    try:
        return text.encode(encoding)
    except UnicodeEncodeError:
        logger.warning("Output has characters not representable in %s; replacing them", encoding)
        return text.encode(encoding, errors="replace")


@dataclass(frozen=True)
class RowFormatter:
    """Header and row builder bound to a template's field mappings."""

    mappings: tuple[FieldMapping, ...]

    @classmethod
    def from_mappings(cls, mappings: Sequence[FieldMapping]) -> RowFormatter:
        return cls(tuple(mappings))

    def headers(self) -> list[str]:
        return [m.external_field for m in self.mappings]

    def cells(self, record: ExtractedRecord) -> list[Any]:
        """Cell values in mapping order with defaults applied to empty values."""
        return [resolve_default(record.data.get(m.external_field), m.default_value) for m in self.mappings]

    def text_cells(self, record: ExtractedRecord) -> list[str]:
        return [cell_text(value) for value in self.cells(record)]

    def text_rows(self, records: Sequence[ExtractedRecord]) -> Iterator[list[str]]:
        for record in records:
            yield self.text_cells(record)
