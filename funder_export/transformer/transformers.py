"""Value formatters for funder exports.

Every formatter degrades gracefully: input it cannot interpret comes back as
``str(value)`` instead of raising, so one malformed field never aborts a
record or a run.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pandas as pd

from funder_export.transformer.specs import (
    DATE_FORMATS,
    DEFAULT_DATE_FORMAT,
    CodeTransform,
    DateTransform,
    NumberTransform,
    PhoneTransform,
    SsnTransform,
    TransformSpec,
    UnknownTransform,
    parse_transformer_spec,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = [
    "format_code",
    "format_date",
    "format_number",
    "format_phone",
    "format_ssn",
    "get_available_transformers",
    "parse_date",
    "to_number",
    "transform_value",
]

_NON_DIGIT = re.compile(r"\D")
_SLASHED_DATE = re.compile(r"\d{1,2}/\d{1,2}/\d{4}")
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def transform_value(
    value: Any,
    spec: str | TransformSpec,
    code_mappings: Mapping[str, Mapping[str, str]] | None = None,
) -> Any:
    """Apply a transformer spec to a single value.

    Parameters
    ----------
    value
        Raw value; ``None`` is returned unchanged.
    spec
        Spec string (``"ssn:format"``) or an already parsed spec.
    code_mappings
        Named code tables used by ``code:<table>`` specs.

    Returns
    -------
    Any
        Formatted value. Unknown spec types return ``value`` unchanged.
    """
    if value is None:
        return None

    parsed = parse_transformer_spec(spec) if isinstance(spec, str) else spec

    match parsed:
        case DateTransform(format=fmt):
            return format_date(value, fmt)
        case CodeTransform(table=table):
            return format_code(value, table, code_mappings or {})
        case NumberTransform(style=style):
            return format_number(value, style)
        case SsnTransform(style=style):
            return format_ssn(value, style)
        case PhoneTransform(style=style):
            return format_phone(value, style)
        case UnknownTransform():
            return value
    return value


# =============================================================================
# Dates
# =============================================================================


def parse_date(value: Any) -> date | None:
    """Parse a date-like value, returning ``None`` when it cannot be read.

    Slashed strings are read month-first (``03/04/1990`` is March 4th) and
    ISO 8601 strings go through pandas' ISO parser. Any other text, including
    pandas keywords such as ``now``, is unparsable.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if _SLASHED_DATE.fullmatch(text):
        parsed = pd.to_datetime(text, errors="coerce", format="%m/%d/%Y")
    elif _ISO_DATE.match(text):
        parsed = pd.to_datetime(text, errors="coerce", format="ISO8601")
    else:
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def format_date(value: Any, fmt: str = DEFAULT_DATE_FORMAT) -> Any:
    """Render ``value`` in one of the funder date formats.

    Unknown formats fall back to ``YYYY-MM-DD``; unparsable input is returned
    as ``str(value)``.
    """
    parsed = parse_date(value)
    if parsed is None:
        return str(value)
    pattern = DATE_FORMATS.get(fmt, DATE_FORMATS[DEFAULT_DATE_FORMAT])
    return parsed.strftime(pattern)


# =============================================================================
# Code tables
# =============================================================================


def _code_key(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_code(value: Any, table: str | None, code_mappings: Mapping[str, Mapping[str, str]]) -> str:
    """Translate ``value`` through a named code table.

    Resolution order: exact key, case-insensitive key, then substring match in
    either direction. No match (or no table) yields the stringified value.
    """
    key = _code_key(value)
    mapping = code_mappings.get(table) if table else None
    if not mapping or not key:
        return key

    if key in mapping:
        return mapping[key]

    lowered = key.lower()
    for source, code in mapping.items():
        if source.lower() == lowered:
            return code

    for source, code in mapping.items():
        source_lower = source.lower()
        if source_lower in lowered or lowered in source_lower:
            return code

    return key


# =============================================================================
# Numbers
# =============================================================================


def to_number(value: Any) -> int | float | None:
    """Coerce ``value`` to a finite number, or ``None`` when not numeric.

    Booleans and blank strings are not numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float | Decimal):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def format_number(value: Any, style: str | None = None) -> Any:
    """Format a numeric value in one of the funder number styles.

    ``integer`` rounds half up and returns an ``int``; ``decimal2``,
    ``decimal4`` and ``currency`` return fixed-point strings; ``percent``
    multiplies by 100 and appends ``%``. Without a known style the parsed
    number is returned.
    """
    number = to_number(value)
    if number is None:
        return str(value)

    match style:
        case "integer":
            return math.floor(number + 0.5)
        case "decimal2" | "currency":
            return f"{number:.2f}"
        case "decimal4":
            return f"{number:.4f}"
        case "percent":
            return f"{number * 100:.1f}%"
    return number


# =============================================================================
# Identifiers
# =============================================================================


def format_ssn(value: Any, style: str | None = None) -> str:
    """Normalize an SSN to nine digits and render it.

    Non-digits are stripped, the result left-padded with zeros and truncated
    to nine digits, so a value with no digits at all renders as zeros.
    """
    digits = _NON_DIGIT.sub("", str(value)).zfill(9)[:9]

    match style:
        case "format":
            return f"{digits[:3]}-{digits[3:5]}-{digits[5:]}"
        case "masked":
            return f"***-**-{digits[5:]}"
    return digits


def format_phone(value: Any, style: str | None = None) -> str:
    """Normalize a US phone number and render it.

    A leading country code ``1`` is dropped from 11-digit numbers. ``format``
    and ``dashes`` apply only to 10-digit numbers; other lengths come back as
    bare digits.
    """
    digits = _NON_DIGIT.sub("", str(value))
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]

    match style:
        case "format" if len(digits) == 10:
            return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
        case "dashes" if len(digits) == 10:
            return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"
        case "e164":
            return f"+1{digits}"
    return digits


def get_available_transformers() -> list[dict[str, Any]]:
    """List the supported transformer types with example specs."""
    return [
        {
            "type": "date",
            "description": "Format date values",
            "examples": ["date:YYYY-MM-DD", "date:MM/DD/YYYY", "date:MMDDYYYY"],
        },
        {
            "type": "code",
            "description": "Map values using code tables",
            "examples": ["code:HMIS_VETERAN", "code:WIPS_GENDER"],
        },
        {
            "type": "number",
            "description": "Format numeric values",
            "examples": ["number:integer", "number:decimal2", "number:percent"],
        },
        {
            "type": "ssn",
            "description": "Format Social Security Numbers",
            "examples": ["ssn:format", "ssn:nodash", "ssn:masked"],
        },
        {
            "type": "phone",
            "description": "Format phone numbers",
            "examples": ["phone:digits", "phone:format", "phone:e164"],
        },
    ]
