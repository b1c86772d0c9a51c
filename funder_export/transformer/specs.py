"""Transformer spec parsing.

A spec string ``"<type>[:<param>]"`` is parsed once into one variant of a
closed set of frozen dataclasses. Unknown types parse to
:class:`UnknownTransform`, which formats as the identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from funder_export.types import Severity

__all__ = [
    "DATE_FORMATS",
    "DEFAULT_DATE_FORMAT",
    "NUMBER_STYLES",
    "PHONE_STYLES",
    "SSN_STYLES",
    "CodeTransform",
    "DateTransform",
    "NumberTransform",
    "PhoneTransform",
    "SpecProblem",
    "SsnTransform",
    "TransformSpec",
    "UnknownTransform",
    "parse_transformer_spec",
    "validate_transformer_spec",
]

# Funder date tokens mapped to strftime patterns.
DATE_FORMATS: dict[str, str] = {
    "YYYY-MM-DD": "%Y-%m-%d",
    "MM/DD/YYYY": "%m/%d/%Y",
    "MMDDYYYY": "%m%d%Y",
    "DD-MM-YYYY": "%d-%m-%Y",
    "YYYYMMDD": "%Y%m%d",
}
DEFAULT_DATE_FORMAT = "YYYY-MM-DD"

NUMBER_STYLES = frozenset({"integer", "decimal2", "decimal4", "percent", "currency"})
SSN_STYLES = frozenset({"format", "nodash", "masked"})
PHONE_STYLES = frozenset({"digits", "format", "dashes", "e164"})


@dataclass(frozen=True)
class DateTransform:
    format: str = DEFAULT_DATE_FORMAT


@dataclass(frozen=True)
class CodeTransform:
    table: str | None = None


@dataclass(frozen=True)
class NumberTransform:
    style: str | None = None


@dataclass(frozen=True)
class SsnTransform:
    style: str | None = None


@dataclass(frozen=True)
class PhoneTransform:
    style: str | None = None


@dataclass(frozen=True)
class UnknownTransform:
    raw: str


TransformSpec = (
    DateTransform | CodeTransform | NumberTransform | SsnTransform | PhoneTransform | UnknownTransform
)


@dataclass(frozen=True)
class SpecProblem:
    severity: Severity
    message: str


@lru_cache(maxsize=256)
def parse_transformer_spec(spec: str) -> TransformSpec:
    """Parse a transformer spec string.

    Parameters
    ----------
    spec
        Spec such as ``"date:MMDDYYYY"``, ``"code:HMIS_YESNO"`` or ``"ssn"``.

    Returns
    -------
    TransformSpec
        Parsed variant; never raises.
    """
    kind, _, param = spec.partition(":")
    kind = kind.strip().lower()
    value = param.strip() or None

    match kind:
        case "date":
            return DateTransform(value or DEFAULT_DATE_FORMAT)
        case "code":
            return CodeTransform(value)
        case "number":
            return NumberTransform(value)
        case "ssn":
            return SsnTransform(value)
        case "phone":
            return PhoneTransform(value)
        case _:
            return UnknownTransform(spec)


def validate_transformer_spec(spec: str | None) -> list[SpecProblem]:
    """Check a spec string for problems worth reporting on a template.

    Parameters
    ----------
    spec
        Raw spec string from a field mapping.

    Returns
    -------
    list[SpecProblem]
        Empty when the spec is fully understood. An empty spec is an error;
        unknown types and unknown parameters are warnings because they
        degrade to pass-through or default formatting at run time.
    """
    if spec is None:
        return []
    if not spec.strip():
        return [SpecProblem(Severity.ERROR, "Transformer spec is empty")]

    parsed = parse_transformer_spec(spec)
    problems: list[SpecProblem] = []

    match parsed:
        case UnknownTransform(raw=raw):
            problems.append(
                SpecProblem(Severity.WARNING, f"Unknown transformer type in {raw!r}; value passes through"),
            )
        case DateTransform(format=fmt) if fmt not in DATE_FORMATS:
            problems.append(
                SpecProblem(Severity.WARNING, f"Unknown date format {fmt!r}; {DEFAULT_DATE_FORMAT} is used"),
            )
        case CodeTransform(table=None):
            msg = "Code transformer has no table; value passes through"
            problems.append(SpecProblem(Severity.WARNING, msg))
        case NumberTransform(style=style) if style is not None and style not in NUMBER_STYLES:
            problems.append(SpecProblem(Severity.WARNING, f"Unknown number style {style!r}"))
        case SsnTransform(style=style) if style is not None and style not in SSN_STYLES:
            problems.append(SpecProblem(Severity.WARNING, f"Unknown SSN style {style!r}"))
        case PhoneTransform(style=style) if style is not None and style not in PHONE_STYLES:
            problems.append(SpecProblem(Severity.WARNING, f"Unknown phone style {style!r}"))

    return problems
