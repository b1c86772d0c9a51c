"""Map source data onto external funder fields.

The mapper is a pure function over its inputs: it extracts each mapping's
source path, applies the transformer when a value is present, and falls
back to the mapping default (then ``""``) for empty results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from funder_export.errors import InvalidFieldPathError
from funder_export.extractor.paths import (
    FORM_PREFIX,
    FieldPath,
    FieldResolver,
    parse_field_path,
    resolve_path,
)
from funder_export.transformer import transform_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from funder_export.types import FieldMapping

__all__ = [
    "CLIENT_FIELDS",
    "ENROLLMENT_FIELDS",
    "PROGRAM_FIELDS",
    "MappingCheck",
    "MappingSuggestion",
    "extract_value",
    "get_available_fields",
    "get_field_type",
    "is_empty",
    "map_fields",
    "resolve_default",
    "suggest_mappings",
    "validate_mappings",
]

# (path, label, type) catalogues of the standard non-form paths.
CLIENT_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("client.id", "Client ID", "string"),
    ("client.firstName", "First Name", "string"),
    ("client.lastName", "Last Name", "string"),
    ("client.phone", "Phone", "phone"),
    ("client.email", "Email", "email"),
    ("client.address.street", "Address - Street", "string"),
    ("client.address.city", "Address - City", "string"),
    ("client.address.state", "Address - State", "string"),
    ("client.address.zip", "Address - ZIP", "string"),
    ("client.internalId", "Internal ID", "string"),
    ("client.status", "Client Status", "enum"),
    ("client.createdAt", "Client Created Date", "date"),
)

PROGRAM_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("program.id", "Program ID", "string"),
    ("program.name", "Program Name", "string"),
    ("program.labelType", "Program Type", "enum"),
    ("program.startDate", "Program Start Date", "date"),
    ("program.endDate", "Program End Date", "date"),
    ("program.location", "Program Location", "string"),
)

ENROLLMENT_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("enrollment.id", "Enrollment ID", "string"),
    ("enrollment.enrolledDate", "Enrollment Date", "date"),
    ("enrollment.status", "Enrollment Status", "enum"),
    ("enrollment.completionDate", "Completion Date", "date"),
    ("enrollment.withdrawalDate", "Withdrawal Date", "date"),
    ("enrollment.totalHours", "Total Hours", "number"),
)

_FIELD_TYPES: dict[str, str] = {
    path: kind for path, _, kind in (*CLIENT_FIELDS, *PROGRAM_FIELDS, *ENROLLMENT_FIELDS)
}

# Name fragments (lowercase, no separators) mapped to candidate source paths.
_SUGGESTION_PATTERNS: dict[str, tuple[str, ...]] = {
    "firstname": ("client.firstName", "form:firstName", "form:first_name"),
    "lastname": ("client.lastName", "form:lastName", "form:last_name"),
    "phone": ("client.phone", "form:phone", "form:phoneNumber"),
    "email": ("client.email", "form:email", "form:emailAddress"),
    "dob": ("form:dateOfBirth", "form:dob", "form:birthDate"),
    "ssn": ("form:ssn", "form:socialSecurityNumber"),
    "address": ("client.address.street", "form:address", "form:streetAddress"),
    "city": ("client.address.city", "form:city"),
    "state": ("client.address.state", "form:state"),
    "zip": ("client.address.zip", "form:zip", "form:zipCode"),
    "veteran": ("form:veteranStatus", "form:isVeteran"),
    "gender": ("form:gender", "form:sex"),
}


# =============================================================================
# Extraction and Mapping
# =============================================================================


def is_empty(value: Any) -> bool:
    """Return True for the values that trigger default substitution."""
    return value is None or value == ""


def resolve_default(value: Any, default_value: str | None) -> Any:
    """Substitute ``default_value`` (then ``""``) for an empty value."""
    if is_empty(value):
        return default_value if default_value is not None else ""
    return value


def extract_value(source: FieldResolver, path: str | FieldPath) -> Any:
    """Read one value from ``source``.

    Parameters
    ----------
    source
        Any :class:`FieldResolver`, typically :class:`~funder_export.types.SourceData`.
    path
        Path string or parsed path.

    Returns
    -------
    Any
        The value, or ``None`` when any part of the path is missing or hits
        a non-object intermediate.

    Raises
    ------
    InvalidFieldPathError
        If ``path`` is a string that is not a recognised path form.
    """
    parsed = parse_field_path(path) if isinstance(path, str) else path
    return resolve_path(source, parsed)


def map_fields(
    source: FieldResolver,
    mappings: Sequence[FieldMapping],
    code_mappings: Mapping[str, Mapping[str, str]] | None = None,
) -> dict[str, Any]:
    """Map ``source`` onto external fields in mapping order.

    Parameters
    ----------
    source
        Subject data to read from.
    mappings
        Template field mappings.
    code_mappings
        Code tables for ``code:`` transformers.

    Returns
    -------
    dict[str, Any]
        External field name to value; empty results carry the mapping default
        or ``""``.
    """
    result: dict[str, Any] = {}
    for mapping in mappings:
        value = extract_value(source, mapping.source_field)
        if mapping.transformer and value is not None:
            value = transform_value(value, mapping.transformer, code_mappings)
        result[mapping.external_field] = resolve_default(value, mapping.default_value)
    return result


def get_field_type(path: str) -> str:
    """Return the declared data type of a standard path, else ``"unknown"``."""
    if path.startswith(FORM_PREFIX):
        return "unknown"
    return _FIELD_TYPES.get(path, "unknown")


def get_available_fields(
    form_fields: Iterable[Mapping[str, Any] | str] = (),
) -> dict[str, list[dict[str, Any]]]:
    """Catalogue of mappable paths grouped by source.

    Parameters
    ----------
    form_fields
        Form field slugs, or mappings with ``slug`` and optional ``name``,
        ``type``, ``formId`` and ``formName`` keys.

    Returns
    -------
    dict[str, list[dict[str, Any]]]
        Keys ``clientFields``, ``formFields``, ``programFields`` and
        ``enrollmentFields``; each entry has ``path``, ``label`` and ``type``.
    """
    forms: list[dict[str, Any]] = []
    for form_field in form_fields:
        if isinstance(form_field, str):
            forms.append({"path": f"{FORM_PREFIX}{form_field}", "label": form_field, "type": "unknown"})
            continue
        slug = form_field["slug"]
        entry = {
            "path": f"{FORM_PREFIX}{slug}",
            "label": form_field.get("name", slug),
            "type": str(form_field.get("type", "unknown")).lower(),
        }
        if "formId" in form_field:
            entry["formId"] = form_field["formId"]
        if "formName" in form_field:
            entry["formName"] = form_field["formName"]
        forms.append(entry)

    def _entries(catalogue: tuple[tuple[str, str, str], ...]) -> list[dict[str, Any]]:
        return [{"path": path, "label": label, "type": kind} for path, label, kind in catalogue]

    return {
        "clientFields": _entries(CLIENT_FIELDS),
        "formFields": forms,
        "programFields": _entries(PROGRAM_FIELDS),
        "enrollmentFields": _entries(ENROLLMENT_FIELDS),
    }


# =============================================================================
# Mapping Checks and Suggestions
# =============================================================================


@dataclass
class MappingCheck:
    """Outcome of :func:`validate_mappings`."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class MappingSuggestion:
    external_field: str
    suggested_path: str | None
    confidence: float


def validate_mappings(mappings: Sequence[FieldMapping], available_form_fields: Iterable[str]) -> MappingCheck:
    """Check mapping paths against the parser and the available form fields.

    A form field missing from ``available_form_fields`` is an error when the
    mapping is required and has no default, otherwise a warning.
    """
    available = {f"{FORM_PREFIX}{slug}" for slug in available_form_fields}
    check = MappingCheck()

    for mapping in mappings:
        path = mapping.source_field
        try:
            parse_field_path(path)
        except InvalidFieldPathError as exc:
            check.errors.append(str(exc))
            continue

        if path.startswith(FORM_PREFIX) and path not in available:
            if mapping.required and not mapping.default_value:
                check.errors.append(f"Required form field not found: {path}")
            else:
                check.warnings.append(f"Form field not found: {path}")

    return check


def _normalize_name(name: str) -> str:
    return name.lower().replace("_", "").replace(" ", "")


def suggest_mappings(
    external_fields: Iterable[str],
    available_form_fields: Sequence[str],
) -> list[MappingSuggestion]:
    """Suggest a source path for each external field name.

    Known name fragments win first (0.9 for an available form path, 0.8 for a
    standard path). Otherwise an exact form slug match scores 1.0 and a
    containing slug 0.7; no match scores 0.
    """
    suggestions: list[MappingSuggestion] = []

    for external in external_fields:
        normalized = _normalize_name(external)
        best: tuple[str, float] | None = None

        for fragment, paths in _SUGGESTION_PATTERNS.items():
            if fragment not in normalized:
                continue
            for path in paths:
                if not path.startswith(FORM_PREFIX):
                    best = (path, 0.8)
                    break
                if path[len(FORM_PREFIX) :] in available_form_fields:
                    best = (path, 0.9)
                    break
            if best:
                break

        if best is None and normalized:
            for slug in available_form_fields:
                if slug.lower() == normalized:
                    best = (f"{FORM_PREFIX}{slug}", 1.0)
                    break
                if normalized in slug.lower():
                    best = (f"{FORM_PREFIX}{slug}", 0.7)

        suggestions.append(
            MappingSuggestion(
                external_field=external,
                suggested_path=best[0] if best else None,
                confidence=best[1] if best else 0.0,
            ),
        )

    return suggestions
