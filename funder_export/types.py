"""Dataclasses and enums for the export data model.

This module contains pure data structures with no business logic dependencies,
ensuring they can be imported without circular dependencies. Wire-format
helpers (``from_dict`` / ``to_dict``) use the camelCase keys that templates
are stored with.
"""

from __future__ import annotations

import codecs
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from funder_export.errors import ConfigurationError

__all__ = [
    "CodeMappings",
    "ExportPreview",
    "ExportRequest",
    "ExportResult",
    "ExportStatus",
    "ExportTemplate",
    "ExportType",
    "ExtractedRecord",
    "ExtractionResult",
    "FieldMapping",
    "OutputConfig",
    "OutputFormat",
    "RuleType",
    "ScheduleSpec",
    "Severity",
    "SourceData",
    "TemplateStatus",
    "ValidationError",
    "ValidationResult",
    "ValidationRule",
]

CodeMappings = dict[str, dict[str, str]]


class ExportType(StrEnum):
    """Funder export families with predefined layouts."""

    HUD_HMIS = "HUD_HMIS"
    DOL_WIPS = "DOL_WIPS"
    CAP60 = "CAP60"
    CALI_GRANTS = "CALI_GRANTS"
    CUSTOM = "CUSTOM"


class OutputFormat(StrEnum):
    CSV = "CSV"
    TXT = "TXT"
    XLSX = "XLSX"


class ExportStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    VALIDATION_REQUIRED = "validationRequired"
    COMPLETED = "completed"
    FAILED = "failed"


class TemplateStatus(StrEnum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class RuleType(StrEnum):
    REQUIRED = "required"
    FORMAT = "format"
    RANGE = "range"
    ENUM = "enum"
    DEPENDENCY = "dependency"
    CUSTOM = "custom"


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, so both camelCase and snake_case load."""
    for key in keys:
        if key in data:
            return data[key]
    return default


# =============================================================================
# Mapping Configuration
# =============================================================================


@dataclass(frozen=True)
class FieldMapping:
    """Correspondence between one source path and one external field.

    Attributes
    ----------
    external_field : str
        Field name required by the funder; unique within a template.
    source_field : str
        Dotted path (``client.address.city``) or ``form:<slug>`` reference.
    required : bool
        Whether the funder requires the field.
    transformer : str or None
        Transformer spec string such as ``"date:YYYY-MM-DD"``.
    default_value : str or None
        Substituted when the mapped value is empty.
    description : str or None
        Help text.
    """

    external_field: str
    source_field: str
    required: bool = False
    transformer: str | None = None
    default_value: str | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldMapping:
        return cls(
            external_field=_pick(data, "externalField", "external_field", default=""),
            source_field=_pick(data, "sourceField", "source_field", default=""),
            required=bool(_pick(data, "required", default=False)),
            transformer=_pick(data, "transformer"),
            default_value=_pick(data, "defaultValue", "default_value"),
            description=_pick(data, "description"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "externalField": self.external_field,
            "sourceField": self.source_field,
            "required": self.required,
        }
        if self.transformer is not None:
            result["transformer"] = self.transformer
        if self.default_value is not None:
            result["defaultValue"] = self.default_value
        if self.description is not None:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class ValidationRule:
    """Structural rule evaluated against one external field."""

    field: str
    type: RuleType
    message: str
    params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ValidationRule:
        return cls(
            field=data["field"],
            type=RuleType(data["type"]),
            message=data.get("message", ""),
            params=dict(data.get("params") or {}),
        )


@dataclass(frozen=True)
class OutputConfig:
    """Serialization settings shared by all generators.

    Raises
    ------
    ConfigurationError
        If the delimiter, quote or escape character is not exactly one
        character, or the line ending is not ``LF``/``CRLF``.
    """

    delimiter: str = ","
    encoding: str = "utf-8"
    include_headers: bool = True
    line_ending: str = "CRLF"
    quote_char: str = '"'
    escape_char: str = '"'
    date_format: str | None = None

    def __post_init__(self) -> None:
        if len(self.delimiter) != 1:
            msg = f"Delimiter must be exactly one character, got {self.delimiter!r}"
            raise ConfigurationError(msg)
        if self.line_ending not in {"LF", "CRLF"}:
            msg = f"Line ending must be LF or CRLF, got {self.line_ending!r}"
            raise ConfigurationError(msg)
        if len(self.quote_char) != 1 or len(self.escape_char) != 1:
            msg = "Quote and escape characters must be exactly one character"
            raise ConfigurationError(msg)
        try:
            codecs.lookup(self.encoding)
        except LookupError as exc:
            msg = f"Unknown output encoding {self.encoding!r}"
            raise ConfigurationError(msg) from exc

    @property
    def line_terminator(self) -> str:
        return "\r\n" if self.line_ending == "CRLF" else "\n"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OutputConfig:
        return cls().merged(data)

    def merged(self, overrides: Mapping[str, Any] | None) -> OutputConfig:
        """Return a copy with camelCase or snake_case overrides applied."""
        if not overrides:
            return self
        key_map = {
            "delimiter": "delimiter",
            "encoding": "encoding",
            "includeHeaders": "include_headers",
            "include_headers": "include_headers",
            "lineEnding": "line_ending",
            "line_ending": "line_ending",
            "quoteChar": "quote_char",
            "quote_char": "quote_char",
            "escapeChar": "escape_char",
            "escape_char": "escape_char",
            "dateFormat": "date_format",
            "date_format": "date_format",
        }
        changes = {key_map[k]: v for k, v in overrides.items() if k in key_map and v is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "delimiter": self.delimiter,
            "encoding": self.encoding,
            "includeHeaders": self.include_headers,
            "lineEnding": self.line_ending,
            "quoteChar": self.quote_char,
            "escapeChar": self.escape_char,
            "dateFormat": self.date_format,
        }


@dataclass
class ScheduleSpec:
    """Recurring-run settings attached to a template.

    A schedule is skipped by the due query (but stays ``enabled``) once
    ``consecutive_failure_count`` reaches the failure threshold.
    """

    cron_expression: str | None = None
    timezone: str = "America/Los_Angeles"
    enabled: bool = False
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    consecutive_failure_count: int = 0
    last_error: str | None = None


@dataclass
class ExportTemplate:
    """Template aggregate: mappings, rules, output settings and schedule."""

    id: str
    organization_id: str
    name: str
    export_type: ExportType
    status: TemplateStatus = TemplateStatus.DRAFT
    field_mappings: list[FieldMapping] = field(default_factory=list)
    code_mappings: CodeMappings = field(default_factory=dict)
    validation_rules: list[ValidationRule] = field(default_factory=list)
    output_format: OutputFormat = OutputFormat.CSV
    output_config: OutputConfig = field(default_factory=OutputConfig)
    source_form_ids: list[str] = field(default_factory=list)
    schedule: ScheduleSpec = field(default_factory=ScheduleSpec)
    created_by_id: str | None = None
    description: str | None = None
    field_max_lengths: dict[str, int] = field(default_factory=dict)


# =============================================================================
# Extraction
# =============================================================================


@dataclass
class SourceData:
    """Raw data for one subject, resolved by field paths.

    ``client``, ``program`` and ``enrollment`` may be mappings or objects
    with attributes; ``form_data`` is the flat aggregate of form submissions.
    """

    client: Any
    form_data: Mapping[str, Any] = field(default_factory=dict)
    program: Any = None
    enrollment: Any = None

    def resolve_form(self, slug: str) -> Any:
        return self.form_data.get(slug)

    def resolve_root(self, root: str) -> Any:
        return {
            "client": self.client,
            "program": self.program,
            "enrollment": self.enrollment,
        }.get(root)


@dataclass(frozen=True)
class ExtractedRecord:
    """Mapped output for one subject; ``data`` is read-only after creation."""

    subject_id: str
    subject_name: str
    data: Mapping[str, Any]
    source_reference_ids: tuple[str, ...] = ()
    extracted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))
        object.__setattr__(self, "source_reference_ids", tuple(self.source_reference_ids))


@dataclass
class ExtractionResult:
    records: list[ExtractedRecord]
    total_subjects: int
    extracted_fields: list[str] = field(default_factory=list)
    missing_fields: dict[str, int] = field(default_factory=dict)


# =============================================================================
# Validation Results
# =============================================================================


@dataclass(frozen=True)
class ValidationError:
    """One finding against one record; ``severity`` decides whether it blocks."""

    record_index: int
    subject_id: str | None
    field: str
    value: Any
    message: str
    severity: Severity = Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordIndex": self.record_index,
            "subjectId": self.subject_id,
            "field": self.field,
            "value": self.value,
            "message": self.message,
            "severity": str(self.severity),
        }


@dataclass
class ValidationResult:
    """Hand-off artifact between the validator and the orchestrator."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)
    valid_record_count: int = 0
    invalid_record_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "validRecordCount": self.valid_record_count,
            "invalidRecordCount": self.invalid_record_count,
        }


# =============================================================================
# Pipeline Contracts
# =============================================================================


@dataclass(frozen=True)
class ExportRequest:
    """Input contract for one pipeline run."""

    template_id: str
    organization_id: str
    period_start: date
    period_end: date
    subject_id_filter: tuple[str, ...] | None = None
    program_id_filter: tuple[str, ...] | None = None
    skip_validation: bool = False
    requested_by: str | None = None


@dataclass
class ExportResult:
    """Output contract for one pipeline run."""

    export_id: str
    status: ExportStatus
    record_count: int = 0
    file_path: str | None = None
    validation_result: ValidationResult | None = None
    error: str | None = None
    processing_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "exportId": self.export_id,
            "status": str(self.status),
            "recordCount": self.record_count,
        }
        if self.file_path is not None:
            result["filePath"] = self.file_path
        if self.validation_result is not None:
            result["validationResult"] = self.validation_result.to_dict()
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ExportPreview:
    headers: list[str]
    rows: list[list[str]]
    total_records: int
    validation_warnings: list[ValidationError] = field(default_factory=list)
