"""Predefined funder templates.

Each funder layout (field list, code tables, validation rules, output
defaults) is stored as JSON in ``config/templates/<export_type>.json`` and
loaded once per process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from funder_export.config import get_output_defaults, get_template_config
from funder_export.types import (
    CodeMappings,
    ExportType,
    FieldMapping,
    OutputConfig,
    OutputFormat,
    ValidationRule,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = [
    "PREDEFINED_TYPES",
    "PredefinedTemplate",
    "SuggestedMapping",
    "default_output_config",
    "get_all_predefined_templates",
    "get_predefined_template",
    "get_suggested_mappings",
]

PREDEFINED_TYPES: tuple[ExportType, ...] = (
    ExportType.HUD_HMIS,
    ExportType.DOL_WIPS,
    ExportType.CAP60,
    ExportType.CALI_GRANTS,
)


@dataclass(frozen=True)
class PredefinedTemplate:
    """A funder's standard layout as shipped in config."""

    export_type: ExportType
    name: str
    description: str
    output_format: OutputFormat
    fields: tuple[FieldMapping, ...]
    code_mappings: CodeMappings = field(default_factory=dict)
    validation_rules: tuple[ValidationRule, ...] = ()
    delimiter: str | None = None
    encoding: str | None = None
    include_headers: bool = True
    field_max_lengths: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PredefinedTemplate:
        return cls(
            export_type=ExportType(data["exportType"]),
            name=data["name"],
            description=data.get("description", ""),
            output_format=OutputFormat(data.get("outputFormat", OutputFormat.CSV)),
            fields=tuple(FieldMapping.from_dict(f) for f in data.get("fields", [])),
            code_mappings={k: dict(v) for k, v in data.get("codeMappings", {}).items()},
            validation_rules=tuple(ValidationRule.from_dict(r) for r in data.get("validationRules", [])),
            delimiter=data.get("delimiter"),
            encoding=data.get("encoding"),
            include_headers=data.get("includeHeaders", True),
            field_max_lengths={k: int(v) for k, v in data.get("fieldMaxLengths", {}).items()},
        )

    @property
    def required_fields(self) -> list[str]:
        return [f.external_field for f in self.fields if f.required]


@dataclass(frozen=True)
class SuggestedMapping:
    external_field: str
    suggested_source_fields: tuple[str, ...]
    required: bool


@lru_cache(maxsize=None)
def _load(export_type: ExportType) -> PredefinedTemplate:
    return PredefinedTemplate.from_dict(get_template_config(export_type.value.lower()))


def get_predefined_template(export_type: ExportType | str) -> PredefinedTemplate | None:
    """Return the predefined template for ``export_type``; ``CUSTOM`` has none.

    Raises
    ------
    ValueError
        If ``export_type`` is not a known export type.
    """
    export_type = ExportType(export_type)
    if export_type not in PREDEFINED_TYPES:
        return None
    return _load(export_type)


def get_all_predefined_templates() -> dict[ExportType, PredefinedTemplate | None]:
    return {export_type: get_predefined_template(export_type) for export_type in ExportType}


def get_suggested_mappings(export_type: ExportType | str) -> list[SuggestedMapping]:
    """Suggested source paths for each external field of a predefined layout."""
    template = get_predefined_template(export_type)
    if template is None:
        return []
    return [SuggestedMapping(f.external_field, (f.source_field,), f.required) for f in template.fields]


def default_output_config(export_type: ExportType | str) -> OutputConfig:
    """Project output defaults with the funder's delimiter, encoding and header setting."""
    config = OutputConfig.from_dict(get_output_defaults())
    predefined = get_predefined_template(export_type)
    if predefined is None:
        return config
    return config.merged(
        {
            "delimiter": predefined.delimiter,
            "encoding": predefined.encoding,
            "includeHeaders": predefined.include_headers,
        },
    )
