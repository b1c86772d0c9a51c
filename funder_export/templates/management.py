"""Template creation, validation and lifecycle.

Templates start as ``DRAFT``, become ``ACTIVE`` once they have mappings and
source forms, and end ``ARCHIVED``. Mappings and source forms of an active
template cannot be edited in place.
"""

from __future__ import annotations

import copy
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from funder_export.config import DEFAULT_TIMEZONE
from funder_export.errors import ConfigurationError, TemplateStateError, UnsupportedExportTypeError
from funder_export.extractor import parse_field_path, validate_mappings
from funder_export.scheduler.cron import parse_cron
from funder_export.templates.predefined import default_output_config, get_predefined_template
from funder_export.transformer import CodeTransform, parse_transformer_spec, validate_transformer_spec
from funder_export.types import (
    ExportTemplate,
    ExportType,
    FieldMapping,
    OutputConfig,
    OutputFormat,
    RuleType,
    ScheduleSpec,
    Severity,
    TemplateStatus,
    ValidationRule,
)
from funder_export.validation import compile_pattern

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

__all__ = [
    "TemplateCheck",
    "activate_template",
    "archive_template",
    "create_from_predefined",
    "template_from_dict",
    "template_to_dict",
    "update_template",
    "validate_template_config",
]

_OVERRIDE_KEYS = {
    "external_field": "externalField",
    "source_field": "sourceField",
    "default_value": "defaultValue",
}


# =============================================================================
# Creation
# =============================================================================


def _apply_override(mapping: FieldMapping, override: Mapping[str, Any]) -> FieldMapping:
    normalized = {_OVERRIDE_KEYS.get(k, k): v for k, v in override.items()}
    return FieldMapping.from_dict({**mapping.to_dict(), **normalized})


def create_from_predefined(
    export_type: ExportType | str,
    organization_id: str,
    source_form_ids: Sequence[str],
    *,
    template_id: str | None = None,
    name: str | None = None,
    description: str | None = None,
    field_mapping_overrides: Sequence[Mapping[str, Any]] = (),
    created_by_id: str | None = None,
) -> ExportTemplate:
    """Create a draft template from a predefined funder layout.

    Overrides are partial mappings matched on ``externalField``; overrides
    naming an unknown external field are ignored.

    Raises
    ------
    UnsupportedExportTypeError
        If the export type has no predefined layout.
    """
    predefined = get_predefined_template(export_type)
    if predefined is None:
        msg = f"No predefined template for export type: {export_type}"
        raise UnsupportedExportTypeError(msg)

    overrides = {
        o.get("externalField", o.get("external_field")): o for o in field_mapping_overrides
    }
    mappings = [
        _apply_override(f, overrides[f.external_field]) if f.external_field in overrides else f
        for f in predefined.fields
    ]

    return ExportTemplate(
        id=template_id or uuid.uuid4().hex,
        organization_id=organization_id,
        name=name or predefined.name,
        description=description or predefined.description,
        export_type=predefined.export_type,
        status=TemplateStatus.DRAFT,
        field_mappings=mappings,
        code_mappings=copy.deepcopy(predefined.code_mappings),
        validation_rules=list(predefined.validation_rules),
        output_format=predefined.output_format,
        output_config=default_output_config(predefined.export_type),
        source_form_ids=list(source_form_ids),
        created_by_id=created_by_id,
        field_max_lengths=dict(predefined.field_max_lengths),
    )


def _parse_timestamp(value: Any) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def template_from_dict(data: Mapping[str, Any]) -> ExportTemplate:
    """Build a template from its camelCase JSON form.

    Code mappings, validation rules and field length limits fall back to the
    predefined layout of the export type when the document omits them.
    """
    export_type = ExportType(data["exportType"])
    predefined = get_predefined_template(export_type)
    schedule = data.get("schedule") or {}

    code_mappings = data.get("codeMappings")
    if code_mappings is None:
        code_mappings = copy.deepcopy(predefined.code_mappings) if predefined else {}
    if "validationRules" in data:
        rules = [ValidationRule.from_dict(r) for r in data["validationRules"]]
    else:
        rules = list(predefined.validation_rules) if predefined else []

    return ExportTemplate(
        id=data["id"],
        organization_id=data["organizationId"],
        name=data.get("name") or (predefined.name if predefined else export_type.value),
        description=data.get("description"),
        export_type=export_type,
        status=TemplateStatus(data.get("status", TemplateStatus.DRAFT)),
        field_mappings=[FieldMapping.from_dict(m) for m in data.get("fieldMappings", [])],
        code_mappings=code_mappings,
        validation_rules=rules,
        output_format=OutputFormat(
            data.get("outputFormat") or (predefined.output_format if predefined else OutputFormat.CSV),
        ),
        output_config=default_output_config(export_type).merged(data.get("outputConfig")),
        source_form_ids=list(data.get("sourceFormIds", [])),
        schedule=ScheduleSpec(
            cron_expression=schedule.get("cronExpression"),
            timezone=schedule.get("timezone") or DEFAULT_TIMEZONE,
            enabled=bool(schedule.get("enabled", False)),
            last_run_at=_parse_timestamp(schedule.get("lastRunAt")),
            next_run_at=_parse_timestamp(schedule.get("nextRunAt")),
            consecutive_failure_count=int(schedule.get("consecutiveFailureCount", 0)),
            last_error=schedule.get("lastError"),
        ),
        created_by_id=data.get("createdById"),
        field_max_lengths=dict(
            data.get("fieldMaxLengths") or (predefined.field_max_lengths if predefined else {}),
        ),
    )


def template_to_dict(template: ExportTemplate) -> dict[str, Any]:
    schedule = template.schedule
    return {
        "id": template.id,
        "organizationId": template.organization_id,
        "name": template.name,
        "description": template.description,
        "exportType": str(template.export_type),
        "status": str(template.status),
        "fieldMappings": [m.to_dict() for m in template.field_mappings],
        "codeMappings": template.code_mappings,
        "validationRules": [
            {"field": r.field, "type": str(r.type), "message": r.message, "params": dict(r.params)}
            for r in template.validation_rules
        ],
        "outputFormat": str(template.output_format),
        "outputConfig": template.output_config.to_dict(),
        "sourceFormIds": list(template.source_form_ids),
        "schedule": {
            "cronExpression": schedule.cron_expression,
            "timezone": schedule.timezone,
            "enabled": schedule.enabled,
            "lastRunAt": schedule.last_run_at.isoformat() if schedule.last_run_at else None,
            "nextRunAt": schedule.next_run_at.isoformat() if schedule.next_run_at else None,
            "consecutiveFailureCount": schedule.consecutive_failure_count,
            "lastError": schedule.last_error,
        },
        "createdById": template.created_by_id,
        "fieldMaxLengths": dict(template.field_max_lengths),
    }


# =============================================================================
# Validation
# =============================================================================


@dataclass
class TemplateCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _check_mappings(template: ExportTemplate, check: TemplateCheck) -> None:
    counts = Counter(m.external_field for m in template.field_mappings if m.external_field)
    check.errors.extend(f"Duplicate external field {name}" for name, n in counts.items() if n > 1)

    for mapping in template.field_mappings:
        if not mapping.external_field:
            check.errors.append("Field mapping missing external field name")
            continue
        if not mapping.source_field:
            check.errors.append(f"Field mapping for {mapping.external_field} missing source field")
            continue

        if mapping.transformer is None:
            continue
        for problem in validate_transformer_spec(mapping.transformer):
            target = check.errors if problem.severity == Severity.ERROR else check.warnings
            target.append(f"{mapping.external_field}: {problem.message}")

        spec = parse_transformer_spec(mapping.transformer) if mapping.transformer else None
        if isinstance(spec, CodeTransform) and spec.table and spec.table not in template.code_mappings:
            check.warnings.append(
                f"{mapping.external_field}: code table {spec.table!r} is not defined; values pass through",
            )


def _check_rules(template: ExportTemplate, check: TemplateCheck) -> None:
    external = {m.external_field for m in template.field_mappings}
    for rule in template.validation_rules:
        if rule.field not in external:
            check.warnings.append(f"Validation rule references unmapped field {rule.field}")
        if rule.type == RuleType.FORMAT and rule.params.get("pattern"):
            try:
                compile_pattern(str(rule.params["pattern"]))
            except ConfigurationError as exc:
                check.errors.append(f"{rule.field}: {exc}")


def validate_template_config(
    template: ExportTemplate,
    available_form_fields: Iterable[str] | None = None,
) -> TemplateCheck:
    """Check a template before activation or scheduling.

    Parameters
    ----------
    template : ExportTemplate
        Template to check.
    available_form_fields : iterable of str, optional
        Form field slugs in the template's source forms. When omitted, form
        references are checked for syntax only.

    Returns
    -------
    TemplateCheck
        Errors block activation; warnings (unknown transformer parameters,
        missing predefined required fields) do not.
    """
    check = TemplateCheck()
    _check_mappings(template, check)

    valid_paths = [m for m in template.field_mappings if m.external_field and m.source_field]
    if available_form_fields is not None:
        mapping_check = validate_mappings(valid_paths, available_form_fields)
        check.errors.extend(mapping_check.errors)
        check.warnings.extend(mapping_check.warnings)
    else:
        for mapping in valid_paths:
            try:
                parse_field_path(mapping.source_field)
            except ConfigurationError as exc:
                check.errors.append(str(exc))

    _check_rules(template, check)

    if template.schedule.cron_expression:
        try:
            parse_cron(template.schedule.cron_expression)
        except ConfigurationError as exc:
            check.errors.append(str(exc))

    predefined = get_predefined_template(template.export_type)
    if predefined is not None:
        configured = {m.external_field for m in template.field_mappings}
        check.warnings.extend(
            f"Required field {name} not configured"
            for name in predefined.required_fields
            if name not in configured
        )

    return check


# =============================================================================
# Lifecycle
# =============================================================================


def activate_template(template: ExportTemplate) -> ExportTemplate:
    """Move a draft template to ``ACTIVE``.

    Raises
    ------
    TemplateStateError
        If the template is not a draft or lacks mappings or source forms.
    ConfigurationError
        If :func:`validate_template_config` reports errors.
    """
    if template.status != TemplateStatus.DRAFT:
        msg = "Only draft templates can be activated"
        raise TemplateStateError(msg)
    if not template.field_mappings:
        msg = "Template must have at least one field mapping"
        raise TemplateStateError(msg)
    if not template.source_form_ids:
        msg = "Template must have at least one source form"
        raise TemplateStateError(msg)

    check = validate_template_config(template)
    if not check.is_valid:
        msg = "Template configuration is invalid: " + "; ".join(check.errors)
        raise ConfigurationError(msg)

    template.status = TemplateStatus.ACTIVE
    return template


def archive_template(template: ExportTemplate) -> ExportTemplate:
    template.status = TemplateStatus.ARCHIVED
    return template


def update_template(
    template: ExportTemplate,
    *,
    name: str | None = None,
    description: str | None = None,
    source_form_ids: Sequence[str] | None = None,
    field_mappings: Sequence[FieldMapping] | None = None,
    validation_rules: Sequence[ValidationRule] | None = None,
    output_config: Mapping[str, Any] | OutputConfig | None = None,
) -> ExportTemplate:
    """Apply partial edits; output config overrides merge into the current config.

    Raises
    ------
    TemplateStateError
        If mappings or source forms are edited on an active template.
    """
    edits_layout = field_mappings is not None or source_form_ids is not None
    if template.status == TemplateStatus.ACTIVE and edits_layout:
        msg = "Cannot modify field mappings on active template. Archive it first."
        raise TemplateStateError(msg)

    if name is not None:
        template.name = name
    if description is not None:
        template.description = description
    if source_form_ids is not None:
        template.source_form_ids = list(source_form_ids)
    if field_mappings is not None:
        template.field_mappings = list(field_mappings)
    if validation_rules is not None:
        template.validation_rules = list(validation_rules)
    if isinstance(output_config, OutputConfig):
        template.output_config = output_config
    elif output_config is not None:
        template.output_config = template.output_config.merged(output_config)
    return template
