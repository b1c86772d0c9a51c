"""Validation runner for mapped export records.

Each record goes through the generic rules, then the funder-specific checks
for its export type, then (optionally) the required-mapping check. Findings
are partitioned by severity into a :class:`ValidationResult`; records are
never modified.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from funder_export.extractor import is_empty
from funder_export.types import Severity, ValidationError, ValidationResult
from funder_export.validation.funder import run_funder_checks
from funder_export.validation.rules import check_rule, rule_severity

if TYPE_CHECKING:
    from collections.abc import Sequence

    from funder_export.types import ExportType, ExtractedRecord, FieldMapping, ValidationRule

logger = logging.getLogger(__name__)

__all__ = [
    "validate_record",
    "validate_records",
]


def validate_record(
    index: int,
    record: ExtractedRecord,
    export_type: ExportType,
    rules: Sequence[ValidationRule],
    field_mappings: Sequence[FieldMapping] | None = None,
) -> list[ValidationError]:
    """Collect every finding for one record.

    Parameters
    ----------
    index
        Position of the record in the run, reported on each finding.
    record
        Mapped record to check.
    export_type
        Selects the funder-specific checks.
    rules
        Generic rules to evaluate.
    field_mappings
        When given, required mappings that came out empty without a default
        produce warnings.

    Returns
    -------
    list[ValidationError]
        Findings of both severities, in rule order then check order.
    """
    data = record.data
    findings: list[ValidationError] = []

    for rule in rules:
        if not check_rule(rule, data):
            findings.append(
                ValidationError(
                    record_index=index,
                    subject_id=record.subject_id,
                    field=rule.field,
                    value=data.get(rule.field),
                    message=rule.message,
                    severity=rule_severity(rule),
                ),
            )

    findings.extend(
        ValidationError(
            record_index=index,
            subject_id=record.subject_id,
            field=finding.field,
            value=data.get(finding.field),
            message=finding.message,
            severity=finding.severity,
        )
        for finding in run_funder_checks(export_type, data)
    )

    for mapping in field_mappings or ():
        if mapping.required and not mapping.default_value and is_empty(data.get(mapping.external_field)):
            findings.append(
                ValidationError(
                    record_index=index,
                    subject_id=record.subject_id,
                    field=mapping.external_field,
                    value=data.get(mapping.external_field),
                    message=f"Required field {mapping.external_field} is missing",
                    severity=Severity.WARNING,
                ),
            )

    return findings


def validate_records(
    records: Sequence[ExtractedRecord],
    export_type: ExportType,
    rules: Sequence[ValidationRule] | None = None,
    field_mappings: Sequence[FieldMapping] | None = None,
) -> ValidationResult:
    """Validate a run's records.

    Parameters
    ----------
    records
        Mapped records, validated in order.
    export_type
        Export type selecting funder checks and, when ``rules`` is None, the
        predefined rule set.
    rules
        Generic rules; ``None`` uses the predefined template's rules (an
        explicit empty list means no generic rules).
    field_mappings
        Optional mappings for the required-field warnings.

    Returns
    -------
    ValidationResult
        ``is_valid`` is True iff no error-severity finding exists;
        ``invalid_record_count`` counts distinct records with errors.
    """
    if rules is None:
        from funder_export.templates import get_predefined_template

        predefined = get_predefined_template(export_type)
        rules = predefined.validation_rules if predefined else []

    errors: list[ValidationError] = []
    warnings: list[ValidationError] = []

    for index, record in enumerate(records):
        for finding in validate_record(index, record, export_type, rules, field_mappings):
            (errors if finding.severity == Severity.ERROR else warnings).append(finding)

    invalid_indices = {e.record_index for e in errors}
    result = ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        valid_record_count=len(records) - len(invalid_indices),
        invalid_record_count=len(invalid_indices),
    )
    logger.debug(
        "Validated %d records: %d errors, %d warnings",
        len(records),
        len(errors),
        len(warnings),
    )
    return result
