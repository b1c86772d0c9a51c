"""Validation package for funder exports.

This package provides generic rule evaluation, funder-specific cross-field
checks, the validation runner, and report formatting.
"""

from funder_export.validation.format import (
    ValidationSummary,
    format_finding,
    format_validation_report,
    get_validation_summary,
    log_validation_report,
    summarize_by_field,
)
from funder_export.validation.funder import (
    FUNDER_CHECKS,
    Finding,
    funder_check,
    run_funder_checks,
)
from funder_export.validation.rules import (
    CUSTOM_CHECKS,
    check_rule,
    compile_pattern,
    register_custom_check,
    rule_severity,
)
from funder_export.validation.runner import (
    validate_record,
    validate_records,
)

__all__ = [
    # Rules
    "CUSTOM_CHECKS",
    "check_rule",
    "compile_pattern",
    "register_custom_check",
    "rule_severity",
    # Funder checks
    "FUNDER_CHECKS",
    "Finding",
    "funder_check",
    "run_funder_checks",
    # Runner
    "validate_record",
    "validate_records",
    # Formatting
    "ValidationSummary",
    "format_finding",
    "format_validation_report",
    "get_validation_summary",
    "log_validation_report",
    "summarize_by_field",
]
