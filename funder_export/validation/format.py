"""Validation report formatting utilities.

This module provides functions to summarize validation results for display
and logging. All functions are pure formatters with no side effects beyond
logging.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from funder_export.types import ValidationError, ValidationResult

logger = logging.getLogger(__name__)

__all__ = [
    "ValidationSummary",
    "format_finding",
    "format_validation_report",
    "get_validation_summary",
    "log_validation_report",
    "summarize_by_field",
]


@dataclass(frozen=True)
class ValidationSummary:
    status: str
    message: str
    details: list[str] = field(default_factory=list)


def summarize_by_field(findings: Iterable[ValidationError]) -> list[str]:
    """Count findings per field, most frequent first.

    Returns
    -------
    list[str]
        Lines such as ``"SSN: 3 issues"``.
    """
    counts = Counter(f.field for f in findings)
    return [f"{name}: {count} issue{'s' if count > 1 else ''}" for name, count in counts.most_common()]


def get_validation_summary(result: ValidationResult) -> ValidationSummary:
    """Classify a result as ``valid``, ``warnings`` or ``errors`` with a headline.

    Parameters
    ----------
    result
        Outcome of :func:`~funder_export.validation.validate_records`.

    Returns
    -------
    ValidationSummary
        Status, one-line message and per-field detail lines.
    """
    if not result.errors and not result.warnings:
        return ValidationSummary("valid", f"All {result.valid_record_count} records passed validation")

    if not result.errors:
        return ValidationSummary(
            "warnings",
            f"{result.valid_record_count} records valid with {len(result.warnings)} warnings",
            summarize_by_field(result.warnings),
        )

    total = result.valid_record_count + result.invalid_record_count
    return ValidationSummary(
        "errors",
        f"{result.invalid_record_count} of {total} records have errors",
        summarize_by_field(result.errors),
    )


def format_finding(finding: ValidationError) -> str:
    """Format one finding as ``[record 3 / c-1] SSN: message (value='12')``."""
    symbol = "✗" if finding.severity == "error" else "⚠"
    subject = f" / {finding.subject_id}" if finding.subject_id else ""
    value = f" (value={finding.value!r})" if finding.value not in (None, "") else ""
    return f"  {symbol} [record {finding.record_index}{subject}] {finding.field}: {finding.message}{value}"


def _format_section(header: str, findings: list[ValidationError], max_items: int) -> list[str]:
    if not findings:
        return [f"{header} (none)"]
    lines = [f"{header} ({len(findings)})"]
    lines.extend(format_finding(f) for f in findings[:max_items])
    if len(findings) > max_items:
        lines.append(f"  ... {len(findings) - max_items} more")
    return lines


def format_validation_report(result: ValidationResult, max_items: int = 20) -> str:
    """Format a validation result for display.

    Parameters
    ----------
    result
        Validation outcome to render.
    max_items
        Maximum findings listed per section.

    Returns
    -------
    str
        Formatted multi-line report string.
    """
    summary = get_validation_summary(result)
    separator = "═" * 60
    lines = [separator, "                    VALIDATION REPORT", separator, "", summary.message, ""]

    if summary.details:
        lines.append("By field:")
        lines.extend(f"  • {detail}" for detail in summary.details)
        lines.append("")

    lines.extend(_format_section("Errors:", result.errors, max_items))
    lines.append("")
    lines.extend(_format_section("Warnings:", result.warnings, max_items))
    lines.extend(["", separator])

    return "\n".join(lines)


def log_validation_report(result: ValidationResult) -> None:
    """Log validation results with appropriate log levels.

    Parameters
    ----------
    result
        Validation outcome to log.
    """
    summary = get_validation_summary(result)
    if summary.status == "valid":
        logger.info("✓ %s", summary.message)
        return

    log = logger.warning if summary.status == "errors" else logger.info
    log("%s %s", "✗" if summary.status == "errors" else "⚠", summary.message)
    for detail in summary.details:
        log("  • %s", detail)
