"""Funder-specific cross-field checks.

Checks are registered per export type with :func:`funder_check` and run after
the generic rules. Each check receives the mapped record data and yields
:class:`Finding`s; the runner attaches record index, subject and value.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from funder_export.extractor import is_empty
from funder_export.transformer import parse_date, to_number
from funder_export.types import ExportType, Severity

__all__ = [
    "FUNDER_CHECKS",
    "HMIS_GENDER_FIELDS",
    "HMIS_RACE_FIELDS",
    "Finding",
    "FunderCheck",
    "funder_check",
    "run_funder_checks",
]


@dataclass(frozen=True)
class Finding:
    field: str
    message: str
    severity: Severity = Severity.ERROR


FunderCheck = Callable[[Mapping[str, Any]], Iterable[Finding]]

FUNDER_CHECKS: dict[ExportType, list[FunderCheck]] = {}

HMIS_GENDER_FIELDS = (
    "Woman",
    "Man",
    "CulturallySpecific",
    "DifferentIdentity",
    "NonBinary",
    "Transgender",
    "Questioning",
    "GenderNone",
)
HMIS_RACE_FIELDS = (
    "AmIndAKNative",
    "Asian",
    "BlackAfAmerican",
    "HispanicLatinaeo",
    "MidEastNAfrican",
    "NativeHIPacific",
    "White",
    "RaceNone",
)


def funder_check(export_type: ExportType) -> Callable[[FunderCheck], FunderCheck]:
    """Register a check for ``export_type``."""

    def decorator(func: FunderCheck) -> FunderCheck:
        FUNDER_CHECKS.setdefault(export_type, []).append(func)
        return func

    return decorator


def run_funder_checks(export_type: ExportType, data: Mapping[str, Any]) -> list[Finding]:
    """Run every check registered for ``export_type`` against one record."""
    findings: list[Finding] = []
    for check in FUNDER_CHECKS.get(export_type, []):
        findings.extend(check(data))
    return findings


def _date_order_violated(data: Mapping[str, Any], first: str, second: str) -> bool:
    """True when both dates parse and ``first`` falls after ``second``."""
    if is_empty(data.get(first)) or is_empty(data.get(second)):
        return False
    start, end = parse_date(data[first]), parse_date(data[second])
    return start is not None and end is not None and start > end


def _number(data: Mapping[str, Any], name: str) -> float | None:
    value = data.get(name)
    return None if is_empty(value) else to_number(value)


# =============================================================================
# HUD HMIS
# =============================================================================


@funder_check(ExportType.HUD_HMIS)
def _hmis_dates(data: Mapping[str, Any]) -> Iterator[Finding]:
    if _date_order_violated(data, "EntryDate", "ExitDate"):
        yield Finding("ExitDate", "Exit date cannot be before entry date")
    if not is_empty(data.get("ExitDate")) and is_empty(data.get("Destination")):
        yield Finding("Destination", "Destination is required when exit date is present", Severity.WARNING)


@funder_check(ExportType.HUD_HMIS)
def _hmis_demographics(data: Mapping[str, Any]) -> Iterator[Finding]:
    if not any(str(data.get(name)) == "1" for name in HMIS_GENDER_FIELDS):
        yield Finding("Gender", "At least one gender field must be selected", Severity.WARNING)
    if not any(str(data.get(name)) == "1" for name in HMIS_RACE_FIELDS):
        yield Finding("Race", "At least one race field must be selected", Severity.WARNING)


# =============================================================================
# DOL WIPS
# =============================================================================


@funder_check(ExportType.DOL_WIPS)
def _wips_checks(data: Mapping[str, Any]) -> Iterator[Finding]:
    ssn = data.get("SSN")
    if not is_empty(ssn) and sum(ch.isdigit() for ch in str(ssn)) != 9:
        yield Finding("SSN", "SSN must be exactly 9 digits")

    if not is_empty(data.get("EXIT_DATE")) and is_empty(data.get("EXIT_TYPE")):
        yield Finding("EXIT_TYPE", "Exit type is required when exit date is present", Severity.WARNING)

    if str(data.get("EMPLOYED_AT_EXIT")) == "1" and is_empty(data.get("HOURLY_WAGE_AT_EXIT")):
        yield Finding(
            "HOURLY_WAGE_AT_EXIT",
            "Hourly wage is recommended when employed at exit",
            Severity.WARNING,
        )

    if str(data.get("CREDENTIAL_ATTAINED")) == "1" and is_empty(data.get("CREDENTIAL_TYPE")):
        yield Finding("CREDENTIAL_TYPE", "Credential type is required when credential is attained")


# =============================================================================
# CAP60
# =============================================================================


@funder_check(ExportType.CAP60)
def _cap60_checks(data: Mapping[str, Any]) -> Iterator[Finding]:
    household = _number(data, "HouseholdSize")
    if household is not None and household < 1:
        yield Finding("HouseholdSize", "Household size must be at least 1")

    income = _number(data, "AnnualHouseholdIncome")
    if income is not None and income < 0:
        yield Finding("AnnualHouseholdIncome", "Annual household income cannot be negative")

    poverty_raw = data.get("PovertyLevel")
    poverty = None if is_empty(poverty_raw) else to_number(str(poverty_raw).replace("%", ""))
    if poverty is not None and not 0 <= poverty <= 500:
        yield Finding("PovertyLevel", "Poverty level should be between 0% and 500%", Severity.WARNING)


# =============================================================================
# CalGrants
# =============================================================================


@funder_check(ExportType.CALI_GRANTS)
def _calgrants_checks(data: Mapping[str, Any]) -> Iterator[Finding]:
    if data.get("CA_Resident") != "Y":
        yield Finding("CA_Resident", "Participant must be a California resident", Severity.WARNING)

    hours = _number(data, "Total_Service_Hours")
    if hours is not None and hours < 0:
        yield Finding("Total_Service_Hours", "Total service hours cannot be negative")

    if data.get("Outcome_Achieved") == "Y" and is_empty(data.get("Outcome_Type")):
        yield Finding("Outcome_Type", "Outcome type is required when outcome is achieved", Severity.WARNING)

    if _date_order_violated(data, "Enrollment_Date", "Completion_Date"):
        yield Finding("Completion_Date", "Completion date cannot be before enrollment date")
