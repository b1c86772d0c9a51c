"""Tests for rule evaluation, funder checks, the runner and report formatting."""

from __future__ import annotations

from typing import Any

import pytest

from funder_export.errors import ConfigurationError
from funder_export.types import ExportType, FieldMapping, RuleType, Severity, ValidationRule
from funder_export.validation import (
    CUSTOM_CHECKS,
    check_rule,
    compile_pattern,
    format_validation_report,
    get_validation_summary,
    register_custom_check,
    run_funder_checks,
    summarize_by_field,
    validate_records,
)
from tests.conftest import make_record


def _rule(field: str, rule_type: RuleType, **params: Any) -> ValidationRule:
    return ValidationRule(field, rule_type, f"{field} failed {rule_type}", params)


class TestCheckRule:
    """Tests for check_rule per rule type."""

    def test_required(self) -> None:
        rule = _rule("A", RuleType.REQUIRED)
        assert check_rule(rule, {"A": "x"})
        assert check_rule(rule, {"A": 0})
        assert not check_rule(rule, {"A": ""})
        assert not check_rule(rule, {})

    def test_format_passes_on_empty(self) -> None:
        rule = _rule("DOB", RuleType.FORMAT, pattern=r"^\d{4}-\d{2}-\d{2}$")
        assert check_rule(rule, {"DOB": "1990-03-04"})
        assert not check_rule(rule, {"DOB": "03/04/1990"})
        assert check_rule(rule, {"DOB": ""})

    def test_range(self) -> None:
        rule = _rule("Age", RuleType.RANGE, min=0, max=120)
        assert check_rule(rule, {"Age": "45"})
        assert not check_rule(rule, {"Age": -1})
        assert not check_rule(rule, {"Age": "121"})
        assert check_rule(rule, {"Age": "unknown"})

    def test_enum_compares_as_strings(self) -> None:
        rule = _rule("Vet", RuleType.ENUM, values=["0", "1", 99])
        assert check_rule(rule, {"Vet": 1})
        assert check_rule(rule, {"Vet": "99"})
        assert not check_rule(rule, {"Vet": "7"})

    def test_dependency(self) -> None:
        rule = _rule("ExitDate", RuleType.DEPENDENCY, requires=["Destination", "ExitReason"])
        assert check_rule(rule, {"ExitDate": ""})
        assert check_rule(rule, {"ExitDate": "2024-01-01", "Destination": "1", "ExitReason": "2"})
        assert not check_rule(rule, {"ExitDate": "2024-01-01", "Destination": "1"})

    def test_custom_checks(self) -> None:
        assert check_rule(_rule("D", RuleType.CUSTOM, check="valid_date"), {"D": "2024-02-01"})
        assert not check_rule(_rule("D", RuleType.CUSTOM, check="valid_date"), {"D": "nope"})
        not_before = _rule("Exit", RuleType.CUSTOM, check="not_before", other="Entry")
        assert not check_rule(not_before, {"Exit": "2024-01-01", "Entry": "2024-02-01"})
        assert check_rule(_rule("N", RuleType.CUSTOM, check="max_length", length=3), {"N": "abc"})

    def test_unknown_custom_check_passes(self) -> None:
        assert check_rule(_rule("A", RuleType.CUSTOM, check="no_such_check"), {"A": "x"})

    def test_registered_custom_check(self) -> None:
        @register_custom_check("is_even")
        def _is_even(value: Any, data: Any, params: Any) -> bool:
            return int(value) % 2 == 0

        try:
            assert check_rule(_rule("N", RuleType.CUSTOM, check="is_even"), {"N": "4"})
            assert not check_rule(_rule("N", RuleType.CUSTOM, check="is_even"), {"N": "3"})
        finally:
            CUSTOM_CHECKS.pop("is_even")

    def test_invalid_pattern_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            compile_pattern("([a-z")


class TestFunderChecks:
    """Tests for funder-specific cross-field checks."""

    def test_hmis_exit_before_entry(self) -> None:
        data = {
            "EntryDate": "2024-02-01",
            "ExitDate": "2024-01-01",
            "Destination": "1",
            "Woman": "1",
            "White": "1",
        }
        findings = run_funder_checks(ExportType.HUD_HMIS, data)
        assert [(f.field, f.severity) for f in findings] == [("ExitDate", Severity.ERROR)]

    def test_hmis_demographics_and_destination_warnings(self) -> None:
        findings = run_funder_checks(ExportType.HUD_HMIS, {"ExitDate": "2024-01-01"})
        assert {f.field for f in findings} == {"Destination", "Gender", "Race"}
        assert all(f.severity == Severity.WARNING for f in findings)

    def test_wips_ssn_and_credential(self) -> None:
        findings = run_funder_checks(
            ExportType.DOL_WIPS,
            {"SSN": "12345", "CREDENTIAL_ATTAINED": "1", "EMPLOYED_AT_EXIT": "1"},
        )
        by_field = {f.field: f.severity for f in findings}
        assert by_field == {
            "SSN": Severity.ERROR,
            "HOURLY_WAGE_AT_EXIT": Severity.WARNING,
            "CREDENTIAL_TYPE": Severity.ERROR,
        }

    def test_cap60_ranges(self) -> None:
        findings = run_funder_checks(
            ExportType.CAP60,
            {"HouseholdSize": "0", "AnnualHouseholdIncome": "-5", "PovertyLevel": "650.0%"},
        )
        assert [(f.field, f.severity) for f in findings] == [
            ("HouseholdSize", Severity.ERROR),
            ("AnnualHouseholdIncome", Severity.ERROR),
            ("PovertyLevel", Severity.WARNING),
        ]

    def test_calgrants_checks(self) -> None:
        findings = run_funder_checks(
            ExportType.CALI_GRANTS,
            {
                "CA_Resident": "N",
                "Total_Service_Hours": "-1",
                "Outcome_Achieved": "Y",
                "Enrollment_Date": "2024-03-01",
                "Completion_Date": "2024-01-01",
            },
        )
        assert [f.field for f in findings] == [
            "CA_Resident",
            "Total_Service_Hours",
            "Outcome_Type",
            "Completion_Date",
        ]

    def test_custom_type_has_no_checks(self) -> None:
        assert run_funder_checks(ExportType.CUSTOM, {}) == []


class TestValidateRecords:
    """Tests for validate_records."""

    def test_partitions_by_severity(self) -> None:
        rules = [
            _rule("A", RuleType.REQUIRED),
            ValidationRule("B", RuleType.REQUIRED, "B missing", {"severity": "warning"}),
        ]
        records = [
            make_record("c-1", A="x", B="y"),
            make_record("c-2", A="", B=""),
            make_record("c-3", A=""),
        ]
        result = validate_records(records, ExportType.CUSTOM, rules)

        assert not result.is_valid
        assert [e.subject_id for e in result.errors] == ["c-2", "c-3"]
        assert [w.record_index for w in result.warnings] == [1, 2]
        assert result.valid_record_count == 1
        assert result.invalid_record_count == 2

    def test_warnings_only_is_valid(self) -> None:
        rules = [ValidationRule("B", RuleType.REQUIRED, "B missing", {"severity": "warning"})]
        result = validate_records([make_record(B="")], ExportType.CUSTOM, rules)
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_required_mapping_warning(self) -> None:
        mappings = [
            FieldMapping("A", "form:a", required=True),
            FieldMapping("B", "form:b", required=True, default_value="0"),
        ]
        result = validate_records([make_record(A="", B="")], ExportType.CUSTOM, [], mappings)
        assert [w.message for w in result.warnings] == ["Required field A is missing"]

    def test_none_rules_use_predefined(self) -> None:
        result = validate_records(
            [make_record(PersonalID="c-1", FirstName="A", LastName="B", DOB="03/04/1990", EntryDate="")],
            ExportType.HUD_HMIS,
        )
        assert {e.field for e in result.errors} == {"DOB", "EntryDate"}

    def test_empty_run_is_valid(self) -> None:
        result = validate_records([], ExportType.CUSTOM, [])
        assert result.is_valid
        assert result.valid_record_count == 0


class TestReportFormatting:
    """Tests for the validation report helpers."""

    @pytest.fixture
    def result(self) -> Any:
        rules = [_rule("SSN", RuleType.REQUIRED), _rule("DOB", RuleType.REQUIRED)]
        records = [make_record("c-1", SSN="", DOB=""), make_record("c-2", SSN="", DOB="1990-01-01")]
        return validate_records(records, ExportType.CUSTOM, rules)

    def test_summary(self, result: Any) -> None:
        summary = get_validation_summary(result)
        assert summary.status == "errors"
        assert summary.message == "2 of 2 records have errors"
        assert summary.details == ["SSN: 2 issues", "DOB: 1 issue"]

    def test_summarize_by_field(self, result: Any) -> None:
        assert summarize_by_field(result.errors)[0] == "SSN: 2 issues"

    def test_report_lists_findings(self, result: Any) -> None:
        report = format_validation_report(result, max_items=1)
        assert "VALIDATION REPORT" in report
        assert "Errors: (3)" in report
        assert "... 2 more" in report
        assert "Warnings: (none)" in report

    def test_valid_summary(self) -> None:
        result = validate_records([make_record(A="x")], ExportType.CUSTOM, [])
        assert get_validation_summary(result).message == "All 1 records passed validation"
