"""Tests for field paths, value extraction and mapping helpers."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from funder_export.errors import InvalidFieldPathError
from funder_export.extractor import (
    ClientField,
    EnrollmentField,
    FormField,
    extract_value,
    get_available_fields,
    get_field_type,
    map_fields,
    parse_field_path,
    suggest_mappings,
    validate_mappings,
)
from funder_export.types import FieldMapping, SourceData


@dataclass
class _Program:
    id: str
    name: str
    _secret: str = "hidden"


@pytest.fixture
def source() -> SourceData:
    return SourceData(
        client={
            "id": "c-1",
            "firstName": "Ana",
            "address": {"city": "Oakland", "state": "CA"},
            "tags": "x",
        },
        form_data={"dateOfBirth": "03/04/1990", "ssn": "123456789", "veteran": "Yes", "blank": ""},
        program=_Program("prog-1", "Housing First"),
        enrollment=None,
    )


class TestParseFieldPath:
    """Tests for parse_field_path."""

    def test_form_path(self) -> None:
        assert parse_field_path("form:dateOfBirth") == FormField("dateOfBirth")

    def test_dotted_paths(self) -> None:
        assert parse_field_path("client.address.city") == ClientField(("address", "city"))
        assert parse_field_path("enrollment.status") == EnrollmentField(("status",))

    def test_str_round_trips(self) -> None:
        assert str(parse_field_path("client.address.city")) == "client.address.city"
        assert str(parse_field_path("form:ssn")) == "form:ssn"

    @pytest.mark.parametrize("raw", ["", "form:", "client", "client..city", "household.size", "firstName"])
    def test_invalid_paths_raise(self, raw: str) -> None:
        with pytest.raises(InvalidFieldPathError):
            parse_field_path(raw)


class TestExtractValue:
    """Tests for extract_value resolution."""

    def test_form_and_nested_client(self, source: SourceData) -> None:
        assert extract_value(source, "form:dateOfBirth") == "03/04/1990"
        assert extract_value(source, "client.address.city") == "Oakland"

    def test_object_attributes(self, source: SourceData) -> None:
        assert extract_value(source, "program.name") == "Housing First"

    def test_private_attributes_are_not_read(self, source: SourceData) -> None:
        assert extract_value(source, "program._secret") is None

    def test_missing_data_is_none(self, source: SourceData) -> None:
        assert extract_value(source, "form:unknown") is None
        assert extract_value(source, "client.address.zip") is None
        assert extract_value(source, "enrollment.status") is None

    def test_non_object_intermediate_is_none(self, source: SourceData) -> None:
        assert extract_value(source, "client.tags.length") is None


class TestMapFields:
    """Tests for map_fields."""

    def test_transforms_and_defaults(self, source: SourceData) -> None:
        mappings = [
            FieldMapping("DOB", "form:dateOfBirth", transformer="date:YYYY-MM-DD"),
            FieldMapping("SSN", "form:ssn", transformer="ssn:masked"),
            FieldMapping("Veteran", "form:veteran", transformer="code:YESNO"),
            FieldMapping("Blank", "form:blank", default_value="99"),
            FieldMapping("Missing", "form:nothing"),
        ]
        result = map_fields(source, mappings, {"YESNO": {"Yes": "1", "No": "0"}})

        assert result == {
            "DOB": "1990-03-04",
            "SSN": "***-**-6789",
            "Veteran": "1",
            "Blank": "99",
            "Missing": "",
        }

    def test_preserves_mapping_order(self, source: SourceData) -> None:
        mappings = [FieldMapping("B", "client.id"), FieldMapping("A", "client.firstName")]
        assert list(map_fields(source, mappings)) == ["B", "A"]

    def test_invalid_path_raises(self, source: SourceData) -> None:
        with pytest.raises(InvalidFieldPathError):
            map_fields(source, [FieldMapping("X", "bogus")])


class TestCatalogue:
    """Tests for get_available_fields and get_field_type."""

    def test_available_fields_groups(self) -> None:
        fields = get_available_fields(
            ["ssn", {"slug": "dob", "name": "Date of Birth", "type": "DATE", "formId": "intake"}],
        )
        assert set(fields) == {"clientFields", "formFields", "programFields", "enrollmentFields"}
        assert fields["formFields"][0] == {"path": "form:ssn", "label": "ssn", "type": "unknown"}
        assert fields["formFields"][1] == {
            "path": "form:dob",
            "label": "Date of Birth",
            "type": "date",
            "formId": "intake",
        }

    def test_field_types(self) -> None:
        assert get_field_type("client.phone") == "phone"
        assert get_field_type("enrollment.totalHours") == "number"
        assert get_field_type("form:anything") == "unknown"
        assert get_field_type("client.nickname") == "unknown"


class TestValidateMappings:
    """Tests for validate_mappings."""

    def test_missing_required_form_field_is_error(self) -> None:
        check = validate_mappings([FieldMapping("DOB", "form:dob", required=True)], ["ssn"])
        assert check.errors == ["Required form field not found: form:dob"]
        assert not check.valid

    def test_missing_optional_or_defaulted_is_warning(self) -> None:
        mappings = [
            FieldMapping("A", "form:a"),
            FieldMapping("B", "form:b", required=True, default_value="0"),
        ]
        check = validate_mappings(mappings, [])
        assert check.valid
        assert len(check.warnings) == 2

    def test_invalid_path_is_error(self) -> None:
        check = validate_mappings([FieldMapping("X", "household.size")], [])
        assert len(check.errors) == 1


class TestSuggestMappings:
    """Tests for suggest_mappings."""

    def test_pattern_prefers_available_form_field(self) -> None:
        (suggestion,) = suggest_mappings(["VeteranStatus"], ["veteranStatus"])
        assert suggestion.suggested_path == "form:veteranStatus"
        assert suggestion.confidence == 0.9

    def test_pattern_falls_back_to_standard_path(self) -> None:
        (suggestion,) = suggest_mappings(["FIRST_NAME"], [])
        assert suggestion.suggested_path == "client.firstName"
        assert suggestion.confidence == 0.8

    def test_exact_and_partial_slug_matches(self) -> None:
        exact, partial, none = suggest_mappings(
            ["HouseholdSize", "Income", "Zzz"],
            ["householdsize", "monthlyIncome"],
        )
        assert (exact.suggested_path, exact.confidence) == ("form:householdsize", 1.0)
        assert (partial.suggested_path, partial.confidence) == ("form:monthlyIncome", 0.7)
        assert (none.suggested_path, none.confidence) == (None, 0.0)
