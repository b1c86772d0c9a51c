"""Extraction package: field paths, field mapping and batched record extraction."""

from funder_export.extractor.extraction import (
    Enrollment,
    FormSubmission,
    InMemoryRecordSource,
    RecordSource,
    SourceSubject,
    build_source_data,
    extract_records,
)
from funder_export.extractor.field_mapper import (
    MappingCheck,
    MappingSuggestion,
    extract_value,
    get_available_fields,
    get_field_type,
    is_empty,
    map_fields,
    resolve_default,
    suggest_mappings,
    validate_mappings,
)
from funder_export.extractor.paths import (
    ClientField,
    EnrollmentField,
    FieldPath,
    FieldResolver,
    FormField,
    ProgramField,
    parse_field_path,
    resolve_path,
)

__all__ = [
    # Paths
    "ClientField",
    "EnrollmentField",
    "FieldPath",
    "FieldResolver",
    "FormField",
    "ProgramField",
    "parse_field_path",
    "resolve_path",
    # Mapping
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
    # Extraction
    "Enrollment",
    "FormSubmission",
    "InMemoryRecordSource",
    "RecordSource",
    "SourceSubject",
    "build_source_data",
    "extract_records",
]
