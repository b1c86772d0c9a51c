"""Transformer mini-language: spec parsing and value formatters."""

from funder_export.transformer.specs import (
    DATE_FORMATS,
    CodeTransform,
    DateTransform,
    NumberTransform,
    PhoneTransform,
    SpecProblem,
    SsnTransform,
    TransformSpec,
    UnknownTransform,
    parse_transformer_spec,
    validate_transformer_spec,
)
from funder_export.transformer.transformers import (
    format_code,
    format_date,
    format_number,
    format_phone,
    format_ssn,
    get_available_transformers,
    parse_date,
    to_number,
    transform_value,
)

__all__ = [
    # Specs
    "DATE_FORMATS",
    "CodeTransform",
    "DateTransform",
    "NumberTransform",
    "PhoneTransform",
    "SpecProblem",
    "SsnTransform",
    "TransformSpec",
    "UnknownTransform",
    "parse_transformer_spec",
    "validate_transformer_spec",
    # Formatters
    "format_code",
    "format_date",
    "format_number",
    "format_phone",
    "format_ssn",
    "get_available_transformers",
    "parse_date",
    "to_number",
    "transform_value",
]
