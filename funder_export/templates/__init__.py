"""Export templates: predefined funder layouts, validation and lifecycle."""

from funder_export.templates.management import (
    TemplateCheck,
    activate_template,
    archive_template,
    create_from_predefined,
    template_from_dict,
    template_to_dict,
    update_template,
    validate_template_config,
)
from funder_export.templates.predefined import (
    PREDEFINED_TYPES,
    PredefinedTemplate,
    SuggestedMapping,
    default_output_config,
    get_all_predefined_templates,
    get_predefined_template,
    get_suggested_mappings,
)
from funder_export.templates.repository import InMemoryTemplateRepository, TemplateRepository

__all__ = [
    "PREDEFINED_TYPES",
    "InMemoryTemplateRepository",
    "PredefinedTemplate",
    "SuggestedMapping",
    "TemplateCheck",
    "TemplateRepository",
    "activate_template",
    "archive_template",
    "create_from_predefined",
    "default_output_config",
    "get_all_predefined_templates",
    "get_predefined_template",
    "get_suggested_mappings",
    "template_from_dict",
    "template_to_dict",
    "update_template",
    "validate_template_config",
]
