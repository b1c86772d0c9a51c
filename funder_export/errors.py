"""Exception taxonomy for the export pipeline.

Configuration problems fail fast before any data is touched. Validation
findings are data, not exceptions, and never appear here.
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "CronParseError",
    "ExportCancelledError",
    "ExportError",
    "InvalidFieldPathError",
    "ScheduleSearchExhaustedError",
    "StorageError",
    "TemplateNotFoundError",
    "TemplateStateError",
    "UnsupportedExportTypeError",
]


class ExportError(Exception):
    """Base class for all export pipeline errors."""


class ConfigurationError(ExportError, ValueError):
    """Template, schedule or mapping configuration is unusable."""


class CronParseError(ConfigurationError):
    """A cron expression could not be parsed."""


class InvalidFieldPathError(ConfigurationError):
    """A field mapping source path is not a recognised path form."""


class TemplateNotFoundError(ConfigurationError, LookupError):
    """No template exists for the given id and organization."""


class TemplateStateError(ConfigurationError):
    """The template is in the wrong lifecycle state for the operation."""


class UnsupportedExportTypeError(ConfigurationError):
    """No generator or predefined template exists for the export type."""


class ScheduleSearchExhaustedError(ConfigurationError):
    """No matching run time exists inside the search horizon."""


class ExportCancelledError(ExportError):
    """A cooperative cancellation check stopped the run between batches."""


class StorageError(ExportError):
    """The finished file could not be handed to storage."""
