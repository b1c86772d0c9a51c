"""Export pipeline: orchestration and file storage."""

from funder_export.pipeline.orchestrator import RETRYABLE_STATUSES, ExportPipeline
from funder_export.pipeline.storage import (
    METADATA_SUFFIX,
    ExportFileMetadata,
    ExportStorage,
    LocalExportStorage,
    build_filename,
    build_storage_key,
    extension_for_content_type,
)

__all__ = [
    "METADATA_SUFFIX",
    "RETRYABLE_STATUSES",
    "ExportFileMetadata",
    "ExportPipeline",
    "ExportStorage",
    "LocalExportStorage",
    "build_filename",
    "build_storage_key",
    "extension_for_content_type",
]
