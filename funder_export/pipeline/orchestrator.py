"""Export pipeline orchestration.

One run processes one template for one period:

1. Configuration checks (template exists in the organization, is active,
   and has a usable output format and period). Failures raise before any
   data is read.
2. Extraction of mapped records, in batches with cooperative cancellation.
3. Validation. A run with error findings stops at ``validationRequired``
   unless the request sets ``skip_validation``.
4. Generation from a frozen snapshot of the records.
5. Storage of the finished bytes with metadata.

Any unexpected failure after the configuration checks marks the run
``failed`` with the error message and is re-raised for the job layer.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from itertools import islice
from typing import TYPE_CHECKING

from funder_export.config import get_pipeline_config, setup_logging
from funder_export.errors import (
    ConfigurationError,
    ExportError,
    TemplateNotFoundError,
    TemplateStateError,
    UnsupportedExportTypeError,
)
from funder_export.extractor import extract_records
from funder_export.generators import RowFormatter, create_generator
from funder_export.pipeline.storage import ExportFileMetadata
from funder_export.templates import get_predefined_template
from funder_export.types import (
    CodeMappings,
    ExportPreview,
    ExportResult,
    ExportStatus,
    ExportType,
    OutputFormat,
    TemplateStatus,
)
from funder_export.validation import log_validation_report, validate_records

if TYPE_CHECKING:
    from collections.abc import Callable

    from funder_export.extractor import RecordSource
    from funder_export.pipeline.storage import ExportStorage
    from funder_export.templates import TemplateRepository
    from funder_export.types import ExportRequest, ExportTemplate

logger = setup_logging(__name__)

__all__ = ["RETRYABLE_STATUSES", "ExportPipeline"]

RETRYABLE_STATUSES = frozenset({ExportStatus.FAILED, ExportStatus.VALIDATION_REQUIRED})


class ExportPipeline:
    """Runs, previews and retries exports.

    Parameters
    ----------
    record_source : RecordSource
        Read side of the case-management store.
    storage : ExportStorage
        Destination for finished files.
    templates : TemplateRepository
        Template lookup.
    batch_size : int, optional
        Subjects mapped between cancellation checks; defaults to the
        ``pipeline`` section of ``config.json``.
    should_cancel : callable, optional
        Polled between extraction batches; returning True cancels the run.
    """

    def __init__(
        self,
        record_source: RecordSource,
        storage: ExportStorage,
        templates: TemplateRepository,
        batch_size: int | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> None:
        settings = get_pipeline_config()
        self.record_source = record_source
        self.storage = storage
        self.templates = templates
        self.batch_size = batch_size if batch_size is not None else int(settings["batch_size"])
        self.preview_limit = int(settings["preview_limit"])
        self.should_cancel = should_cancel
        # Latest result per export id, including failed runs that re-raised
        self.results: dict[str, ExportResult] = {}

    # -------------------------------------------------------------------------
    # Configuration checks
    # -------------------------------------------------------------------------

    def _load_template(self, request: ExportRequest, *, require_active: bool = True) -> ExportTemplate:
        template = self.templates.get(request.template_id)
        if template is None or template.organization_id != request.organization_id:
            msg = f"Template not found: {request.template_id}"
            raise TemplateNotFoundError(msg)
        if require_active and template.status != TemplateStatus.ACTIVE:
            msg = "Template must be active to generate exports"
            raise TemplateStateError(msg)

        try:
            ExportType(template.export_type)
            OutputFormat(template.output_format)
        except ValueError as exc:
            msg = f"Unsupported export type or format for template {template.id}: {exc}"
            raise UnsupportedExportTypeError(msg) from exc

        if request.period_start > request.period_end:
            msg = f"Period start {request.period_start} is after period end {request.period_end}"
            raise ConfigurationError(msg)
        return template

    @staticmethod
    def _code_mappings(template: ExportTemplate) -> CodeMappings:
        if template.code_mappings:
            return template.code_mappings
        predefined = get_predefined_template(template.export_type)
        return predefined.code_mappings if predefined else {}

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, request: ExportRequest, export_id: str | None = None) -> ExportResult:
        """Run one export end to end.

        Returns
        -------
        ExportResult
            ``completed`` with the storage key, or ``validationRequired``
            with the validation result and no file.

        Raises
        ------
        ConfigurationError
            If the template is missing, inactive or unsupported, or the
            period is inverted. Nothing is recorded in :attr:`results`.
        ExportError
            Any failure after the checks (cancellation, storage) is recorded
            as ``failed`` and re-raised, as is any other exception.
        """
        template = self._load_template(request)
        export_id = export_id or uuid.uuid4().hex
        started = time.monotonic()

        result = ExportResult(export_id=export_id, status=ExportStatus.PROCESSING)
        self.results[export_id] = result
        logger.info(
            "Export %s: %s template %s for %s to %s",
            export_id,
            template.export_type,
            template.id,
            request.period_start,
            request.period_end,
        )

        try:
            extraction = extract_records(
                self.record_source.fetch_subjects(request, template),
                template.field_mappings,
                self._code_mappings(template),
                batch_size=self.batch_size,
                should_cancel=self.should_cancel,
            )
            records = tuple(extraction.records)
            result.record_count = len(records)

            validation = validate_records(
                records,
                template.export_type,
                template.validation_rules,
                template.field_mappings,
            )
            result.validation_result = validation
            log_validation_report(validation)

            if not validation.is_valid and not request.skip_validation:
                result.status = ExportStatus.VALIDATION_REQUIRED
                result.processing_time_ms = _elapsed_ms(started)
                logger.warning(
                    "Export %s needs review: %d records with errors",
                    export_id,
                    validation.invalid_record_count,
                )
                return result

            generator = create_generator(
                template.export_type,
                template.output_format,
                template.field_mappings,
                template.field_max_lengths,
            )
            content = generator.generate(records, template.output_config)

            metadata = ExportFileMetadata(
                export_id=export_id,
                organization_id=request.organization_id,
                template_id=template.id,
                export_type=str(template.export_type),
                record_count=len(records),
                generated_at=datetime.now(UTC).isoformat(),
                period_start=request.period_start.isoformat(),
                period_end=request.period_end.isoformat(),
                generated_by=request.requested_by,
            )
            result.file_path = self.storage.upload(
                export_id,
                request.organization_id,
                content,
                generator.content_type(),
                metadata,
            )
        except Exception as exc:
            result.status = ExportStatus.FAILED
            result.error = str(exc) or type(exc).__name__
            result.processing_time_ms = _elapsed_ms(started)
            logger.error("Export %s failed: %s", export_id, result.error)
            raise

        result.status = ExportStatus.COMPLETED
        result.processing_time_ms = _elapsed_ms(started)
        logger.info(
            "Export %s completed: %d records in %d ms",
            export_id,
            result.record_count,
            result.processing_time_ms,
        )
        return result

    # -------------------------------------------------------------------------
    # Preview and retry
    # -------------------------------------------------------------------------

    def preview(self, request: ExportRequest, limit: int | None = None) -> ExportPreview:
        """Map and validate the first ``limit`` subjects without generating a file.

        Drafts can be previewed; cells use the same default resolution and
        stringification as the text generators.
        """
        template = self._load_template(request, require_active=False)
        limit = limit if limit is not None else self.preview_limit

        subjects = islice(self.record_source.fetch_subjects(request, template), limit)
        extraction = extract_records(
            subjects,
            template.field_mappings,
            self._code_mappings(template),
            batch_size=self.batch_size,
        )
        validation = validate_records(
            extraction.records,
            template.export_type,
            template.validation_rules,
            template.field_mappings,
        )

        formatter = RowFormatter.from_mappings(template.field_mappings)
        return ExportPreview(
            headers=formatter.headers(),
            rows=list(formatter.text_rows(extraction.records)),
            total_records=self.record_source.count_subjects(request, template),
            validation_warnings=validation.warnings,
        )

    def retry(
        self,
        previous_request: ExportRequest,
        previous_result: ExportResult,
        *,
        skip_validation: bool | None = None,
    ) -> ExportResult:
        """Run a failed or validation-required export again as a new export.

        Raises
        ------
        ExportError
            If the previous result is in any other status.
        """
        if previous_result.status not in RETRYABLE_STATUSES:
            msg = "Only failed or validation-required exports can be retried"
            raise ExportError(msg)

        request = previous_request
        if skip_validation is not None:
            request = replace(previous_request, skip_validation=skip_validation)
        logger.info("Retrying export %s", previous_result.export_id)
        return self.run(request)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
