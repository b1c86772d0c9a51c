"""Tests for export orchestration and file storage.

Tests cover:
1. Completed runs: file contents, storage key and metadata sidecar
2. Validation gating and skip_validation
3. Failures after the configuration checks (cancellation, storage) are recorded and re-raised
4. Configuration failures raise before anything is recorded
5. Preview and retry
6. File naming and the local storage backend
"""

from __future__ import annotations

import csv
import io
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pytest
from openpyxl import load_workbook

from funder_export.errors import (
    ConfigurationError,
    ExportCancelledError,
    ExportError,
    StorageError,
    TemplateNotFoundError,
    TemplateStateError,
)
from funder_export.extractor import InMemoryRecordSource
from funder_export.generators import XLSX_CONTENT_TYPE
from funder_export.pipeline import (
    ExportFileMetadata,
    ExportPipeline,
    LocalExportStorage,
    build_filename,
    build_storage_key,
    extension_for_content_type,
)
from funder_export.templates import InMemoryTemplateRepository
from funder_export.types import ExportStatus, ExportTemplate, ExportType, OutputFormat, TemplateStatus
from tests.conftest import ORG_ID

CSV_NAME = "custom_export_2024-01-01_to_2024-01-31.csv"


def _pipeline_for(
    template: ExportTemplate,
    record_source: InMemoryRecordSource,
    root: Path,
) -> ExportPipeline:
    return ExportPipeline(record_source, LocalExportStorage(root), InMemoryTemplateRepository([template]))


# =============================================================================
# Run Tests
# =============================================================================


class TestRun:
    """Tests for ExportPipeline.run."""

    def test_validation_errors_stop_the_run(self, pipeline: ExportPipeline, request_for: Any) -> None:
        result = pipeline.run(request_for(), export_id="exp-1")

        assert result.status == ExportStatus.VALIDATION_REQUIRED
        assert result.file_path is None
        assert result.record_count == 3
        assert result.validation_result is not None
        assert [e.subject_id for e in result.validation_result.errors] == ["c-3"]
        assert pipeline.results["exp-1"] is result

    def test_skip_validation_completes(
        self,
        pipeline: ExportPipeline,
        storage: LocalExportStorage,
        request_for: Any,
    ) -> None:
        result = pipeline.run(request_for(skip_validation=True, requested_by="user-9"), export_id="exp-1")

        assert result.status == ExportStatus.COMPLETED
        assert result.file_path is not None
        assert result.file_path.startswith(f"exports/{ORG_ID}/")
        assert result.file_path.endswith(f"/exp-1/{CSV_NAME}")
        assert result.processing_time_ms is not None

        content = storage.download(result.file_path)
        assert content is not None
        rows = list(csv.reader(io.StringIO(content.decode("utf-8"), newline="")))
        assert rows[0] == ["ClientID", "FirstName", "DOB", "SSN", "City", "Hours", "Status"]
        assert rows[1] == ["c-1", "Ana", "1990-03-04", "123-45-6789", "Oakland", "5.50", "NEW"]
        assert [r[0] for r in rows[1:]] == ["c-1", "c-2", "c-3"]
        assert rows[3][2] == ""

        metadata = storage.read_metadata(result.file_path)
        assert metadata is not None
        assert metadata["record_count"] == 3
        assert metadata["generated_by"] == "user-9"
        assert metadata["content_type"] == "text/csv"
        assert metadata["filename"] == CSV_NAME
        assert metadata["size"] == len(content)

    def test_filters_narrow_the_run(self, pipeline: ExportPipeline, request_for: Any) -> None:
        result = pipeline.run(request_for(subject_id_filter=("c-1", "c-2")))
        assert result.status == ExportStatus.COMPLETED
        assert result.record_count == 2

    def test_xlsx_output(
        self,
        template: ExportTemplate,
        record_source: InMemoryRecordSource,
        tmp_path: Path,
        request_for: Any,
    ) -> None:
        pipeline = _pipeline_for(replace(template, output_format=OutputFormat.XLSX), record_source, tmp_path)
        result = pipeline.run(request_for(skip_validation=True))

        assert result.file_path is not None
        assert result.file_path.endswith(".xlsx")
        workbook = load_workbook(LocalExportStorage(tmp_path).path_for(result.file_path))
        assert workbook.sheetnames == ["Export Data", "Export Info"]
        assert workbook["Export Data"].max_row == 4

    def test_cancellation_marks_failed(
        self,
        repository: InMemoryTemplateRepository,
        record_source: InMemoryRecordSource,
        storage: LocalExportStorage,
        request_for: Any,
    ) -> None:
        pipeline = ExportPipeline(
            record_source,
            storage,
            repository,
            batch_size=1,
            should_cancel=lambda: True,
        )

        with pytest.raises(ExportCancelledError):
            pipeline.run(request_for(), export_id="exp-c")

        result = pipeline.results["exp-c"]
        assert result.status == ExportStatus.FAILED
        assert result.error

    def test_storage_failure_marks_failed(
        self,
        repository: InMemoryTemplateRepository,
        record_source: InMemoryRecordSource,
        tmp_path: Path,
        request_for: Any,
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        pipeline = ExportPipeline(record_source, LocalExportStorage(blocker), repository)

        with pytest.raises(StorageError):
            pipeline.run(request_for(skip_validation=True), export_id="exp-s")
        assert pipeline.results["exp-s"].status == ExportStatus.FAILED


# =============================================================================
# Configuration Check Tests
# =============================================================================


class TestConfigurationChecks:
    """Failures raised before a run is recorded."""

    def test_missing_template(self, pipeline: ExportPipeline, request_for: Any) -> None:
        with pytest.raises(TemplateNotFoundError):
            pipeline.run(request_for("nope"))

    def test_other_organization(self, pipeline: ExportPipeline, request_for: Any) -> None:
        with pytest.raises(TemplateNotFoundError):
            pipeline.run(request_for(organization_id="org-2"))

    def test_inactive_template(
        self,
        template: ExportTemplate,
        record_source: InMemoryRecordSource,
        tmp_path: Path,
        request_for: Any,
    ) -> None:
        pipeline = _pipeline_for(replace(template, status=TemplateStatus.DRAFT), record_source, tmp_path)
        with pytest.raises(TemplateStateError, match="must be active"):
            pipeline.run(request_for())

    def test_inverted_period(self, pipeline: ExportPipeline, request_for: Any) -> None:
        with pytest.raises(ConfigurationError):
            pipeline.run(request_for(period_start=date(2024, 2, 1)))
        assert pipeline.results == {}


# =============================================================================
# Preview and Retry Tests
# =============================================================================


class TestPreviewAndRetry:
    """Tests for preview and retry."""

    def test_preview_limits_rows(self, pipeline: ExportPipeline, request_for: Any) -> None:
        preview = pipeline.preview(request_for(), limit=2)

        assert preview.headers == ["ClientID", "FirstName", "DOB", "SSN", "City", "Hours", "Status"]
        assert len(preview.rows) == 2
        assert preview.rows[1][:3] == ["c-2", "Ben", "1985-12-01"]
        assert preview.total_records == 3
        assert preview.validation_warnings == []

    def test_preview_allows_drafts(
        self,
        template: ExportTemplate,
        record_source: InMemoryRecordSource,
        tmp_path: Path,
        request_for: Any,
    ) -> None:
        pipeline = _pipeline_for(replace(template, status=TemplateStatus.DRAFT), record_source, tmp_path)
        assert len(pipeline.preview(request_for()).rows) == 3

    def test_retry_with_skip_validation(self, pipeline: ExportPipeline, request_for: Any) -> None:
        request = request_for()
        first = pipeline.run(request)
        retried = pipeline.retry(request, first, skip_validation=True)

        assert retried.status == ExportStatus.COMPLETED
        assert retried.export_id != first.export_id
        assert set(pipeline.results) == {first.export_id, retried.export_id}

    def test_retry_rejects_completed(self, pipeline: ExportPipeline, request_for: Any) -> None:
        request = request_for(skip_validation=True)
        done = pipeline.run(request)
        with pytest.raises(ExportError, match="Only failed or validation-required"):
            pipeline.retry(request, done)


# =============================================================================
# Storage Tests
# =============================================================================


class TestStorage:
    """Tests for file naming and LocalExportStorage."""

    def test_build_filename(self) -> None:
        name = build_filename(ExportType.HUD_HMIS, date(2024, 1, 1), date(2024, 1, 31), "csv")
        assert name == "hud-hmis_export_2024-01-01_to_2024-01-31.csv"

    def test_build_storage_key(self) -> None:
        key = build_storage_key(ORG_ID, "exp-1", "f.csv", datetime(2024, 2, 3))
        assert key == f"exports/{ORG_ID}/2024/02/exp-1/f.csv"

    @pytest.mark.parametrize(
        ("content_type", "extension"),
        [
            ("text/csv", "csv"),
            ("text/plain", "txt"),
            (XLSX_CONTENT_TYPE, "xlsx"),
            ("application/json", "dat"),
        ],
    )
    def test_extension_for_content_type(self, content_type: str, extension: str) -> None:
        assert extension_for_content_type(content_type) == extension

    def test_upload_download_delete(self, storage: LocalExportStorage) -> None:
        metadata = ExportFileMetadata(
            export_id="exp-1",
            organization_id=ORG_ID,
            template_id="tpl-1",
            export_type="DOL_WIPS",
            record_count=1,
            generated_at="2024-02-01T00:00:00+00:00",
            period_start="2024-01-01",
            period_end="2024-01-31",
        )
        key = storage.upload("exp-1", ORG_ID, b"A|B", "text/plain", metadata)

        assert key.endswith("/exp-1/dol-wips_export_2024-01-01_to_2024-01-31.txt")
        assert storage.download(key) == b"A|B"
        assert storage.path_for(key).is_file()

        assert storage.delete(key)
        assert storage.download(key) is None
        assert storage.read_metadata(key) is None
        assert not storage.delete(key)
