"""Pytest configuration for funder_export tests.

This module provides:
- Sample subjects as delivered by a record source (JSON layout)
- A small custom template with a mix of path roots and transformers
- Repository, storage and pipeline fixtures wired to ``tmp_path``
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from funder_export.extractor import InMemoryRecordSource, SourceSubject
from funder_export.pipeline import ExportPipeline, LocalExportStorage
from funder_export.templates import InMemoryTemplateRepository
from funder_export.types import (
    ExportRequest,
    ExportTemplate,
    ExportType,
    ExtractedRecord,
    FieldMapping,
    OutputFormat,
    RuleType,
    TemplateStatus,
    ValidationRule,
)

# Load environment variables from project .env so local overrides apply in tests
PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")

ORG_ID = "org-1"
PERIOD_START = date(2024, 1, 1)
PERIOD_END = date(2024, 1, 31)


def subject_payload(
    subject_id: str,
    first: str,
    last: str,
    form_data: dict[str, Any] | None = None,
    *,
    created_at: str = "2024-01-10T09:00:00",
    program_id: str = "prog-1",
) -> dict[str, Any]:
    """Subject in the JSON layout read by ``InMemoryRecordSource.from_json``."""
    return {
        "id": subject_id,
        "firstName": first,
        "lastName": last,
        "client": {
            "phone": "(555) 123-4567",
            "address": json.dumps({"street": "1 Main St", "city": "Oakland", "state": "CA", "zip": "94601"}),
        },
        "submissions": [
            {
                "id": f"{subject_id}-intake",
                "formId": "intake",
                "createdAt": created_at,
                "data": form_data or {},
            },
        ],
        "enrollments": [
            {
                "id": f"{subject_id}-enr",
                "status": "ACTIVE",
                "enrolledDate": "2024-01-02",
                "program": {"id": program_id, "name": "Housing First"},
                "attendanceHours": [2.5, 3, None],
            },
        ],
    }


@pytest.fixture
def subjects_payload() -> list[dict[str, Any]]:
    return [
        subject_payload("c-1", "Ana", "Lopez", {"dateOfBirth": "03/04/1990", "ssn": "123456789"}),
        subject_payload("c-2", "Ben", "Ng", {"dateOfBirth": "1985-12-01", "ssn": "987-65-4321"}),
        subject_payload("c-3", "Cy", "Park", {"ssn": "111223333"}, program_id="prog-2"),
    ]


@pytest.fixture
def subjects(subjects_payload: list[dict[str, Any]]) -> list[SourceSubject]:
    return [SourceSubject.from_dict(item) for item in subjects_payload]


@pytest.fixture
def record_source(subjects: list[SourceSubject]) -> InMemoryRecordSource:
    return InMemoryRecordSource(subjects)


@pytest.fixture
def mappings() -> list[FieldMapping]:
    return [
        FieldMapping("ClientID", "client.id", required=True),
        FieldMapping("FirstName", "client.firstName", required=True),
        FieldMapping("DOB", "form:dateOfBirth", required=True, transformer="date:YYYY-MM-DD"),
        FieldMapping("SSN", "form:ssn", transformer="ssn:format"),
        FieldMapping("City", "client.address.city"),
        FieldMapping("Hours", "enrollment.totalHours", transformer="number:decimal2"),
        FieldMapping("Status", "form:status", default_value="NEW"),
    ]


@pytest.fixture
def template(mappings: list[FieldMapping]) -> ExportTemplate:
    return ExportTemplate(
        id="tpl-1",
        organization_id=ORG_ID,
        name="Custom Export",
        export_type=ExportType.CUSTOM,
        status=TemplateStatus.ACTIVE,
        field_mappings=mappings,
        validation_rules=[ValidationRule("DOB", RuleType.REQUIRED, "DOB is required")],
        output_format=OutputFormat.CSV,
        source_form_ids=["intake"],
        created_by_id="user-1",
    )


@pytest.fixture
def repository(template: ExportTemplate) -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository([template])


@pytest.fixture
def storage(tmp_path: Path) -> LocalExportStorage:
    return LocalExportStorage(tmp_path / "exports")


@pytest.fixture
def pipeline(
    record_source: InMemoryRecordSource,
    storage: LocalExportStorage,
    repository: InMemoryTemplateRepository,
) -> ExportPipeline:
    return ExportPipeline(record_source, storage, repository, batch_size=2)


@pytest.fixture
def request_for() -> Any:
    """Factory for requests against the default organization and period."""

    def _make(template_id: str = "tpl-1", **kwargs: Any) -> ExportRequest:
        return ExportRequest(
            template_id=template_id,
            organization_id=kwargs.pop("organization_id", ORG_ID),
            period_start=kwargs.pop("period_start", PERIOD_START),
            period_end=kwargs.pop("period_end", PERIOD_END),
            **kwargs,
        )

    return _make


def make_record(subject_id: str = "c-1", **data: Any) -> ExtractedRecord:
    return ExtractedRecord(subject_id=subject_id, subject_name=f"Subject {subject_id}", data=data)
