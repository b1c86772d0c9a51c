"""Record extraction: source subjects to mapped ``ExtractedRecord``s.

Subjects come from a :class:`RecordSource` (the case-management store in
production, :class:`InMemoryRecordSource` for the CLI and tests). Each
subject's form submissions are aggregated, its first enrollment is
summarized, and the template mappings are applied. Subjects are processed
in bounded batches with a cooperative cancellation check between batches.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from itertools import islice
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from funder_export.config import DEFAULT_BATCH_SIZE
from funder_export.errors import ExportCancelledError
from funder_export.extractor.field_mapper import is_empty, map_fields
from funder_export.transformer import parse_date
from funder_export.types import ExtractedRecord, ExtractionResult, SourceData

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Sequence

    from funder_export.types import ExportRequest, ExportTemplate, FieldMapping

logger = logging.getLogger(__name__)

__all__ = [
    "Enrollment",
    "FormSubmission",
    "InMemoryRecordSource",
    "RecordSource",
    "SourceSubject",
    "build_source_data",
    "extract_records",
]


# =============================================================================
# Source Model
# =============================================================================


@dataclass(frozen=True)
class FormSubmission:
    id: str
    data: Mapping[str, Any]
    created_at: datetime
    form_id: str | None = None
    is_draft: bool = False


@dataclass(frozen=True)
class Enrollment:
    """A program enrollment with attendance hours for the period."""

    id: str
    status: str
    enrolled_date: date | None = None
    completion_date: date | None = None
    withdrawal_date: date | None = None
    program: Mapping[str, Any] | None = None
    attendance_hours: tuple[float | None, ...] = ()

    @property
    def program_id(self) -> str | None:
        return self.program.get("id") if self.program else None

    @property
    def total_hours(self) -> float:
        return sum(hours or 0 for hours in self.attendance_hours)


@dataclass
class SourceSubject:
    """One client as delivered by a :class:`RecordSource`.

    ``client`` carries the remaining client columns (``phone``, ``email``,
    ``address``, ``status``...) under their camelCase names.
    """

    subject_id: str
    first_name: str
    last_name: str
    client: Mapping[str, Any] = field(default_factory=dict)
    submissions: list[FormSubmission] = field(default_factory=list)
    enrollments: list[Enrollment] = field(default_factory=list)

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SourceSubject:
        """Build a subject from the JSON layout used by subject input files."""
        client = dict(data.get("client", {}))
        submissions = [
            FormSubmission(
                id=str(sub.get("id", f"{data['id']}-sub-{i}")),
                data=dict(sub.get("data", {})),
                created_at=_parse_datetime(sub.get("createdAt")) or _EPOCH_MIN,
                form_id=sub.get("formId"),
                is_draft=bool(sub.get("isDraft", False)),
            )
            for i, sub in enumerate(data.get("submissions", []))
        ]
        enrollments = [
            Enrollment(
                id=str(enr.get("id", f"{data['id']}-enr-{i}")),
                status=str(enr.get("status", "")),
                enrolled_date=parse_date(enr.get("enrolledDate")),
                completion_date=parse_date(enr.get("completionDate")),
                withdrawal_date=parse_date(enr.get("withdrawalDate")),
                program=enr.get("program"),
                attendance_hours=tuple(enr.get("attendanceHours", ())),
            )
            for i, enr in enumerate(data.get("enrollments", []))
        ]
        return cls(
            subject_id=str(data["id"]),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            client=client,
            submissions=submissions,
            enrollments=enrollments,
        )


_EPOCH_MIN = datetime.min.replace(tzinfo=UTC)


def _as_utc(value: datetime) -> datetime:
    """Read naive timestamps as UTC so mixed submissions stay comparable."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, str) and value:
        try:
            return _as_utc(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


class RecordSource(Protocol):
    """Read-side contract of the case-management store."""

    def fetch_subjects(self, request: ExportRequest, template: ExportTemplate) -> Iterable[SourceSubject]:
        """Yield subjects in scope for ``request``."""
        ...

    def count_subjects(self, request: ExportRequest, template: ExportTemplate) -> int:
        """Return how many subjects :meth:`fetch_subjects` would yield."""
        ...


# =============================================================================
# Source Data Assembly
# =============================================================================


def _parse_address(address: Any) -> Any:
    """Decode a JSON-string address; invalid JSON becomes ``None``."""
    if not isinstance(address, str):
        return address
    try:
        return json.loads(address)
    except json.JSONDecodeError:
        logger.debug("Discarding unparsable address value")
        return None


def build_source_data(subject: SourceSubject) -> SourceData:
    """Assemble the resolver view of one subject.

    Form submissions are applied in chronological order so later answers
    override earlier ones. Only the first enrollment is used; its
    ``totalHours`` is the sum of attendance hours.
    """
    form_data: dict[str, Any] = {}
    for submission in sorted(subject.submissions, key=lambda s: _as_utc(s.created_at)):
        form_data.update(submission.data)

    client = {"id": subject.subject_id, "firstName": subject.first_name, "lastName": subject.last_name}
    client.update(subject.client)
    client["address"] = _parse_address(client.get("address"))

    program: dict[str, Any] | None = None
    enrollment: dict[str, Any] | None = None
    if subject.enrollments:
        first = subject.enrollments[0]
        enrollment = {
            "id": first.id,
            "enrolledDate": first.enrolled_date,
            "status": first.status,
            "completionDate": first.completion_date,
            "withdrawalDate": first.withdrawal_date,
            "totalHours": first.total_hours,
        }
        if first.program:
            program = dict(first.program)

    return SourceData(client=client, form_data=form_data, program=program, enrollment=enrollment)


# =============================================================================
# Batched Extraction
# =============================================================================


def _batches(items: Iterable[SourceSubject], size: int) -> Iterator[list[SourceSubject]]:
    iterator = iter(items)
    while batch := list(islice(iterator, size)):
        yield batch


def extract_records(
    subjects: Iterable[SourceSubject],
    mappings: Sequence[FieldMapping],
    code_mappings: Mapping[str, Mapping[str, str]] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    should_cancel: Callable[[], bool] | None = None,
) -> ExtractionResult:
    """Map every subject onto the template's external fields.

    Parameters
    ----------
    subjects
        Subjects to extract, consumed lazily in batches.
    mappings
        Template field mappings, in output order.
    code_mappings
        Code tables for ``code:`` transformers.
    batch_size
        Number of subjects mapped between cancellation checks.
    should_cancel
        Optional callback polled before each batch.

    Returns
    -------
    ExtractionResult
        Records plus the fields that produced data anywhere and per-field
        counts of required fields (without defaults) that came out empty.

    Raises
    ------
    ExportCancelledError
        If ``should_cancel`` returns True before a batch.
    """
    if batch_size < 1:
        msg = f"batch_size must be positive, got {batch_size}"
        raise ValueError(msg)

    records: list[ExtractedRecord] = []
    extracted_fields: dict[str, None] = {}
    missing_fields: dict[str, int] = {}

    for batch_number, batch in enumerate(_batches(subjects, batch_size)):
        if should_cancel is not None and should_cancel():
            msg = f"Extraction cancelled before batch {batch_number} ({len(records)} records mapped)"
            raise ExportCancelledError(msg)

        for subject in batch:
            data = map_fields(build_source_data(subject), mappings, code_mappings)

            for mapping in mappings:
                if not is_empty(data[mapping.external_field]):
                    extracted_fields[mapping.external_field] = None
                elif mapping.required and not mapping.default_value:
                    missing_fields[mapping.external_field] = missing_fields.get(mapping.external_field, 0) + 1

            records.append(
                ExtractedRecord(
                    subject_id=subject.subject_id,
                    subject_name=subject.name,
                    data=data,
                    source_reference_ids=tuple(s.id for s in subject.submissions),
                ),
            )
        logger.debug("Mapped batch %d (%d records so far)", batch_number, len(records))

    logger.info(
        "Extracted %d records (%d fields with missing required values)", len(records), len(missing_fields)
    )
    return ExtractionResult(
        records=records,
        total_subjects=len(records),
        extracted_fields=list(extracted_fields),
        missing_fields=missing_fields,
    )


# =============================================================================
# In-memory Source
# =============================================================================


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


class InMemoryRecordSource:
    """Record source over a list of subjects, filtered like the database query.

    Submissions are limited to the template's source forms (when it lists
    any), non-drafts, and the request period. With a program filter, only
    subjects with an overlapping enrollment in one of the programs are kept
    and their enrollments are narrowed to those programs.
    """

    def __init__(self, subjects: Iterable[SourceSubject]) -> None:
        self._subjects = list(subjects)

    @classmethod
    def from_json(cls, path: Path | str) -> InMemoryRecordSource:
        """Load subjects from a JSON file holding a list of subject objects."""
        with Path(path).open(encoding="utf-8") as f:
            raw = json.load(f)
        return cls(SourceSubject.from_dict(item) for item in raw)

    def _in_scope(self, request: ExportRequest, template: ExportTemplate) -> Iterator[SourceSubject]:
        start, end = _as_date(request.period_start), _as_date(request.period_end)
        form_ids = set(template.source_form_ids)
        subject_filter = set(request.subject_id_filter) if request.subject_id_filter else None
        program_filter = set(request.program_id_filter) if request.program_id_filter else None

        for subject in self._subjects:
            if subject_filter is not None and subject.subject_id not in subject_filter:
                continue

            enrollments = subject.enrollments
            if program_filter is not None:
                enrollments = [e for e in enrollments if e.program_id in program_filter]
                overlapping = [
                    e
                    for e in enrollments
                    if (e.enrolled_date is None or e.enrolled_date <= end)
                    and (e.completion_date is None or e.completion_date >= start)
                ]
                if not overlapping:
                    continue

            submissions = [
                s
                for s in subject.submissions
                if not s.is_draft
                and (not form_ids or s.form_id is None or s.form_id in form_ids)
                and start <= _as_date(s.created_at) <= end
            ]
            yield SourceSubject(
                subject_id=subject.subject_id,
                first_name=subject.first_name,
                last_name=subject.last_name,
                client=subject.client,
                submissions=submissions,
                enrollments=list(enrollments),
            )

    def fetch_subjects(self, request: ExportRequest, template: ExportTemplate) -> Iterator[SourceSubject]:
        return self._in_scope(request, template)

    def count_subjects(self, request: ExportRequest, template: ExportTemplate) -> int:
        return sum(1 for _ in self._in_scope(request, template))
