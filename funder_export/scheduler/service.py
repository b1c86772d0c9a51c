"""Scheduled export management.

Each template's :class:`~funder_export.types.ScheduleSpec` moves through
idle (disabled) -> armed (enabled with a cron expression) -> due
(``next_run_at <= now``) -> executed. Every execution advances
``next_run_at``, whether the run succeeded or failed. After
``max_consecutive_failures`` failures in a row the template drops out of the
due query but stays enabled until :meth:`ScheduleService.rearm` is called.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from funder_export.config import get_scheduling_config, setup_logging
from funder_export.errors import TemplateNotFoundError, TemplateStateError
from funder_export.scheduler.cron import describe_cron, get_next_run_time, get_zone, parse_cron
from funder_export.scheduler.period import calculate_reporting_period
from funder_export.types import ExportRequest, ExportStatus, TemplateStatus

if TYPE_CHECKING:
    from funder_export.scheduler.period import ReportingPeriod
    from funder_export.templates.repository import TemplateRepository
    from funder_export.types import ExportResult, ExportTemplate, ScheduleSpec

logger = setup_logging(__name__)

__all__ = [
    "ExportRunner",
    "ScheduleService",
    "ScheduleStatus",
    "ScheduledRunOutcome",
    "UpcomingRun",
]


class ExportRunner(Protocol):
    """Anything that runs one export request, such as ``ExportPipeline``."""

    def run(self, request: ExportRequest) -> ExportResult: ...


@dataclass(frozen=True)
class ScheduledRunOutcome:
    template_id: str
    success: bool
    period: ReportingPeriod
    next_run_at: datetime
    export_id: str | None = None
    status: ExportStatus | None = None
    error: str | None = None


@dataclass(frozen=True)
class ScheduleStatus:
    template_id: str
    template_name: str
    export_type: str
    enabled: bool
    cron_expression: str | None
    description: str | None
    last_run_at: datetime | None
    next_run_at: datetime | None
    failure_count: int
    last_error: str | None
    skipped: bool


@dataclass(frozen=True)
class UpcomingRun:
    template_id: str
    template_name: str
    organization_id: str
    export_type: str
    next_run_at: datetime
    description: str


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


class ScheduleService:
    """Schedule state machine over a template repository.

    Parameters
    ----------
    repository : TemplateRepository
        Source of templates; updated schedules are saved back to it.
    runner : ExportRunner, optional
        Runs the export for :meth:`execute_scheduled_export`.
    max_consecutive_failures : int, optional
        Threshold after which a schedule is skipped. Defaults to the
        ``scheduling`` section of ``config.json``.
    """

    def __init__(
        self,
        repository: TemplateRepository,
        runner: ExportRunner | None = None,
        max_consecutive_failures: int | None = None,
    ) -> None:
        settings = get_scheduling_config()
        self.repository = repository
        self.runner = runner
        self.max_consecutive_failures = (
            max_consecutive_failures
            if max_consecutive_failures is not None
            else int(settings["max_consecutive_failures"])
        )
        self.horizon_years = int(settings["search_horizon_years"])
        self.default_timezone = str(settings["default_timezone"])

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _get(self, template_id: str, organization_id: str | None = None) -> ExportTemplate:
        template = self.repository.get(template_id)
        if template is None or (organization_id is not None and template.organization_id != organization_id):
            msg = f"Template not found: {template_id}"
            raise TemplateNotFoundError(msg)
        return template

    def _next_run(self, schedule: ScheduleSpec, now: datetime) -> datetime:
        return get_next_run_time(str(schedule.cron_expression), schedule.timezone, now, self.horizon_years)

    def is_skipped(self, schedule: ScheduleSpec) -> bool:
        return schedule.consecutive_failure_count >= self.max_consecutive_failures

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def update_schedule(
        self,
        template_id: str,
        organization_id: str,
        *,
        enabled: bool,
        cron_expression: str | None = None,
        timezone: str | None = None,
        now: datetime | None = None,
    ) -> ScheduleSpec:
        """Arm, re-arm or disable a template's schedule.

        The expression and timezone are validated before anything is saved.
        Any change resets the failure counter.

        Raises
        ------
        CronParseError
            If ``cron_expression`` is invalid.
        ConfigurationError
            If the timezone is unknown or the expression never fires.
        TemplateNotFoundError
            If the template does not exist in the organization.
        TemplateStateError
            If the template is not active.
        """
        if cron_expression is not None:
            parse_cron(cron_expression)
        if timezone is not None:
            get_zone(timezone)

        template = self._get(template_id, organization_id)
        if template.status != TemplateStatus.ACTIVE:
            msg = "Only active templates can be scheduled"
            raise TemplateStateError(msg)

        schedule = template.schedule
        schedule.enabled = enabled
        schedule.cron_expression = cron_expression or schedule.cron_expression
        schedule.timezone = timezone or schedule.timezone or self.default_timezone
        schedule.consecutive_failure_count = 0
        schedule.last_error = None
        schedule.next_run_at = (
            self._next_run(schedule, _now(now)) if enabled and schedule.cron_expression else None
        )

        self.repository.save(template)
        logger.info(
            "Schedule for template %s %s (next run %s)",
            template_id,
            "enabled" if enabled else "disabled",
            schedule.next_run_at,
        )
        return schedule

    def rearm(self, template_id: str, now: datetime | None = None) -> ScheduleSpec:
        """Clear the failure counter so a skipped schedule becomes eligible again."""
        template = self._get(template_id)
        schedule = template.schedule
        if not schedule.cron_expression:
            msg = "Template has no schedule configured"
            raise TemplateStateError(msg)

        schedule.consecutive_failure_count = 0
        schedule.last_error = None
        schedule.next_run_at = self._next_run(schedule, _now(now))
        self.repository.save(template)
        logger.info("Re-armed schedule for template %s", template_id)
        return schedule

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def get_templates_due(self, now: datetime | None = None) -> list[ExportTemplate]:
        """Return enabled, active templates whose next run has passed."""
        now = _now(now)
        return [
            t
            for t in self.repository.list()
            if t.schedule.enabled
            and t.status == TemplateStatus.ACTIVE
            and t.schedule.cron_expression
            and t.schedule.next_run_at is not None
            and t.schedule.next_run_at <= now
            and not self.is_skipped(t.schedule)
        ]

    def execute_scheduled_export(self, template_id: str, now: datetime | None = None) -> ScheduledRunOutcome:
        """Run one scheduled export and advance the schedule.

        A failed run is recorded on the schedule (counter and last error)
        and reported in the outcome; it does not raise.

        Raises
        ------
        TemplateNotFoundError
            If the template does not exist.
        TemplateStateError
            If the template has no cron expression or no runner is set.
        """
        now = _now(now)
        template = self._get(template_id)
        schedule = template.schedule
        if not schedule.cron_expression:
            msg = "Template has no schedule configured"
            raise TemplateStateError(msg)
        if self.runner is None:
            msg = "No export runner configured for scheduled execution"
            raise TemplateStateError(msg)

        period = calculate_reporting_period(schedule.cron_expression, now, schedule.timezone)
        request = ExportRequest(
            template_id=template.id,
            organization_id=template.organization_id,
            period_start=period.start,
            period_end=period.end,
            requested_by=template.created_by_id,
        )
        logger.info(
            "Running scheduled export for template %s (%s to %s)", template_id, period.start, period.end
        )

        result: ExportResult | None = None
        error: str | None = None
        try:
            result = self.runner.run(request)
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or type(exc).__name__
            logger.error("Scheduled export for template %s failed: %s", template_id, error)

        if result is not None and result.status == ExportStatus.FAILED:
            error = result.error or "Export failed"

        if error is None:
            schedule.last_run_at = now
            schedule.consecutive_failure_count = 0
            schedule.last_error = None
        else:
            schedule.consecutive_failure_count += 1
            schedule.last_error = error
            if self.is_skipped(schedule):
                logger.warning(
                    "Template %s reached %d consecutive failures; skipping until re-armed",
                    template_id,
                    schedule.consecutive_failure_count,
                )
        schedule.next_run_at = self._next_run(schedule, now)
        self.repository.save(template)

        return ScheduledRunOutcome(
            template_id=template_id,
            success=error is None,
            period=period,
            next_run_at=schedule.next_run_at,
            export_id=result.export_id if result is not None else None,
            status=result.status if result is not None else ExportStatus.FAILED,
            error=error,
        )

    def run_due(self, now: datetime | None = None) -> list[ScheduledRunOutcome]:
        """Execute every due template once."""
        now = _now(now)
        due = self.get_templates_due(now)
        logger.info("Found %d scheduled exports due", len(due))
        return [self.execute_scheduled_export(t.id, now) for t in due]

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_schedule_status(self, organization_id: str) -> list[ScheduleStatus]:
        """Schedule overview for the organization's active templates, by name."""
        templates = sorted(
            (
                t
                for t in self.repository.list()
                if t.organization_id == organization_id and t.status == TemplateStatus.ACTIVE
            ),
            key=lambda t: t.name,
        )
        return [
            ScheduleStatus(
                template_id=t.id,
                template_name=t.name,
                export_type=str(t.export_type),
                enabled=t.schedule.enabled,
                cron_expression=t.schedule.cron_expression,
                description=describe_cron(t.schedule.cron_expression) if t.schedule.cron_expression else None,
                last_run_at=t.schedule.last_run_at,
                next_run_at=t.schedule.next_run_at,
                failure_count=t.schedule.consecutive_failure_count,
                last_error=t.schedule.last_error,
                skipped=self.is_skipped(t.schedule),
            )
            for t in templates
        ]

    def get_upcoming(self, limit: int = 20) -> list[UpcomingRun]:
        """Next scheduled runs across all organizations, soonest first."""
        armed = [
            t
            for t in self.repository.list()
            if t.schedule.enabled and t.status == TemplateStatus.ACTIVE and t.schedule.next_run_at is not None
        ]
        armed.sort(key=lambda t: t.schedule.next_run_at)  # type: ignore[arg-type,return-value]
        return [
            UpcomingRun(
                template_id=t.id,
                template_name=t.name,
                organization_id=t.organization_id,
                export_type=str(t.export_type),
                next_run_at=t.schedule.next_run_at,  # type: ignore[arg-type]
                description=(
                    describe_cron(t.schedule.cron_expression) if t.schedule.cron_expression else "Unknown"
                ),
            )
            for t in armed[:limit]
        ]
