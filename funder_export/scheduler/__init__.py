"""Cron scheduling: expression parsing, reporting periods and scheduled runs."""

from funder_export.scheduler.cron import (
    LAST_DAY,
    SCHEDULE_PRESETS,
    CronSchedule,
    describe_cron,
    get_next_run_time,
    parse_cron,
)
from funder_export.scheduler.period import (
    PeriodKind,
    ReportingPeriod,
    calculate_reporting_period,
    classify_schedule,
)
from funder_export.scheduler.service import (
    ExportRunner,
    ScheduledRunOutcome,
    ScheduleService,
    ScheduleStatus,
    UpcomingRun,
)

__all__ = [
    "LAST_DAY",
    "SCHEDULE_PRESETS",
    "CronSchedule",
    "ExportRunner",
    "PeriodKind",
    "ReportingPeriod",
    "ScheduleService",
    "ScheduleStatus",
    "ScheduledRunOutcome",
    "UpcomingRun",
    "calculate_reporting_period",
    "classify_schedule",
    "describe_cron",
    "get_next_run_time",
    "parse_cron",
]
