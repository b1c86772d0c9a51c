"""Reporting periods for scheduled runs.

The period is derived from the shape of the cron expression and anchored to
local midnight in the schedule's timezone, so every trigger on the same day
computes the same period. Both bounds are inclusive dates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum

from funder_export.config import DEFAULT_TIMEZONE
from funder_export.scheduler.cron import CronSchedule, get_zone, parse_cron

__all__ = ["PeriodKind", "ReportingPeriod", "calculate_reporting_period", "classify_schedule"]


class PeriodKind(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    DEFAULT = "default"


@dataclass(frozen=True)
class ReportingPeriod:
    start: date
    end: date
    kind: PeriodKind

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def classify_schedule(schedule: CronSchedule) -> PeriodKind:
    """Classify a schedule as daily, weekly, monthly or neither."""
    if schedule.day_of_month_is_any and schedule.month_is_any and schedule.day_of_week_is_any:
        return PeriodKind.DAILY
    if schedule.day_of_month_is_any and schedule.month_is_any and len(schedule.day_of_week) == 1:
        return PeriodKind.WEEKLY
    if schedule.day_of_week_is_any and schedule.month_is_any:
        return PeriodKind.MONTHLY
    return PeriodKind.DEFAULT


def calculate_reporting_period(
    expression: str | CronSchedule,
    now: datetime | None = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> ReportingPeriod:
    """Return the period a run triggered at ``now`` should report on.

    * daily: yesterday
    * weekly: the seven days before today
    * monthly: the previous calendar month
    * anything else: the thirty days before today

    Raises
    ------
    CronParseError
        If ``expression`` is invalid.
    """
    schedule = parse_cron(expression) if isinstance(expression, str) else expression
    zone = get_zone(timezone)
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=zone)
    today = now.astimezone(zone).date()
    yesterday = today - timedelta(days=1)

    kind = classify_schedule(schedule)
    match kind:
        case PeriodKind.DAILY:
            return ReportingPeriod(yesterday, yesterday, kind)
        case PeriodKind.WEEKLY:
            return ReportingPeriod(today - timedelta(days=7), yesterday, kind)
        case PeriodKind.MONTHLY:
            end = today.replace(day=1) - timedelta(days=1)
            return ReportingPeriod(end.replace(day=1), end, kind)
    return ReportingPeriod(today - timedelta(days=30), yesterday, kind)
