"""Cron expression parsing and next-run computation.

Standard five-field expressions (minute, hour, day of month, month, day of
week) with ``*``, lists, ranges and steps, plus ``L`` in the day-of-month
field for the last day of the month. Parsing is strict so that a bad
expression is rejected when a schedule is saved, never when it fires.

The next-run search walks the wall clock of the schedule's timezone one
field at a time and stops after a fixed horizon, so an expression that can
never fire (``0 0 30 2 *``) raises instead of looping.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from funder_export.config import DEFAULT_TIMEZONE
from funder_export.errors import ConfigurationError, CronParseError, ScheduleSearchExhaustedError

__all__ = [
    "LAST_DAY",
    "SCHEDULE_PRESETS",
    "SEARCH_HORIZON_YEARS",
    "CronSchedule",
    "describe_cron",
    "get_next_run_time",
    "get_zone",
    "parse_cron",
]

# Day-of-month sentinel for ``L``
LAST_DAY = -1
SEARCH_HORIZON_YEARS = 2

SCHEDULE_PRESETS: dict[str, str] = {
    "DAILY_6AM": "0 6 * * *",
    "DAILY_MIDNIGHT": "0 0 * * *",
    "WEEKLY_MONDAY_6AM": "0 6 * * 1",
    "WEEKLY_FRIDAY_5PM": "0 17 * * 5",
    "MONTHLY_1ST_6AM": "0 6 1 * *",
    "MONTHLY_LAST_DAY": "0 6 L * *",
    "QUARTERLY_1ST": "0 6 1 1,4,7,10 *",
}

# (name, min, max) in expression order
_FIELDS: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day of month", 1, 31),
    ("month", 1, 12),
    ("day of week", 0, 6),
)

_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
_INTEGER = re.compile(r"^[0-9]+$")


# =============================================================================
# Parsing
# =============================================================================


@dataclass(frozen=True)
class CronSchedule:
    """Parsed expression: each field is a sorted tuple of allowed values."""

    expression: str
    minute: tuple[int, ...]
    hour: tuple[int, ...]
    day_of_month: tuple[int, ...]
    month: tuple[int, ...]
    day_of_week: tuple[int, ...]

    @property
    def day_of_month_is_any(self) -> bool:
        return len(self.day_of_month) == 31

    @property
    def day_of_week_is_any(self) -> bool:
        return len(self.day_of_week) == 7

    @property
    def month_is_any(self) -> bool:
        return len(self.month) == 12

    def matches_day(self, day: date) -> bool:
        """Apply the day rule: with both day fields restricted, either may match."""
        last_day = _last_day_of_month(day.year, day.month)
        dom_match = day.day in self.day_of_month or (LAST_DAY in self.day_of_month and day.day == last_day)
        # Python weekday() is Monday=0; cron counts from Sunday=0
        dow_match = (day.weekday() + 1) % 7 in self.day_of_week

        if self.day_of_month_is_any and self.day_of_week_is_any:
            return True
        if self.day_of_month_is_any:
            return dow_match
        if self.day_of_week_is_any:
            return dom_match
        return dom_match or dow_match


def _parse_int(text: str, field: str, expression: str) -> int:
    if not _INTEGER.match(text):
        msg = f"Invalid cron expression {expression!r}: {field} value {text!r} is not an integer"
        raise CronParseError(msg)
    return int(text)


def _parse_field(token: str, field: str, low: int, high: int, expression: str) -> tuple[int, ...]:
    if token == "L":
        if field != "day of month":
            msg = f"Invalid cron expression {expression!r}: 'L' is only allowed in the day of month field"
            raise CronParseError(msg)
        return (LAST_DAY,)

    values: set[int] = set()
    for part in token.split(","):
        range_part, has_step, step_part = part.partition("/")
        step = 1
        if has_step:
            step = _parse_int(step_part, field, expression)
            if step < 1:
                msg = f"Invalid cron expression {expression!r}: {field} step must be positive"
                raise CronParseError(msg)

        if range_part == "*":
            start, end = low, high
        elif "-" in range_part:
            first, _, last = range_part.partition("-")
            start, end = _parse_int(first, field, expression), _parse_int(last, field, expression)
        else:
            start = _parse_int(range_part, field, expression)
            # "5/15" means every 15 starting at 5
            end = high if has_step else start

        if not low <= start <= high or not low <= end <= high:
            msg = f"Invalid cron expression {expression!r}: {field} must be between {low} and {high}"
            raise CronParseError(msg)
        if start > end:
            msg = f"Invalid cron expression {expression!r}: {field} range {range_part!r} is descending"
            raise CronParseError(msg)
        values.update(range(start, end + 1, step))

    return tuple(sorted(values))


def parse_cron(expression: str) -> CronSchedule:
    """Parse a five-field cron expression.

    Raises
    ------
    CronParseError
        If the expression does not have exactly five fields, or any field
        holds a non-integer, out-of-range, descending or zero-step token.
    """
    parts = expression.strip().split()
    if len(parts) != len(_FIELDS):
        msg = f"Invalid cron expression: expected 5 fields, got {len(parts)}"
        raise CronParseError(msg)

    fields = [
        _parse_field(token, name, low, high, expression)
        for token, (name, low, high) in zip(parts, _FIELDS, strict=True)
    ]
    return CronSchedule(expression.strip(), *fields)


# =============================================================================
# Next Run
# =============================================================================


def _last_day_of_month(year: int, month: int) -> int:
    first_of_next = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return (first_of_next - timedelta(days=1)).day


def _add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # 29 February
        return moment.replace(year=moment.year + years, day=28)


def get_zone(timezone: str) -> ZoneInfo:
    """Return the ``ZoneInfo`` for ``timezone`` or raise ``ConfigurationError``."""
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        msg = f"Unknown timezone {timezone!r}"
        raise ConfigurationError(msg) from exc


def get_next_run_time(
    expression: str | CronSchedule,
    timezone: str = DEFAULT_TIMEZONE,
    from_time: datetime | None = None,
    horizon_years: int = SEARCH_HORIZON_YEARS,
) -> datetime:
    """Return the first matching minute strictly after ``from_time``.

    Parameters
    ----------
    expression : str or CronSchedule
        Cron expression, parsed if given as a string.
    timezone : str
        IANA zone whose wall clock the expression is evaluated in.
    from_time : datetime, optional
        Search start, defaulting to now. Naive values are read as wall
        time in ``timezone``.
    horizon_years : int
        Give up after this many years.

    Returns
    -------
    datetime
        Aware datetime in ``timezone``. A wall time skipped by a DST
        transition fires at the shifted instant (02:30 becomes 03:30 local).

    Raises
    ------
    CronParseError
        If the expression is invalid.
    ScheduleSearchExhaustedError
        If nothing matches inside the horizon.
    """
    schedule = parse_cron(expression) if isinstance(expression, str) else expression
    zone = get_zone(timezone)

    if from_time is None:
        from_time = datetime.now(UTC)
    elif from_time.tzinfo is None:
        from_time = from_time.replace(tzinfo=zone)

    wall = from_time.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0) + timedelta(minutes=1)
    limit = _add_years(wall, horizon_years)

    while wall < limit:
        if wall.month not in schedule.month:
            wall = _start_of_next_month(wall)
            continue

        if not schedule.matches_day(wall.date()):
            wall = _start_of_next_day(wall)
            continue

        if wall.hour not in schedule.hour:
            next_hour = next((h for h in schedule.hour if h > wall.hour), None)
            if next_hour is None:
                wall = _start_of_next_day(wall)
            else:
                wall = wall.replace(hour=next_hour, minute=schedule.minute[0])
            continue

        if wall.minute not in schedule.minute:
            next_minute = next((m for m in schedule.minute if m > wall.minute), None)
            if next_minute is None:
                wall = wall.replace(minute=0) + timedelta(hours=1)
            else:
                wall = wall.replace(minute=next_minute)
            continue

        # Wall times skipped by a DST spring-forward resolve to the shifted instant
        candidate = wall.replace(tzinfo=zone).astimezone(UTC).astimezone(zone)
        # Repeated wall times after a DST fall-back can precede the start
        if candidate > from_time:
            return candidate
        wall += timedelta(minutes=1)

    msg = f"Could not find next run time for {schedule.expression!r} within {horizon_years} years"
    raise ScheduleSearchExhaustedError(msg)


def _start_of_next_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date() + timedelta(days=1), datetime.min.time())


def _start_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1)  # noqa: DTZ001
    return datetime(moment.year, moment.month + 1, 1)  # noqa: DTZ001


# =============================================================================
# Descriptions
# =============================================================================


def _format_preset_name(name: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name.replace("_", " ").lower())


def _format_time(hour: int, minute: int) -> str:
    period = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {period}"


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def describe_cron(expression: str) -> str:
    """Return a human-readable schedule description.

    Presets are named after their key (``"Monthly 1st 6am"``); daily, weekly
    and monthly shapes are spelled out. Anything else, including invalid
    expressions, comes back unchanged.
    """
    for name, preset in SCHEDULE_PRESETS.items():
        if preset == expression:
            return _format_preset_name(name)

    try:
        schedule = parse_cron(expression)
    except CronParseError:
        return expression

    time_str = _format_time(schedule.hour[0], schedule.minute[0])
    if schedule.day_of_month_is_any and schedule.month_is_any and schedule.day_of_week_is_any:
        return f"Daily at {time_str}"
    if schedule.day_of_month_is_any and schedule.month_is_any and len(schedule.day_of_week) == 1:
        return f"Weekly on {_DAY_NAMES[schedule.day_of_week[0]]} at {time_str}"
    if schedule.day_of_week_is_any and schedule.month_is_any:
        if LAST_DAY in schedule.day_of_month:
            return f"Monthly on last day at {time_str}"
        return f"Monthly on the {_ordinal(schedule.day_of_month[0])} at {time_str}"
    return expression
