"""Recurrence rules deciding which calendar dates a schedule materialises on.

Everything here is pure: the date being evaluated is always passed in, nothing
reads the clock. Malformed dates or incomplete descriptors are treated as
"nothing scheduled" and evaluate to ``False`` rather than raising.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, FrozenSet, Mapping, Optional, Union

from .models import Recurrence, ScheduledChore, ScheduleType

DateLike = Union[str, date]
RecurrenceLike = Union[Recurrence, Mapping[str, Any]]


def to_iso(value: DateLike) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


def parse_iso(value: DateLike | None) -> Optional[date]:
    """Return ``value`` as a :class:`date`, or ``None`` when it is not a valid ISO date."""

    if value is None:
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def weekday_of(value: DateLike | None) -> Optional[int]:
    """Weekday ordinal with 0=Sunday..6=Saturday."""

    parsed = parse_iso(value)
    if parsed is None:
        return None
    # date.weekday() is Monday=0; shift so Sunday=0.
    return (parsed.weekday() + 1) % 7


def _fields(recurrence: RecurrenceLike) -> tuple[Optional[str], Any, Any, Any]:
    if isinstance(recurrence, Recurrence):
        return recurrence.type.value, recurrence.start_date, recurrence.end_date, recurrence.days
    schedule_type = recurrence.get("type")
    if isinstance(schedule_type, ScheduleType):
        schedule_type = schedule_type.value
    start = recurrence.get("start_date", recurrence.get("startDate"))
    end = recurrence.get("end_date", recurrence.get("endDate"))
    days = recurrence.get("days")
    return schedule_type, start, end, days


def _weekday_set(days: Any) -> FrozenSet[int]:
    if not days:
        return frozenset()
    try:
        return frozenset(int(day) for day in days)
    except (TypeError, ValueError):
        return frozenset()


def should_create_instance(recurrence: RecurrenceLike, on: DateLike) -> bool:
    """Return ``True`` when ``recurrence`` calls for an instance on ``on``.

    Both the start and the end date are inclusive. ``weekly`` schedules recur on
    the weekday of their start date, ``custom`` schedules on their explicit
    weekday set and ``once`` schedules only on their start date.
    """

    schedule_type, start, end, days = _fields(recurrence)
    if start is None:
        return False
    start_iso = to_iso(start)
    target = to_iso(on)
    if not isinstance(start_iso, str) or not isinstance(target, str):
        return False
    if start_iso > target:
        return False
    if end:
        end_iso = to_iso(end)
        if not isinstance(end_iso, str) or end_iso < target:
            return False

    if schedule_type == ScheduleType.DAILY.value:
        return parse_iso(target) is not None
    if schedule_type == ScheduleType.WEEKLY.value:
        today = weekday_of(target)
        return today is not None and today == weekday_of(start_iso)
    if schedule_type == ScheduleType.CUSTOM.value:
        today = weekday_of(target)
        return today is not None and today in _weekday_set(days)
    if schedule_type == ScheduleType.ONCE.value:
        return start_iso == target
    return False


def deactivates_after_firing(recurrence: RecurrenceLike) -> bool:
    """One-time schedules switch themselves off once their instance exists."""

    schedule_type, _, _, _ = _fields(recurrence)
    return schedule_type == ScheduleType.ONCE.value


def should_auto_generate(schedule: ScheduledChore, on: DateLike) -> bool:
    """Filter used by the daily generator: active, not optional and due."""

    if not schedule.is_active or schedule.is_optional:
        return False
    return should_create_instance(schedule.recurrence, on)


def is_within_range(recurrence: Recurrence, on: DateLike) -> bool:
    target = to_iso(on)
    if recurrence.start_date > target:
        return False
    return not (recurrence.end_date and recurrence.end_date < target)


def period_start(schedule_type: ScheduleType | str, on: DateLike) -> str:
    """First day of the pickup period containing ``on``.

    Weekly periods start on Sunday; every other type uses a single day.
    """

    parsed = parse_iso(on)
    if parsed is None:
        return to_iso(on)
    if ScheduleType(schedule_type) is ScheduleType.WEEKLY:
        offset = weekday_of(parsed) or 0
        return (parsed - timedelta(days=offset)).isoformat()
    return parsed.isoformat()


__all__ = [
    "deactivates_after_firing",
    "is_within_range",
    "parse_iso",
    "period_start",
    "should_auto_generate",
    "should_create_instance",
    "to_iso",
    "weekday_of",
]
