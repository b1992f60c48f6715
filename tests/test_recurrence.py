from datetime import date

from chorekeeper.models import Recurrence, ScheduledChore, ScheduleType
from chorekeeper.recurrence import (
    deactivates_after_firing,
    is_within_range,
    period_start,
    should_auto_generate,
    should_create_instance,
    weekday_of,
)

# 2024-01-07 is a Sunday, 2024-01-08 a Monday.


def test_weekday_numbering_starts_on_sunday() -> None:
    assert weekday_of("2024-01-07") == 0
    assert weekday_of("2024-01-08") == 1
    assert weekday_of(date(2024, 1, 13)) == 6
    assert weekday_of("not-a-date") is None


def test_daily_bounds_are_inclusive() -> None:
    rule = Recurrence(type=ScheduleType.DAILY, start_date="2024-01-01", end_date="2024-01-10")

    assert should_create_instance(rule, "2024-01-01")
    assert should_create_instance(rule, "2024-01-05")
    assert should_create_instance(rule, "2024-01-10")
    assert not should_create_instance(rule, "2023-12-31")
    assert not should_create_instance(rule, "2024-01-11")


def test_open_ended_daily_accepts_dates() -> None:
    rule = Recurrence(type="daily", start_date="2024-01-01")

    assert should_create_instance(rule, date(2030, 6, 1))


def test_weekly_follows_start_weekday() -> None:
    rule = Recurrence(type=ScheduleType.WEEKLY, start_date="2024-01-01")

    assert should_create_instance(rule, "2024-01-01")
    assert should_create_instance(rule, "2024-01-08")
    assert not should_create_instance(rule, "2024-01-09")


def test_custom_uses_explicit_days() -> None:
    weekend = Recurrence(type=ScheduleType.CUSTOM, start_date="2024-01-01", days=[0, 6])

    assert should_create_instance(weekend, "2024-01-06")
    assert should_create_instance(weekend, "2024-01-07")
    assert not should_create_instance(weekend, "2024-01-08")

    no_days = Recurrence(type=ScheduleType.CUSTOM, start_date="2024-01-01")
    assert not should_create_instance(no_days, "2024-01-07")


def test_once_fires_only_on_start_date() -> None:
    rule = Recurrence(type=ScheduleType.ONCE, start_date="2024-01-10")

    assert should_create_instance(rule, "2024-01-10")
    assert not should_create_instance(rule, "2024-01-11")
    assert not should_create_instance(rule, "2024-01-09")
    assert deactivates_after_firing(rule)
    assert not deactivates_after_firing(Recurrence(type="daily", start_date="2024-01-10"))


def test_mapping_descriptors_are_accepted() -> None:
    assert should_create_instance({"type": "daily", "startDate": "2024-01-01", "endDate": "2024-01-02"}, "2024-01-02")
    assert should_create_instance({"type": "custom", "start_date": "2024-01-01", "days": [1]}, "2024-01-08")


def test_malformed_descriptors_evaluate_false() -> None:
    assert not should_create_instance({"type": "daily"}, "2024-01-01")
    assert not should_create_instance({"type": "hourly", "start_date": "2024-01-01"}, "2024-01-02")
    assert not should_create_instance({"type": "daily", "start_date": "2024-01-01"}, "not-a-date")
    assert not should_create_instance({"type": "custom", "start_date": "2024-01-01", "days": ["x"]}, "2024-01-08")


def test_auto_generation_skips_optional_and_inactive() -> None:
    rule = Recurrence(type=ScheduleType.DAILY, start_date="2024-01-01")
    schedule = ScheduledChore(id="s", template_id="t", child_ids=("a",), reward=100, recurrence=rule)

    assert should_auto_generate(schedule, "2024-01-02")
    schedule.is_optional = True
    assert not should_auto_generate(schedule, "2024-01-02")
    schedule.is_optional = False
    schedule.is_active = False
    assert not should_auto_generate(schedule, "2024-01-02")


def test_range_and_period_helpers() -> None:
    rule = Recurrence(type=ScheduleType.WEEKLY, start_date="2024-01-03", end_date="2024-01-20")

    assert is_within_range(rule, "2024-01-03")
    assert is_within_range(rule, "2024-01-20")
    assert not is_within_range(rule, "2024-01-21")
    assert period_start(ScheduleType.WEEKLY, "2024-01-10") == "2024-01-07"
    assert period_start(ScheduleType.WEEKLY, "2024-01-07") == "2024-01-07"
    assert period_start("daily", "2024-01-10") == "2024-01-10"
