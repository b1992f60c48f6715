"""Background scheduling for the ChoreKeeper daily driver and session cleanup."""
from __future__ import annotations

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..service import ChoreKeeper
from .config import DAILY_JOBS_HOUR, DAILY_JOBS_MINUTE, SCHEDULER_TIMEZONE, SESSION_CLEANUP_MINUTES

DAILY_JOBS_ID = "daily_jobs"
SESSION_CLEANUP_ID = "session_cleanup"


def run_daily_jobs(keeper: ChoreKeeper) -> dict:
    result = keeper.run_daily_jobs()
    keeper.logger.log("daily_jobs_ran", **result)
    return result


def cleanup_sessions(keeper: ChoreKeeper) -> int:
    removed = keeper.cleanup_expired_sessions()
    if removed:
        keeper.logger.log("sessions_cleaned", removed=removed)
    return removed


def build_scheduler(
    keeper: ChoreKeeper,
    *,
    hour: int = DAILY_JOBS_HOUR,
    minute: int = DAILY_JOBS_MINUTE,
    cleanup_minutes: int = SESSION_CLEANUP_MINUTES,
    timezone: str = SCHEDULER_TIMEZONE,
) -> BackgroundScheduler:
    """Create a scheduler with both jobs registered; the caller starts it."""

    scheduler = BackgroundScheduler(daemon=True, timezone=timezone)
    scheduler.add_job(
        run_daily_jobs,
        trigger=CronTrigger(hour=hour, minute=minute, timezone=timezone),
        args=[keeper],
        id=DAILY_JOBS_ID,
        replace_existing=True,
        coalesce=True,
    )
    scheduler.add_job(
        cleanup_sessions,
        trigger=IntervalTrigger(minutes=cleanup_minutes, timezone=timezone),
        args=[keeper],
        id=SESSION_CLEANUP_ID,
        replace_existing=True,
        coalesce=True,
    )
    return scheduler


__all__ = ["DAILY_JOBS_ID", "SESSION_CLEANUP_ID", "build_scheduler", "cleanup_sessions", "run_daily_jobs"]
