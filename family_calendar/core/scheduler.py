"""Background job that keeps derived events materialized ahead of time."""
import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from family_calendar.core.config import settings
from family_calendar.core.database import engine
from family_calendar.recurrence import EngineError, EventStore, SeriesManager

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def refresh_derived_events(session: Session, days_ahead: int | None = None) -> dict:
    """
    Resolve the coming days for every family that has a recurring event.

    Resolving creates any missing arrival and drive-time events, so they
    exist before anyone opens the calendar. Returns per-run statistics.
    """
    days_ahead = days_ahead or settings.derived_refresh_days_ahead
    store = EventStore(session)
    manager = SeriesManager(store)
    today = datetime.now(UTC).date()

    stats = {"families": 0, "occurrences": 0, "failed": 0}
    for family_id in store.list_families_with_series():
        try:
            occurrences = manager.resolve_occurrences(
                family_id, today, today + timedelta(days=days_ahead)
            )
        except EngineError as e:
            logger.error(f"Derived event refresh failed for family {family_id}: {e}")
            stats["failed"] += 1
            continue
        stats["families"] += 1
        stats["occurrences"] += len(occurrences)
    return stats


def refresh_job():
    """Background refresh job."""
    try:
        with Session(engine) as session:
            stats = refresh_derived_events(session)
            logger.info(f"Derived event refresh completed: {stats}")
    except Exception as e:
        logger.error(f"Derived event refresh failed: {e}")


def start_scheduler():
    """Start the background scheduler if the refresh job is enabled."""
    if settings.derived_refresh_interval_minutes <= 0:
        logger.info("Derived event refresh disabled")
        return
    scheduler.add_job(
        refresh_job,
        trigger=IntervalTrigger(minutes=settings.derived_refresh_interval_minutes),
        id="derived_refresh",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, refreshing derived events every "
        f"{settings.derived_refresh_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
