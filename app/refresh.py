"""Popularity refresh job: gate on the last run, score all venues, record the run."""

import asyncio
import logging
import sys
from datetime import datetime, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from app.config import settings
from app.db import MongoVenueStore, close_db, init_db
from app.models import PopularityReport, Venue
from app.popularity import PopularityStore, UniformSource, should_run, update_popularity

logger = logging.getLogger(__name__)


class RefreshStore(PopularityStore, Protocol):
    async def load_venues(self) -> list[Venue]: ...

    async def last_run(self) -> Optional[dict]: ...

    async def record_run(self, report: PopularityReport) -> None: ...


def local_now() -> datetime:
    """Current wall-clock time in the venues' timezone."""
    return datetime.now(ZoneInfo(settings.timezone))


def refresh_interval() -> timedelta:
    return timedelta(minutes=settings.refresh_interval_minutes)


async def is_due(store: RefreshStore, now: datetime) -> bool:
    last = await store.last_run()
    return should_run(last["checked_at"] if last else None, now, refresh_interval())


async def refresh_popularity(
    store: RefreshStore,
    now: datetime,
    *,
    force: bool = False,
    rng: Optional[UniformSource] = None,
) -> Optional[PopularityReport]:
    """
    Run one popularity refresh if it is due (or ``force`` is set).

    Returns the report, or None when the last refresh is too recent.
    """
    if not force and not await is_due(store, now):
        logger.info("Popularity refreshed less than %s ago, skipping", refresh_interval())
        return None

    venues = await store.load_venues()
    report = await update_popularity(
        venues,
        store,
        now,
        rng=rng,
        lookback=timedelta(hours=settings.activity_lookback_hours),
    )
    await store.record_run(report)
    return report


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


async def main() -> None:
    """CLI entry point: ``python -m app.refresh [--force]``."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    force = "--force" in sys.argv

    await init_db()
    try:
        report = await refresh_popularity(MongoVenueStore(), local_now(), force=force)
    finally:
        await close_db()

    if report is None:
        print("Not due yet (use --force to refresh anyway).")
        return

    print(f"\n{'=' * 60}")
    print(f"Open: {report.open_count}  Closed: {report.closed_count}")
    print(f"Saved: {report.succeeded}  Failed: {report.failed}")
    if report.activity_degraded:
        print(f"Check-ins unavailable, scored without activity: {report.activity_error}")
    hot = [r.id for r in report.results if r.hot_now]
    print(f"Hot now: {', '.join(hot) if hot else 'none'}")


if __name__ == "__main__":
    asyncio.run(main())
