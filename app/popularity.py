"""Score venue popularity from recent check-ins and time-of-day heuristics."""

import asyncio
import logging
import math
import random
from collections import Counter
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from app.hours import is_open, weekday_name
from app.models import PopularityReport, PopularityResult, Venue

logger = logging.getLogger(__name__)

ACTIVITY_LOOKBACK = timedelta(hours=4)
REFRESH_INTERVAL = timedelta(minutes=5)

# ---------------------------------------------------------------------------
# Scoring weights
# ---------------------------------------------------------------------------

POINTS_PER_CHECK_IN = 15
MAX_ACTIVITY_POINTS = 40
BASE_POINTS = 20
EVENING_POINTS = 25  # 17:00-23:59 every day
WEEKEND_LUNCH_POINTS = 20  # 12:00-14:59 Saturday and Sunday
WEEKEND_EVENING_POINTS = 30  # from 18:00 Friday and Saturday
LATE_WEEKEND_POINTS = 15  # 21:00-23:59 Friday and Saturday
JITTER = 7.5

HOT_THRESHOLD = 75
MIN_SCORE, MAX_SCORE = 0, 100

_WEEKEND = {"saturday", "sunday"}
_WEEKEND_NIGHTS = {"friday", "saturday"}


class UniformSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


class PopularityStore(Protocol):
    """What the refresh needs from the data store."""

    async def fetch_recent_activity(self, since: datetime) -> list[tuple[str, int]]: ...

    async def update_venue(self, venue_id: str, fields: dict) -> None: ...


# ---------------------------------------------------------------------------
# Pure scoring
# ---------------------------------------------------------------------------


def raw_score(check_ins: int, now: datetime, rng: UniformSource) -> float:
    """Unclamped score for an open venue."""
    hour = now.hour
    day = weekday_name(now)

    score: float = min(check_ins * POINTS_PER_CHECK_IN, MAX_ACTIVITY_POINTS)
    score += BASE_POINTS

    if 17 <= hour <= 23:
        score += EVENING_POINTS
    if 12 <= hour <= 14 and day in _WEEKEND:
        score += WEEKEND_LUNCH_POINTS
    if day in _WEEKEND_NIGHTS and hour >= 18:
        score += WEEKEND_EVENING_POINTS
    if 21 <= hour <= 23 and day in _WEEKEND_NIGHTS:
        score += LATE_WEEKEND_POINTS

    score += rng.uniform(-JITTER, JITTER)
    return score


def score_venue(
    venue: Venue, check_ins: int, now: datetime, rng: UniformSource
) -> tuple[PopularityResult, bool]:
    """Return the venue's result and whether it is open."""
    if not is_open(venue.opening_hours, now):
        result = PopularityResult(
            id=venue.id, popularity_score=0, hot_now=False, last_checked_at=now
        )
        return result, False

    score = raw_score(check_ins, now, rng)
    result = PopularityResult(
        id=venue.id,
        popularity_score=_round_half_up(max(MIN_SCORE, min(MAX_SCORE, score))),
        hot_now=score > HOT_THRESHOLD and check_ins > 0,
        last_checked_at=now,
    )
    return result, True


def _round_half_up(value: float) -> int:
    # round() would send .5 to the even neighbour
    return math.floor(value + 0.5)


def aggregate_activity(rows: Iterable[tuple[str, int]]) -> Mapping[str, int]:
    """Sum per-venue check-in counts into a read-only snapshot."""
    counts: Counter[str] = Counter()
    for venue_id, count in rows:
        counts[str(venue_id)] += int(count)
    return MappingProxyType(dict(counts))


def compute_scores(
    venues: Sequence[Venue],
    activity: Mapping[str, int],
    now: datetime,
    rng: Optional[UniformSource] = None,
) -> list[PopularityResult]:
    """Score every venue, in input order."""
    rng = rng or random.Random()
    return [score_venue(v, activity.get(v.id, 0), now, rng)[0] for v in venues]


# ---------------------------------------------------------------------------
# Trigger gate
# ---------------------------------------------------------------------------


def _parse_timestamp(text: str) -> datetime:
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _as_utc(dt: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def should_run(
    last_run: datetime | str | None,
    now: datetime,
    interval: timedelta = REFRESH_INTERVAL,
) -> bool:
    """True if there was no previous refresh or more than ``interval`` has passed."""
    if last_run is None:
        return True
    if isinstance(last_run, str):
        last_run = _parse_timestamp(last_run)
    return _as_utc(now) - _as_utc(last_run) > interval


# ---------------------------------------------------------------------------
# Batch refresh
# ---------------------------------------------------------------------------


async def _fetch_activity(
    store: PopularityStore, since: datetime, report: PopularityReport
) -> Mapping[str, int]:
    try:
        rows = await store.fetch_recent_activity(since)
    except Exception as e:
        logger.warning("Could not fetch check-ins, scoring without activity: %s", e)
        report.activity_degraded = True
        report.activity_error = str(e) or type(e).__name__
        return MappingProxyType({})

    activity = aggregate_activity(rows)
    logger.info("Found %d recent check-ins", sum(activity.values()))
    return activity


async def _save_result(store: PopularityStore, result: PopularityResult) -> bool:
    try:
        await store.update_venue(result.id, result.to_update())
    except Exception as e:
        logger.error("Failed to update venue %s: %s", result.id, e)
        return False
    return True


async def update_popularity(
    venues: Sequence[Venue],
    store: PopularityStore,
    now: datetime,
    *,
    rng: Optional[UniformSource] = None,
    lookback: timedelta = ACTIVITY_LOOKBACK,
) -> PopularityReport:
    """
    Recompute and persist popularity for ``venues`` at ``now``.

    Recent check-ins are read once, before any venue is scored. If that read
    fails the batch still runs with zero activity and the report is flagged
    ``activity_degraded``. Each venue is written independently; failed writes
    are counted but the result is still returned.
    """
    rng = rng or random.Random()
    report = PopularityReport(checked_at=now)

    logger.info(
        "Updating popularity for %d venues (%s %02d:%02d)",
        len(venues),
        weekday_name(now).capitalize(),
        now.hour,
        now.minute,
    )

    activity = await _fetch_activity(store, now - lookback, report)

    for venue in venues:
        result, open_now = score_venue(venue, activity.get(venue.id, 0), now, rng)
        report.results.append(result)
        if open_now:
            report.open_count += 1
        else:
            report.closed_count += 1

    logger.info("Status: %d open, %d closed", report.open_count, report.closed_count)

    saved = await asyncio.gather(*(_save_result(store, r) for r in report.results))
    report.succeeded = sum(saved)
    report.failed = len(saved) - report.succeeded

    if report.failed:
        logger.warning(
            "Updated %d venues, %d failed", report.succeeded, report.failed
        )
    else:
        logger.info("Updated %d venues", report.succeeded)
    return report
