from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from app.db import VenueNotFoundError
from app.models import PopularityReport, Venue


class FixedRandom:
    """Random source whose uniform() always returns ``value``."""

    def __init__(self, value: float = 0.0):
        self.value = value

    def uniform(self, a: float, b: float) -> float:
        return self.value


class FakeStore:
    """In-memory stand-in for MongoVenueStore."""

    def __init__(
        self,
        venues: Optional[list[Venue]] = None,
        check_ins: Optional[list[tuple[str, datetime]]] = None,
        fail_ids: frozenset = frozenset(),
        activity_error: Optional[Exception] = None,
    ):
        self.venues = {v.id: v for v in venues or []}
        self.check_ins = list(check_ins or [])
        self.fail_ids = set(fail_ids)
        self.activity_error = activity_error
        self.updates: dict[str, dict] = {}
        self.runs: list[dict] = []
        self.activity_calls = 0

    async def fetch_recent_activity(self, since: datetime) -> list[tuple[str, int]]:
        self.activity_calls += 1
        if self.activity_error is not None:
            raise self.activity_error
        return [(venue_id, 1) for venue_id, at in self.check_ins if at >= since]

    async def update_venue(self, venue_id: str, fields: dict) -> None:
        if venue_id in self.fail_ids:
            raise RuntimeError(f"write rejected for {venue_id}")
        if venue_id not in self.venues:
            raise VenueNotFoundError(venue_id)
        self.updates[venue_id] = fields
        self.venues[venue_id] = self.venues[venue_id].model_copy(update=fields)

    async def load_venues(self) -> list[Venue]:
        return list(self.venues.values())

    async def last_run(self) -> Optional[dict]:
        return self.runs[-1] if self.runs else None

    async def record_run(self, report: PopularityReport) -> None:
        self.runs.append(report.summary())

    async def list_venues(self, *, hot_now=None, **kwargs) -> list[Venue]:
        venues = list(self.venues.values())
        if hot_now is not None:
            venues = [v for v in venues if v.hot_now == hot_now]
        return venues

    async def get_venue(self, venue_id: str) -> Venue:
        try:
            return self.venues[venue_id]
        except KeyError:
            raise VenueNotFoundError(venue_id)


def at_time(day: str, hour: int, minute: int = 0) -> datetime:
    """A UTC datetime in the week of 2026-10-11 falling on ``day``."""
    dt = datetime(2026, 10, 11, hour, minute, tzinfo=timezone.utc)
    while dt.strftime("%A").lower() != day:
        dt += timedelta(days=1)
    return dt


@pytest.fixture
def at():
    return at_time


@pytest.fixture
def zero_rng():
    return FixedRandom(0.0)
