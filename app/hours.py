"""Decide whether a venue is open from its free-text weekly opening hours."""

import re
from datetime import datetime
from typing import Mapping, NamedTuple, Optional

from app.models import WEEKDAYS

MINUTES_PER_DAY = 24 * 60

# "5:00pm - 11:30pm", "22:00–02:00", "9:00 AM-5:00 PM"
_RANGE_RE = re.compile(
    r"(\d{1,2}):(\d{2})\s*(?:am|pm)?\s*[-–]\s*(\d{1,2}):(\d{2})\s*(?:am|pm)?",
    re.IGNORECASE,
)


class TimeRange(NamedTuple):
    """Opening window in minutes of the day. close < open wraps past midnight."""

    open_minute: int
    close_minute: int

    @property
    def wraps(self) -> bool:
        return self.close_minute < self.open_minute

    def contains(self, minute: int) -> bool:
        if self.wraps:
            return minute >= self.open_minute or minute <= self.close_minute
        return self.open_minute <= minute <= self.close_minute


def parse_range(text: str) -> Optional[TimeRange]:
    """
    Parse a single ``open-close`` range, or return None if it doesn't match.

    A "pm" anywhere in the range shifts both hours into the afternoon, except
    that the close hour is left alone when it equals the (shifted) open hour.
    "am" is never corrected, so "12:00am" stays at noon.
    """
    match = _RANGE_RE.search(text)
    if not match:
        return None

    open_hour, open_min, close_hour, close_min = (int(g) for g in match.groups())

    if "pm" in text.lower():
        if open_hour < 12:
            open_hour += 12
        if close_hour < 12 and close_hour != open_hour:
            close_hour += 12

    open_minutes = open_hour * 60 + open_min
    close_minutes = close_hour * 60 + close_min
    if close_minutes == 0:
        close_minutes = MINUTES_PER_DAY

    if open_min > 59 or close_min > 59:
        return None
    if open_minutes >= MINUTES_PER_DAY or close_minutes > MINUTES_PER_DAY:
        return None

    return TimeRange(open_minutes, close_minutes)


def parse_hours(text: str) -> list[TimeRange]:
    """Parse a day's entry into its ranges, silently dropping unparseable parts."""
    ranges: list[TimeRange] = []
    for candidate in text.split(","):
        parsed = parse_range(candidate.strip())
        if parsed is not None:
            ranges.append(parsed)
    return ranges


def weekday_name(now: datetime) -> str:
    # datetime.weekday() is Monday=0; WEEKDAYS starts on Sunday
    return WEEKDAYS[(now.weekday() + 1) % 7]


def is_open(hours: Optional[Mapping[str, Optional[str]]], now: datetime) -> bool:
    """
    Return True if the venue is open at ``now`` (wall-clock, venue-local).

    A venue without any opening hours is assumed to be open.
    """
    if hours is None:
        return True

    today = hours.get(weekday_name(now))
    if not today or today.lower() == "closed":
        return False

    current = now.hour * 60 + now.minute
    return any(r.contains(current) for r in parse_hours(today))
