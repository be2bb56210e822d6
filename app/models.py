from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

WEEKDAYS = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)
"""Weekday names indexed with the Sunday=0 convention."""


class GeoLocation(BaseModel):
    """GeoJSON Point for MongoDB 2dsphere index."""

    type: str = "Point"
    coordinates: list[float] = Field(
        ..., description="[longitude, latitude]", min_length=2, max_length=2
    )


class Venue(BaseModel):
    """A venue with a free-text weekly opening-hours table."""

    id: str
    name: str = ""
    address: Optional[str] = None
    location: Optional[GeoLocation] = None

    opening_hours: Optional[dict[str, Optional[str]]] = Field(
        None,
        description="Weekday name -> hour ranges, e.g. "
        "{'friday': '12:00pm-6:00pm, 8:00pm-11:30pm', 'monday': 'Closed'}. "
        "None means the venue has no declared schedule.",
    )

    # Written back by the popularity refresh
    popularity_score: Optional[int] = Field(None, ge=0, le=100)
    hot_now: bool = False
    last_checked_at: Optional[datetime] = None

    @field_validator("opening_hours")
    @classmethod
    def _normalize_weekdays(
        cls, value: Optional[dict[str, Optional[str]]]
    ) -> Optional[dict[str, Optional[str]]]:
        if value is None:
            return None
        normalized: dict[str, Optional[str]] = {}
        for key, text in value.items():
            day = key.strip().lower()
            if day not in WEEKDAYS:
                raise ValueError(f"unknown weekday: {key!r}")
            if day in normalized:
                raise ValueError(f"duplicate entry for {day}")
            normalized[day] = text
        return normalized


class PopularityResult(BaseModel):
    """Outcome of scoring one venue in one refresh."""

    id: str
    popularity_score: int = Field(..., ge=0, le=100)
    hot_now: bool
    last_checked_at: datetime

    def to_update(self) -> dict:
        """Fields written to the venue record."""
        return self.model_dump(exclude={"id"})


class PopularityReport(BaseModel):
    """Batch outcome of a popularity refresh."""

    checked_at: datetime
    results: list[PopularityResult] = Field(default_factory=list)
    succeeded: int = 0
    failed: int = 0
    open_count: int = 0
    closed_count: int = 0

    activity_degraded: bool = Field(
        False,
        description="True when recent check-ins could not be fetched and every "
        "venue was scored with zero recent activity.",
    )
    activity_error: Optional[str] = None

    def summary(self, **kwargs) -> dict:
        """Counters without the per-venue results."""
        return self.model_dump(exclude={"results"}, **kwargs)
