"""FastAPI backend for serving venues and refreshing their popularity."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db import MongoVenueStore, VenueNotFoundError, close_db, init_db
from app.hours import is_open
from app.models import Venue
from app.refresh import is_due, local_now, refresh_popularity


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(title="Venue Popularity API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> MongoVenueStore:
    return MongoVenueStore()


def get_clock() -> Callable[[], datetime]:
    return local_now


def _serialize_venue(venue: Venue, now: datetime) -> dict:
    doc = venue.model_dump(mode="json")
    doc["open_now"] = is_open(venue.opening_hours, now)
    return doc


# ── Venues ──────────────────────────────────────────────────


@app.get("/venues")
async def list_venues(
    lat: Optional[float] = Query(None, description="Latitude for geo filter"),
    lng: Optional[float] = Query(None, description="Longitude for geo filter"),
    radius_km: float = Query(10, description="Radius in km for geo filter"),
    hot_now: Optional[bool] = Query(None, description="Only hot / not hot venues"),
    open_now: Optional[bool] = Query(None, description="Only open / closed venues"),
    store: MongoVenueStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """List venues with their popularity and whether they are open right now."""
    now = clock()
    venues = await store.list_venues(lat=lat, lng=lng, radius_km=radius_km, hot_now=hot_now)
    docs = [_serialize_venue(v, now) for v in venues]
    if open_now is not None:
        docs = [d for d in docs if d["open_now"] == open_now]
    return docs


@app.get("/venues/{venue_id}")
async def get_venue(
    venue_id: str,
    store: MongoVenueStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Get a single venue by ID."""
    try:
        venue = await store.get_venue(venue_id)
    except VenueNotFoundError:
        raise HTTPException(status_code=404, detail="Venue not found")
    return _serialize_venue(venue, clock())


# ── Popularity ──────────────────────────────────────────────


@app.get("/popularity/status")
async def popularity_status(
    store: MongoVenueStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Summary of the last refresh and whether another one is due."""
    return {
        "last_run": await store.last_run(),
        "due": await is_due(store, clock()),
    }


@app.post("/popularity/refresh")
async def refresh(
    force: bool = Query(False, description="Refresh even if the last run is recent"),
    store: MongoVenueStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Recompute popularity for all venues."""
    report = await refresh_popularity(store, clock(), force=force)
    if report is None:
        return {"ran": False}
    return {"ran": True, **report.summary(mode="json")}
