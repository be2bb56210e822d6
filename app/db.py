import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pydantic import ValidationError

from app.config import settings
from app.models import PopularityReport, Venue

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None


class VenueNotFoundError(LookupError):
    """An update or lookup matched no venue document."""


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    return get_client()[settings.mongodb_db]


async def init_db() -> None:
    """Create indexes for venues, check-ins and popularity runs."""
    db = get_db()

    # Venues: 2dsphere index for geo queries
    await db.venues.create_index([("location", "2dsphere")])

    # Check-ins: lookback window scans and per-venue counts
    await db.check_ins.create_index("created_at")
    await db.check_ins.create_index([("venue_id", 1), ("created_at", 1)])

    await db.popularity_runs.create_index([("checked_at", -1)])


async def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


def _venue_key(venue_id: str) -> Any:
    """Venue ids are ObjectId hex strings for loaded venues, anything else as-is."""
    return ObjectId(venue_id) if ObjectId.is_valid(venue_id) else venue_id


def venue_from_doc(doc: dict) -> Venue:
    """Build a Venue from a MongoDB document."""
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return Venue.model_validate(data)


def _valid_venues(docs: list[dict]) -> list[Venue]:
    """Convert documents to Venues, skipping ones that fail validation."""
    venues: list[Venue] = []
    for doc in docs:
        try:
            venues.append(venue_from_doc(doc))
        except ValidationError as e:
            logger.warning("Skipping venue %s: %s", doc.get("_id"), e)
    return venues


class MongoVenueStore:
    """Venue, check-in and run-history access backed by MongoDB."""

    def __init__(self, db: AsyncIOMotorDatabase | None = None):
        self.db = db if db is not None else get_db()

    # ── Popularity refresh ──────────────────────────────────

    async def fetch_recent_activity(self, since: datetime) -> list[tuple[str, int]]:
        """Check-in counts per venue since ``since``."""
        pipeline = [
            {"$match": {"created_at": {"$gte": since}}},
            {"$group": {"_id": "$venue_id", "count": {"$sum": 1}}},
        ]
        rows = await self.db.check_ins.aggregate(pipeline).to_list(None)
        return [(str(row["_id"]), row["count"]) for row in rows]

    async def update_venue(self, venue_id: str, fields: dict) -> None:
        result = await self.db.venues.update_one(
            {"_id": _venue_key(venue_id)}, {"$set": fields}
        )
        if result.matched_count == 0:
            raise VenueNotFoundError(f"venue {venue_id} not found")

    async def load_venues(self) -> list[Venue]:
        """All venues, skipping documents that fail validation."""
        return _valid_venues(await self.db.venues.find().to_list(None))

    async def last_run(self) -> Optional[dict]:
        return await self.db.popularity_runs.find_one(
            {}, {"_id": 0}, sort=[("checked_at", -1)]
        )

    async def record_run(self, report: PopularityReport) -> None:
        await self.db.popularity_runs.insert_one(report.summary())

    # ── API queries ─────────────────────────────────────────

    async def list_venues(
        self,
        *,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius_km: float = 10,
        hot_now: Optional[bool] = None,
        limit: int = 200,
    ) -> list[Venue]:
        query: dict = {}

        if hot_now is not None:
            query["hot_now"] = hot_now

        if lat is not None and lng is not None:
            query["location"] = {
                "$nearSphere": {
                    "$geometry": {
                        "type": "Point",
                        "coordinates": [lng, lat],
                    },
                    "$maxDistance": radius_km * 1000,
                }
            }

        docs = await self.db.venues.find(query).to_list(limit)
        return _valid_venues(docs)

    async def get_venue(self, venue_id: str) -> Venue:
        doc = await self.db.venues.find_one({"_id": _venue_key(venue_id)})
        if not doc:
            raise VenueNotFoundError(f"venue {venue_id} not found")
        return venue_from_doc(doc)
