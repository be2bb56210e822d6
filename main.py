"""Verify MongoDB connectivity, initialize indexes and show popularity state."""

import asyncio

from app.db import MongoVenueStore, close_db, get_client, get_db, init_db
from app.refresh import is_due, local_now


async def main() -> None:
    client = get_client()
    db = get_db()

    # Ping to verify connection
    result = await client.admin.command("ping")
    print(f"MongoDB ping: {result}")

    await init_db()
    print("Indexes created.")

    venues = await db.venues.count_documents({})
    check_ins = await db.check_ins.count_documents({})
    print(f"Venues: {venues}, check-ins: {check_ins}")

    store = MongoVenueStore(db)
    last = await store.last_run()
    if last:
        print(
            f"Last popularity refresh: {last['checked_at']} "
            f"({last['succeeded']} saved, {last['failed']} failed)"
        )
    else:
        print("Popularity has never been refreshed.")
    print(f"Refresh due: {await is_due(store, local_now())}")

    await close_db()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
