"""
tasks/maintenance_tasks.py
Manual repair of every service's rating stats.

Queue it from anywhere:
    from tasks.maintenance_tasks import recompute_all_ratings
    recompute_all_ratings.delay()

Or run it directly against DATABASE_URL without a broker:
    python -m tasks.maintenance_tasks
"""

import asyncio
import logging

from config.database import close_db, get_db_context
from services.review.aggregator import recompute_all
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_recompute() -> int:
    """Recompute every service, then release the engine's connections."""
    try:
        async with get_db_context() as db:
            return await recompute_all(db)
    finally:
        # Pooled connections belong to this event loop; asyncio.run() closes it
        await close_db()


@celery_app.task(name="tasks.maintenance_tasks.recompute_all_ratings")
def recompute_all_ratings() -> dict:
    """Idempotent: running it twice leaves the same stats."""
    count = asyncio.run(run_recompute())
    logger.info(f"Rating repair finished: {count} services")
    return {"recomputed": count}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    recomputed = asyncio.run(run_recompute())
    print(f"Recomputed ratings for {recomputed} services")
