"""
services/review/aggregator.py
Derived rating stats for a service.

average_rating / rating_count / review_count on Service are denormalized from the
reviews table. They are only ever written here, always as a full recomputation
from the service's current reviews, so running it twice changes nothing.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.listing.lifecycle import lock_service
from shared.exceptions import NotFoundError
from shared.models.models import Review, Service
from shared.utils.locks import service_locks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingStats:
    average_rating: float = 0.0
    rating_count: int = 0
    review_count: int = 0


def _is_valid_rating(value: Any) -> bool:
    # bool is a subclass of int; True must not count as a 1-star rating
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def summarize(rows: Iterable[Tuple[Any, Optional[str]]]) -> RatingStats:
    """
    Pure aggregation over (rating, comment) pairs.

    - rating_count: ratings that are integers in [1, 5]
    - average_rating: unrounded mean of exactly those ratings, 0 when there are none
    - review_count: rows whose comment is non-empty after trimming, whatever the rating
    """
    total = 0
    rating_count = 0
    review_count = 0
    for rating, comment in rows:
        if _is_valid_rating(rating):
            total += rating
            rating_count += 1
        if comment and comment.strip():
            review_count += 1

    average = total / rating_count if rating_count else 0.0
    return RatingStats(average_rating=float(average), rating_count=rating_count, review_count=review_count)


def apply_stats(service: Service, stats: RatingStats) -> None:
    service.average_rating = stats.average_rating
    service.rating_count = stats.rating_count
    service.review_count = stats.review_count


async def recompute(
    db: AsyncSession,
    service_id: UUID,
    service: Optional[Service] = None,
) -> RatingStats:
    """
    Overwrite the service's derived stats from its reviews, inside the caller's
    transaction. Pass `service` when the caller already holds the row (locked).
    """
    if service is None:
        result = await db.execute(
            select(Service)
            .where(Service.id == service_id)
            .execution_options(populate_existing=True)
        )
        service = result.scalar_one_or_none()
        if not service:
            raise NotFoundError("Service not found")

    rows = await db.execute(
        select(Review.rating, Review.comment).where(Review.service_id == service_id)
    )
    stats = summarize(rows.all())
    apply_stats(service, stats)
    await db.flush()
    return stats


async def recompute_all(db: AsyncSession) -> int:
    """
    Repair pass over every service. Each service is recomputed and committed
    under its own lock. Returns the number of services recomputed.
    """
    result = await db.execute(select(Service.id).order_by(Service.created_at))
    service_ids = list(result.scalars())

    recomputed = 0
    for service_id in service_ids:
        async with service_locks.hold(service_id):
            service = await lock_service(db, service_id)
            if service is None:
                # Deleted since the id scan
                continue
            await recompute(db, service_id, service=service)
            await db.commit()
            recomputed += 1

    logger.info(f"Recomputed rating stats for {recomputed} services")
    return recomputed
