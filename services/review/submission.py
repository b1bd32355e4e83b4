"""
services/review/submission.py
Review submission: upload images, insert the review and refresh the service's
derived stats as one unit under the per-service lock.
"""

import logging
from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.listing.lifecycle import lock_service
from services.review.aggregator import RatingStats, recompute
from shared.events.registry import REVIEW_CREATED, registry
from shared.exceptions import InternalError, NotFoundError
from shared.models.models import Review, Service
from shared.schemas.schemas import ReviewCreateRequest
from shared.storage.images import LocalImageStore, discard_images, save_images
from shared.utils.locks import service_locks

logger = logging.getLogger(__name__)


async def submit_review(
    db: AsyncSession,
    service_id: UUID,
    data: ReviewCreateRequest,
    images: Sequence[Tuple[bytes, str]],
    store: LocalImageStore,
) -> Tuple[Review, Service, RatingStats]:
    """
    1. Service must exist (404 otherwise)
    2. Images are stored before any lock is taken; failure degrades to no images
    3. Under the service lock: re-check the service, insert, recompute, commit
    """
    result = await db.execute(select(Service.id).where(Service.id == service_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Service not found")

    image_references: List[str] = await save_images(store, images)

    async with service_locks.hold(service_id):
        try:
            service = await lock_service(db, service_id)
            if service is None:
                # Deleted while the images were uploading
                await db.rollback()
                await discard_images(store, image_references)
                raise NotFoundError("Service not found")

            review = Review(
                service_id=service_id,
                username=data.username,
                rating=data.rating,
                comment=data.comment,
                image_references=image_references,
            )
            db.add(review)
            await db.flush()

            stats = await recompute(db, service_id, service=service)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            await discard_images(store, image_references)
            logger.error(f"Review insert failed for service {service_id}: {e}")
            raise InternalError("Could not save review") from e

    logger.info(
        f"Review {review.id} added to service {service_id}: "
        f"avg={stats.average_rating:.2f} ratings={stats.rating_count} comments={stats.review_count}"
    )
    registry.publish(REVIEW_CREATED, {
        "service_id": str(service_id),
        "review_id": str(review.id),
        "rating": review.rating,
        "average_rating": stats.average_rating,
        "rating_count": stats.rating_count,
        "review_count": stats.review_count,
    })
    return review, service, stats
