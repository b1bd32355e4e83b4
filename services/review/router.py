"""
services/review/router.py
Submit and list reviews for a service.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.review.submission import submit_review
from shared.models.models import Review
from shared.schemas.schemas import (
    RatingStatsResponse,
    ReviewCreatedResponse,
    ReviewCreateRequest,
    ReviewResponse,
    ServiceResponse,
    validate_request,
)
from shared.storage.images import LocalImageStore, get_image_store, read_uploads

router = APIRouter(prefix="/api/services", tags=["Reviews"])


@router.post(
    "/{service_id}/reviews",
    response_model=ReviewCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    service_id: UUID,
    rating: Optional[str] = Form(None),
    comment: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    db: AsyncSession = Depends(get_db),
    store: LocalImageStore = Depends(get_image_store),
):
    """
    Submit a review (multipart form).
    - rating must be an integer 1-5
    - up to MAX_REVIEW_IMAGES images; if storage fails the review is saved without them
    - the service's rating stats are recomputed before responding
    """
    data = validate_request(ReviewCreateRequest, rating=rating, comment=comment, username=username)
    blobs = await read_uploads(images or [], field="images", max_files=settings.MAX_REVIEW_IMAGES)

    review, service, stats = await submit_review(db, service_id, data, blobs, store)
    return ReviewCreatedResponse(
        review=ReviewResponse.model_validate(review),
        service=ServiceResponse.model_validate(service),
        stats=RatingStatsResponse(
            average_rating=stats.average_rating,
            rating_count=stats.rating_count,
            review_count=stats.review_count,
        ),
    )


@router.get("/{service_id}/reviews", response_model=List[ReviewResponse])
async def list_reviews(service_id: UUID, db: AsyncSession = Depends(get_db)):
    """Public: reviews for a service, newest first. Empty for unknown services."""
    result = await db.execute(
        select(Review)
        .where(Review.service_id == service_id)
        .order_by(Review.created_at.desc())
    )
    return [ReviewResponse.model_validate(r) for r in result.scalars()]
