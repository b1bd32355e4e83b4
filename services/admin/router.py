"""
services/admin/router.py
Admin-only maintenance endpoints.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.review.aggregator import recompute_all
from shared.middleware.auth import require_admin
from shared.models.models import User
from shared.schemas.schemas import RecomputeResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post("/recompute-ratings", response_model=RecomputeResponse)
async def recompute_ratings(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Rebuild every service's rating stats from its reviews.
    Idempotent; safe to run at any time.
    """
    count = await recompute_all(db)
    logger.info(f"Admin {admin.username} recomputed ratings for {count} services")
    return RecomputeResponse(recomputed=count)
