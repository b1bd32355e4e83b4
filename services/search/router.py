"""
services/search/router.py
Directory search: filter approved services by city, pincode and category.
Also serves the category facet used for the category tabs.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.models.models import Service
from shared.schemas.schemas import CategoryCount, ServiceResponse

router = APIRouter(prefix="/api/services", tags=["Search"])


async def search_services(
    db: AsyncSession,
    city: Optional[str] = None,
    pincode: Optional[str] = None,
    category: Optional[str] = None,
) -> List[Service]:
    """
    - city: case-insensitive substring
    - pincode: exact match after trimming
    - category: case-insensitive exact match; the "all" sentinel disables it
    Only approved services, newest first.
    """
    query = select(Service).where(Service.is_approved == True)  # noqa: E712

    city = (city or "").strip()
    if city:
        query = query.where(func.lower(Service.city).contains(city.lower(), autoescape=True))

    pincode = (pincode or "").strip()
    if pincode:
        query = query.where(Service.pincode == pincode)

    category = (category or "").strip()
    if category and category.lower() != settings.CATEGORY_ALL_SENTINEL.lower():
        query = query.where(func.lower(Service.category) == category.lower())

    result = await db.execute(query.order_by(Service.created_at.desc()))
    return list(result.scalars())


@router.get("", response_model=List[ServiceResponse])
async def list_services(
    city: Optional[str] = Query(None, max_length=100),
    pincode: Optional[str] = Query(None, max_length=20),
    category: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Public: filtered directory listing with rating stats."""
    services = await search_services(db, city=city, pincode=pincode, category=category)
    return [ServiceResponse.model_validate(s) for s in services]


@router.get("/categories", response_model=List[CategoryCount])
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Service.category, func.count(Service.id))
        .where(Service.is_approved == True)  # noqa: E712
        .group_by(Service.category)
        .order_by(Service.category)
    )
    return [CategoryCount(category=category, count=count) for category, count in result.all()]
