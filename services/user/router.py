"""
services/user/router.py
Saved (favourite) services for the logged-in user.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import NotFoundError
from shared.middleware.auth import get_current_user
from shared.models.models import SavedService, Service, User
from shared.schemas.schemas import SavedToggleResponse, ServiceResponse
from shared.utils.locks import user_locks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Users"])


async def _saved_service_ids(db: AsyncSession, user_id: UUID) -> List[UUID]:
    result = await db.execute(
        select(SavedService.service_id)
        .where(SavedService.user_id == user_id)
        .order_by(SavedService.created_at.desc())
    )
    return list(result.scalars())


@router.get("/me/saved", response_model=List[ServiceResponse])
async def get_saved_services(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Services saved by the current user, most recently saved first."""
    result = await db.execute(
        select(Service)
        .join(SavedService, SavedService.service_id == Service.id)
        .where(SavedService.user_id == current_user.id)
        .order_by(SavedService.created_at.desc())
    )
    return [ServiceResponse.model_validate(s) for s in result.scalars()]


@router.post("/me/saved/{service_id}", response_model=SavedToggleResponse)
async def toggle_saved_service(
    service_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Toggle a service in the user's saved set.
    Absent → saved, present → removed. Toggles for one user are serialized.
    """
    service = await db.execute(select(Service.id).where(Service.id == service_id))
    if service.scalar_one_or_none() is None:
        raise NotFoundError("Service not found")

    async with user_locks.hold(current_user.id):
        existing = await db.execute(
            select(SavedService.id).where(
                SavedService.user_id == current_user.id,
                SavedService.service_id == service_id,
            )
        )
        if existing.scalar_one_or_none() is None:
            db.add(SavedService(user_id=current_user.id, service_id=service_id))
            action = "saved"
        else:
            await db.execute(
                delete(SavedService).where(
                    SavedService.user_id == current_user.id,
                    SavedService.service_id == service_id,
                )
            )
            action = "removed"
        try:
            await db.commit()
        except IntegrityError as e:
            # The service was deleted after the existence check
            logger.info(f"Saved toggle for {current_user.username} lost to a delete of {service_id}")
            await db.rollback()
            raise NotFoundError("Service not found") from e

    logger.info(f"User {current_user.username} {action} service {service_id}")
    return SavedToggleResponse(
        message=f"Service {action}",
        action=action,
        saved_services=await _saved_service_ids(db, current_user.id),
    )
