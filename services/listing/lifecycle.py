"""
services/listing/lifecycle.py
Service creation (with its one-time delete code) and owner self-deletion.

The delete code is the only credential a listing owner has. Only its SHA-256
digest is stored; the plaintext is returned once from create_service().
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from shared.events.registry import SERVICE_CREATED, SERVICE_DELETED, registry
from shared.exceptions import ForbiddenError, InternalError, NotFoundError, ValidationError
from shared.models.models import Review, SavedService, Service
from shared.schemas.schemas import ServiceCreateRequest
from shared.storage.images import LocalImageStore, discard_images, save_images
from shared.utils.locks import service_locks
from shared.utils.security import delete_code_matches, generate_delete_code, hash_token

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10


async def lock_service(db: AsyncSession, service_id: UUID) -> Optional[Service]:
    """Re-read the service row FOR UPDATE. SQLite drops the lock clause."""
    result = await db.execute(
        select(Service)
        .where(Service.id == service_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _unique_delete_code(db: AsyncSession) -> Tuple[str, str]:
    """Generate a code whose digest no other service already carries."""
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_delete_code()
        digest = hash_token(code)
        taken = await db.scalar(select(Service.id).where(Service.delete_code_hash == digest))
        if taken is None:
            return code, digest
    raise InternalError("Could not generate a unique delete code")


# ── Create ────────────────────────────────────────────────────

async def create_service(
    db: AsyncSession,
    data: ServiceCreateRequest,
    image: Optional[Tuple[bytes, str]] = None,
    store: Optional[LocalImageStore] = None,
) -> Tuple[Service, str]:
    """Create a listing. Returns the service and its plaintext delete code."""
    image_reference = ""
    if image is not None and store is not None:
        stored = await save_images(store, [image])
        image_reference = stored[0] if stored else ""

    try:
        code, digest = await _unique_delete_code(db)
        service = Service(
            name=data.name,
            category=data.category or settings.DEFAULT_CATEGORY,
            city=data.city,
            pincode=data.pincode,
            address=data.address,
            image_reference=image_reference,
            delete_code_hash=digest,
            is_approved=True,
        )
        db.add(service)
        await db.flush()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        if store is not None:
            await discard_images(store, [image_reference])
        logger.error(f"Service insert failed: {e}")
        raise InternalError("Could not save service") from e

    logger.info(f"Service created: {service.id} '{service.name}' in {service.city}")
    registry.publish(SERVICE_CREATED, {
        "service_id": str(service.id),
        "name": service.name,
        "category": service.category,
        "city": service.city,
    })
    return service, code


# ── Delete ────────────────────────────────────────────────────

async def delete_service(
    db: AsyncSession,
    service_id: UUID,
    supplied_code: Optional[str],
    store: Optional[LocalImageStore] = None,
) -> None:
    """
    Delete a listing if the supplied code matches.
    Reviews and saved-service rows go with it in the same transaction.
    """
    code = (supplied_code or "").strip()
    if not code:
        raise ValidationError.for_field("code", "Delete code is required")

    image_references: List[str] = []
    async with service_locks.hold(service_id):
        service = await lock_service(db, service_id)
        if service is None:
            raise NotFoundError("Service not found")

        if not delete_code_matches(code, service.delete_code_hash):
            logger.warning(f"Rejected delete attempt for service {service_id}: wrong code")
            raise ForbiddenError("Invalid delete code")

        try:
            rows = await db.execute(
                select(Review.image_references).where(Review.service_id == service_id)
            )
            image_references = [service.image_reference]
            for references in rows.scalars():
                image_references.extend(references or [])

            await db.execute(delete(Review).where(Review.service_id == service_id))
            await db.execute(delete(SavedService).where(SavedService.service_id == service_id))
            await db.delete(service)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Service delete failed for {service_id}: {e}")
            raise InternalError("Could not delete service") from e

    logger.info(f"Service deleted: {service_id}")
    if store is not None:
        await discard_images(store, image_references)
    registry.publish(SERVICE_DELETED, {"service_id": str(service_id)})
