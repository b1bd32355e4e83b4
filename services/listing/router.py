"""
services/listing/router.py
Create, fetch and self-delete service listings.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.listing.lifecycle import create_service, delete_service
from shared.exceptions import NotFoundError
from shared.models.models import Service
from shared.schemas.schemas import (
    MessageResponse,
    ServiceCreatedResponse,
    ServiceCreateRequest,
    ServiceDeleteRequest,
    ServiceResponse,
    validate_request,
)
from shared.storage.images import LocalImageStore, get_image_store, read_uploads

router = APIRouter(prefix="/api/services", tags=["Services"])


@router.post("", response_model=ServiceCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    name: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    city: Optional[str] = Form(None),
    pincode: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    store: LocalImageStore = Depends(get_image_store),
):
    """
    Create a listing from a multipart form.
    The response carries the delete code; it is never shown again.
    """
    data = validate_request(
        ServiceCreateRequest,
        name=name, category=category, city=city, pincode=pincode, address=address,
    )
    blobs = await read_uploads([image] if image else [], field="image", max_files=1)

    service, code = await create_service(db, data, blobs[0] if blobs else None, store)
    return ServiceCreatedResponse(
        service=ServiceResponse.model_validate(service),
        delete_code=code,
    )


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_listing(service_id: UUID, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Service).where(Service.id == service_id))
    service = result.scalar_one_or_none()
    if not service:
        raise NotFoundError("Service not found")
    return ServiceResponse.model_validate(service)


@router.delete("/{service_id}", response_model=MessageResponse)
async def delete_listing(
    service_id: UUID,
    payload: Optional[ServiceDeleteRequest] = Body(None),
    code: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    store: LocalImageStore = Depends(get_image_store),
):
    """
    Owner self-delete. The code may be sent as JSON `{"code": ...}` or as `?code=`;
    the body wins when both are present.
    """
    supplied = payload.code if payload and payload.code else code
    await delete_service(db, service_id, supplied, store)
    return MessageResponse(message="Service deleted")
