"""
services/image/router.py
Serves stored images by their opaque reference.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from shared.exceptions import NotFoundError
from shared.storage.images import LocalImageStore, get_image_store

router = APIRouter(prefix="/image", tags=["Images"])


@router.get("/{reference}", response_class=FileResponse)
async def get_image(reference: str, store: LocalImageStore = Depends(get_image_store)):
    found = store.open(reference)
    if found is None:
        raise NotFoundError("Image not found")
    path, content_type = found
    return FileResponse(
        path,
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
