"""
shared/storage/images.py
Image blob storage for service photos and review attachments.

Blobs live on local disk under settings.MEDIA_ROOT and are addressed by an
opaque reference ("<32 hex chars><ext>"). Writes run in a worker thread behind a
circuit breaker and a timeout; every storage failure surfaces as UpstreamError
so callers can degrade to "saved without images" instead of failing.
"""

import asyncio
import logging
import re
import uuid
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from fastapi import UploadFile
from pybreaker import CircuitBreaker, CircuitBreakerError

from config.settings import settings
from shared.exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
EXTENSION_CONTENT_TYPES = {ext: ct for ct, ext in CONTENT_TYPE_EXTENSIONS.items()}

REFERENCE_PATTERN = re.compile(r"^[0-9a-f]{32}\.(jpg|png|gif|webp)$")


class LocalImageStore:
    """Disk-backed image store guarded by a circuit breaker."""

    def __init__(
        self,
        root: str | Path,
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = 10.0,
    ):
        self.root = Path(root)
        self.breaker = breaker or CircuitBreaker(
            fail_max=settings.IMAGE_BREAKER_FAIL_MAX,
            reset_timeout=settings.IMAGE_BREAKER_RESET_TIMEOUT,
        )
        self.timeout = timeout

    # ── Internal (run in a worker thread) ────────────────────
    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _path_for(self, reference: str) -> Optional[Path]:
        if not REFERENCE_PATTERN.match(reference):
            return None
        return self.root / reference

    # ── Public API ────────────────────────────────────────────
    async def save(self, data: bytes, content_type: str) -> str:
        """Persist a blob and return its opaque reference."""
        extension = CONTENT_TYPE_EXTENSIONS.get(content_type)
        if extension is None:
            raise ValidationError.for_field("image", f"Unsupported image type: {content_type}")

        reference = f"{uuid.uuid4().hex}{extension}"
        path = self.root / reference
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.breaker.call, self._write, path, data),
                timeout=self.timeout,
            )
        except CircuitBreakerError as e:
            raise UpstreamError("Image storage circuit is open") from e
        except asyncio.TimeoutError as e:
            raise UpstreamError("Image upload timed out") from e
        except OSError as e:
            raise UpstreamError(f"Image write failed: {e}") from e
        return reference

    def open(self, reference: str) -> Optional[Tuple[Path, str]]:
        """Return (path, content_type) for an existing blob, or None."""
        path = self._path_for(reference)
        if path is None or not path.is_file():
            return None
        return path, EXTENSION_CONTENT_TYPES[path.suffix]

    async def delete(self, reference: str) -> None:
        path = self._path_for(reference)
        if path is None:
            return
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise UpstreamError(f"Image delete failed: {e}") from e


@lru_cache()
def get_image_store() -> LocalImageStore:
    """FastAPI dependency: the process-wide image store."""
    return LocalImageStore(settings.MEDIA_ROOT, timeout=settings.IMAGE_UPLOAD_TIMEOUT_SECONDS)


# ── Upload helpers ────────────────────────────────────────────

async def read_uploads(
    files: Sequence[UploadFile],
    field: str,
    max_files: int,
) -> List[Tuple[bytes, str]]:
    """
    Read and validate uploaded images before anything is written.
    Empty file parts (a form submitted with no file chosen) are skipped.
    """
    blobs: List[Tuple[bytes, str]] = []
    for upload in files:
        if upload is None or not upload.filename:
            continue
        data = await upload.read(settings.IMAGE_MAX_BYTES + 1)
        if not data:
            continue
        if len(data) > settings.IMAGE_MAX_BYTES:
            raise ValidationError.for_field(
                field, f"Image exceeds {settings.IMAGE_MAX_BYTES} bytes"
            )
        content_type = (upload.content_type or "").lower()
        if content_type not in CONTENT_TYPE_EXTENSIONS:
            raise ValidationError.for_field(field, f"Unsupported image type: {content_type or 'unknown'}")
        blobs.append((data, content_type))

    if len(blobs) > max_files:
        raise ValidationError.for_field(field, f"At most {max_files} images are allowed")
    return blobs


async def save_images(store: LocalImageStore, blobs: Sequence[Tuple[bytes, str]]) -> List[str]:
    """
    Store every blob or none of them. On storage failure the already-written
    blobs are removed and an empty list is returned.
    """
    references: List[str] = []
    try:
        for data, content_type in blobs:
            references.append(await store.save(data, content_type))
    except UpstreamError as e:
        logger.warning(f"Image upload failed, continuing without images: {e}")
        await discard_images(store, references)
        return []
    return references


async def discard_images(store: LocalImageStore, references: Sequence[str]) -> None:
    """Best-effort removal; failures are logged, never raised."""
    for reference in references:
        if not reference:
            continue
        try:
            await store.delete(reference)
        except UpstreamError as e:
            logger.warning(f"Could not remove image {reference}: {e}")
