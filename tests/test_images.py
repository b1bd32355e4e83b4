"""
tests/test_images.py
Tests for the local image store, its circuit breaker, and image serving.
"""

import asyncio
import time

import pytest
from httpx import AsyncClient
from pybreaker import CircuitBreaker

from shared.exceptions import UpstreamError, ValidationError
from shared.storage.images import LocalImageStore, save_images
from tests.conftest import PNG_BYTES, create_listing


@pytest.mark.asyncio
async def test_save_open_delete(image_store: LocalImageStore):
    reference = await image_store.save(PNG_BYTES, "image/png")
    assert reference.endswith(".png")

    path, content_type = image_store.open(reference)
    assert content_type == "image/png"
    assert path.read_bytes() == PNG_BYTES

    await image_store.delete(reference)
    assert image_store.open(reference) is None


@pytest.mark.asyncio
async def test_save_rejects_non_image(image_store: LocalImageStore):
    with pytest.raises(ValidationError):
        await image_store.save(b"%PDF", "application/pdf")


@pytest.mark.parametrize("reference", ["../secret.png", "abc.png", "x" * 32 + ".exe", ""])
def test_open_rejects_malformed_references(image_store: LocalImageStore, reference: str):
    assert image_store.open(reference) is None


@pytest.mark.asyncio
async def test_open_circuit_raises_upstream_error(tmp_path):
    breaker = CircuitBreaker(fail_max=1, reset_timeout=60)
    breaker.open()
    store = LocalImageStore(tmp_path, breaker=breaker)

    with pytest.raises(UpstreamError):
        await store.save(PNG_BYTES, "image/png")


@pytest.mark.asyncio
async def test_slow_write_times_out(tmp_path, monkeypatch):
    store = LocalImageStore(tmp_path, timeout=0.05)

    def slow_write(path, data):
        time.sleep(0.5)

    monkeypatch.setattr(store, "_write", slow_write)
    with pytest.raises(UpstreamError):
        await store.save(PNG_BYTES, "image/png")
    # Let the orphaned worker thread finish before the loop closes
    await asyncio.sleep(0.5)


@pytest.mark.asyncio
async def test_save_images_degrades_and_cleans_up(tmp_path):
    """A failure part-way through leaves no blobs behind and returns no references."""
    store = LocalImageStore(tmp_path)
    calls = {"n": 0}
    real_write = store._write

    def flaky_write(path, data):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OSError("disk full")
        real_write(path, data)

    store._write = flaky_write
    references = await save_images(store, [(PNG_BYTES, "image/png")] * 3)

    assert references == []
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_service_with_image_is_served(client: AsyncClient):
    body = await create_listing(client, image=PNG_BYTES)
    image_url = body["service"]["image_url"]
    assert image_url.startswith("/image/")

    response = await client.get(image_url)
    assert response.status_code == 200
    assert response.content == PNG_BYTES


@pytest.mark.asyncio
async def test_unknown_image_returns_404(client: AsyncClient):
    response = await client.get("/image/" + "0" * 32 + ".png")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_deleting_service_removes_its_images(client: AsyncClient, image_store: LocalImageStore):
    body = await create_listing(client, image=PNG_BYTES)
    reference = body["service"]["image_reference"]
    assert image_store.open(reference) is not None

    await client.delete(f"/api/services/{body['service']['id']}", params={"code": body["delete_code"]})
    assert image_store.open(reference) is None
