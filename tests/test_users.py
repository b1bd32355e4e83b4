"""
tests/test_users.py
Tests for saved services: toggle, list, auth requirements, and pruning on delete.
"""

import uuid
from contextlib import asynccontextmanager

import pytest
from httpx import AsyncClient

import services.user.router as user_router
from shared.models.models import User
from shared.utils.locks import KeyedLocks
from tests.conftest import create_listing, login


@pytest.mark.asyncio
async def test_saved_requires_login(client: AsyncClient, listing: dict):
    response = await client.post(f"/api/user/me/saved/{listing['service']['id']}")
    assert response.status_code == 401
    assert response.json()["detail"] == "Login required"

    response = await client.get("/api/user/me/saved")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_toggle_saved_twice_round_trips(client: AsyncClient, user: User, listing: dict):
    """Absent → saved → removed."""
    await login(client, user.username)
    service_id = listing["service"]["id"]

    first = await client.post(f"/api/user/me/saved/{service_id}")
    assert first.status_code == 200
    assert first.json()["action"] == "saved"
    assert first.json()["message"] == "Service saved"
    assert first.json()["saved_services"] == [service_id]

    second = await client.post(f"/api/user/me/saved/{service_id}")
    assert second.json()["action"] == "removed"
    assert second.json()["saved_services"] == []


@pytest.mark.asyncio
async def test_toggle_unknown_service_returns_404(client: AsyncClient, user: User):
    await login(client, user.username)
    response = await client.post(f"/api/user/me/saved/{uuid.uuid4()}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_saved_services_newest_first(client: AsyncClient, user: User):
    first = await create_listing(client, name="First")
    second = await create_listing(client, name="Second")
    await login(client, user.username)

    await client.post(f"/api/user/me/saved/{first['service']['id']}")
    await client.post(f"/api/user/me/saved/{second['service']['id']}")

    response = await client.get("/api/user/me/saved")
    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == ["Second", "First"]


@pytest.mark.asyncio
async def test_deleting_service_prunes_saved_sets(client: AsyncClient, user: User, listing: dict):
    await login(client, user.username)
    service_id = listing["service"]["id"]
    await client.post(f"/api/user/me/saved/{service_id}")

    response = await client.delete(f"/api/services/{service_id}", params={"code": listing["delete_code"]})
    assert response.status_code == 200

    saved = await client.get("/api/user/me/saved")
    assert saved.json() == []


@pytest.mark.asyncio
async def test_toggle_racing_a_delete_returns_404(
    client: AsyncClient,
    user: User,
    listing: dict,
    monkeypatch,
):
    """The owner deletes the listing between the existence check and the insert."""
    await login(client, user.username)
    service_id = listing["service"]["id"]

    class DeleteFirstLocks(KeyedLocks):
        @asynccontextmanager
        async def hold(self, key):
            response = await client.delete(
                f"/api/services/{service_id}", params={"code": listing["delete_code"]}
            )
            assert response.status_code == 200
            async with super().hold(key):
                yield

    monkeypatch.setattr(user_router, "user_locks", DeleteFirstLocks())

    response = await client.post(f"/api/user/me/saved/{service_id}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Service not found"

    monkeypatch.undo()
    assert (await client.get("/api/user/me/saved")).json() == []
