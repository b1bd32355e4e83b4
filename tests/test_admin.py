"""
tests/test_admin.py
Tests for rating repair: the admin endpoint, the Celery task, and the CLI runner.
"""

import uuid
from contextlib import asynccontextmanager

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

import tasks.maintenance_tasks as maintenance
from shared.models.models import Service, User
from tests.conftest import login, post_review


async def _corrupt(db: AsyncSession, service_id: str) -> None:
    await db.execute(
        update(Service)
        .where(Service.id == uuid.UUID(service_id))
        .values(average_rating=1.0, rating_count=42, review_count=42)
    )
    await db.commit()


# ── Access Control ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_unauthenticated_cannot_recompute(client: AsyncClient):
    response = await client.post("/api/admin/recompute-ratings")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_user_cannot_recompute(client: AsyncClient, user: User):
    """Regular users get 403 on admin endpoints."""
    await login(client, user.username)
    response = await client.post("/api/admin/recompute-ratings")
    assert response.status_code == 403


# ── Repair ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_recompute_repairs_stats(
    client: AsyncClient,
    admin_user: User,
    listing: dict,
    db: AsyncSession,
):
    service_id = listing["service"]["id"]
    await post_review(client, service_id, rating="5", comment="great")
    await post_review(client, service_id, rating="3")
    await _corrupt(db, service_id)

    await login(client, admin_user.username)
    response = await client.post("/api/admin/recompute-ratings")
    assert response.status_code == 200
    assert response.json() == {"recomputed": 1}

    data = (await client.get(f"/api/services/{service_id}")).json()
    assert (data["average_rating"], data["rating_count"], data["review_count"]) == (4.0, 2, 1)


@pytest.mark.asyncio
async def test_recompute_with_no_services(client: AsyncClient, admin_user: User):
    await login(client, admin_user.username)
    response = await client.post("/api/admin/recompute-ratings")
    assert response.json() == {"recomputed": 0}


@pytest.mark.asyncio
async def test_run_recompute_uses_its_own_session(
    client: AsyncClient,
    listing: dict,
    db: AsyncSession,
    session_factory,
    monkeypatch,
):
    """The CLI/Celery runner repairs the same way as the endpoint."""
    service_id = listing["service"]["id"]
    await post_review(client, service_id, rating="2", comment="slow")
    await _corrupt(db, service_id)

    @asynccontextmanager
    async def fake_db_context():
        async with session_factory() as session:
            yield session
            await session.commit()

    async def fake_close_db():
        return None

    monkeypatch.setattr(maintenance, "get_db_context", fake_db_context)
    monkeypatch.setattr(maintenance, "close_db", fake_close_db)

    assert await maintenance.run_recompute() == 1

    data = (await client.get(f"/api/services/{service_id}")).json()
    assert (data["average_rating"], data["rating_count"], data["review_count"]) == (2.0, 1, 1)


def test_celery_task_reports_count(monkeypatch):
    async def fake_run():
        return 3

    monkeypatch.setattr(maintenance, "run_recompute", fake_run)
    assert maintenance.recompute_all_ratings() == {"recomputed": 3}
