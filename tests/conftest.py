"""
tests/conftest.py
Shared fixtures: per-test SQLite database, HTTP client wired to the app,
users, listings and login helpers.
"""

import os
import tempfile

# Settings are read at import time; configure before any app module loads
_TEST_ROOT = tempfile.mkdtemp(prefix="spotsure-tests-")
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/app.db"
os.environ["APP_ENV"] = "test"
os.environ["DEBUG"] = "false"
os.environ["MEDIA_ROOT"] = f"{_TEST_ROOT}/media"

from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient, Response  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from config.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from main import app  # noqa: E402
from shared.models.models import User, UserRole  # noqa: E402
from shared.storage.images import LocalImageStore, get_image_store  # noqa: E402
from shared.utils.security import hash_password  # noqa: E402

TEST_PASSWORD = "secret123"

# Smallest valid PNG header + IHDR; content is never decoded
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
)


# ── Database ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def image_store(tmp_path) -> LocalImageStore:
    return LocalImageStore(tmp_path / "media", timeout=5.0)


# ── HTTP client ───────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, image_store):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_store] = lambda: image_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Users ─────────────────────────────────────────────────────

async def _make_user(db: AsyncSession, username: str, role: UserRole) -> User:
    user = User(
        username=username,
        display_name=username.title(),
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    return await _make_user(db, "asha", UserRole.USER)


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    return await _make_user(db, "admin", UserRole.ADMIN)


async def login(client: AsyncClient, username: str, password: str = TEST_PASSWORD) -> dict:
    """Log in through the API; the session cookie stays on the client."""
    response = await client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


# ── Listings ──────────────────────────────────────────────────

async def create_listing(
    client: AsyncClient,
    image: Optional[bytes] = None,
    **fields: str,
) -> dict:
    """POST a listing through the API. Returns the JSON body (service + delete_code)."""
    form = {
        "name": "Joe's Clinic",
        "category": "Doctor",
        "city": "Pune",
        "pincode": "411001",
        "address": "12 MG Road",
    }
    form.update(fields)
    files = {"image": ("photo.png", image, "image/png")} if image else None
    response = await client.post("/api/services", data=form, files=files)
    assert response.status_code == 201, response.text
    return response.json()


async def post_review(client: AsyncClient, service_id: str, **fields) -> Response:
    return await client.post(f"/api/services/{service_id}/reviews", data=fields)


@pytest_asyncio.fixture
async def listing(client: AsyncClient) -> dict:
    return await create_listing(client)
