"""
Pytest configuration and shared fixtures.

Tests that touch storage get a fresh SQLite file database; the environment is
set before the application modules are imported because settings are
read once at import time.
"""
import os
import tempfile
from typing import AsyncGenerator, Awaitable, Callable

_TEST_DB_DIR = tempfile.mkdtemp(prefix="gallery-api-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db"
os.environ["ENVIRONMENT"] = "DEV"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_DIR"] = ""
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["DEFAULT_INVITATION_EXPIRY_DAYS"] = "30"
os.environ["PERMISSION_POLICY"] = "intersect"

import pytest
from httpx import AsyncClient, ASGITransport

from gallery_api.database import Base, async_session_maker, engine, get_db_context
import gallery_api.models  # noqa: F401
from gallery_api.models.gallery import Gallery
from gallery_api.models.invitation import Invitation
from gallery_api.models.share import ShareLink
from gallery_api.models.user import User
from gallery_api.schemas.gallery import GalleryCreate, PhotoCreate
from gallery_api.schemas.invitation import InvitationCreate
from gallery_api.schemas.share import ShareLinkCreate
from gallery_api.services.gallery import GalleryService
from gallery_api.services.invitation import InvitationService
from gallery_api.services.share import ShareLinkService
from gallery_api.utils.prometheus_metrics import ready
from gallery_api.utils.security import create_access_token, hash_password


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def db_session(database):
    """
    A session for direct service calls.

    SQLite takes the write lock when a transaction begins, so commit (or
    close) before handing control to another session or the HTTP client.
    """
    async with async_session_maker() as session:
        yield session


@pytest.fixture
def fetch(database) -> Callable[..., Awaitable]:
    """Re-read a row in its own short transaction."""
    async def _fetch(model, pk):
        async with get_db_context() as session:
            return await session.get(model, pk)
    return _fetch


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def app():
    from gallery_api.main import app as fastapi_app
    ready.set(1)
    return fastapi_app


@pytest.fixture
async def client(app, database) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Authentication Fixtures
# =============================================================================

@pytest.fixture
async def photographer(database) -> User:
    async with get_db_context() as session:
        user = User(
            email="photographer@example.com",
            username="photographer",
            hashed_password=hash_password("correct-horse-battery"),
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)
    return user


@pytest.fixture
def auth_headers(photographer) -> dict:
    return {"Authorization": f"Bearer {create_access_token(photographer.id)}"}


@pytest.fixture
async def other_photographer(database) -> User:
    async with get_db_context() as session:
        user = User(
            email="other@example.com",
            username="other",
            hashed_password=hash_password("another-password"),
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)
    return user


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_gallery(photographer) -> Callable[..., Awaitable[Gallery]]:
    async def _make(owner: User = None, photos: int = 2, **fields) -> Gallery:
        fields.setdefault("title", "Wedding")
        async with get_db_context() as session:
            service = GalleryService(session)
            gallery = await service.create_gallery(owner or photographer, GalleryCreate(**fields))
            if photos:
                await service.add_photos(
                    gallery,
                    [
                        PhotoCreate(filename=f"img_{i}.jpg", url=f"https://cdn.example.com/img_{i}.jpg")
                        for i in range(photos)
                    ],
                )
        return gallery
    return _make


@pytest.fixture
def make_share_link(database) -> Callable[..., Awaitable[ShareLink]]:
    async def _make(gallery: Gallery, **fields) -> ShareLink:
        fields.setdefault("name", "Client link")
        async with get_db_context() as session:
            return await ShareLinkService(session).create_share_link(gallery, ShareLinkCreate(**fields))
    return _make


@pytest.fixture
def make_invitation(database) -> Callable[..., Awaitable[Invitation]]:
    async def _make(gallery: Gallery, now=None, **fields) -> Invitation:
        async with get_db_context() as session:
            return await InvitationService(session).create_invitation(
                gallery, InvitationCreate(gallery_id=gallery.id, **fields), now=now
            )
    return _make
