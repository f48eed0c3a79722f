"""
M-Hike API: Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the entire test suite.
How:   Each HTTP test gets its own app, built with Settings that point at a
       temporary SQLite file and a temporary upload directory, driven through
       httpx's ASGITransport with the app lifespan running.

Fixture Hierarchy (all function-scoped):
    test_settings ── app ── client ── register / auth_headers
         │
         └── upload_dir (the directory the app stores files in)
    storage          AssetStorage on a temp directory (unit tests)
    png_bytes        small image payload
"""

import os
from pathlib import Path
from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Before any app import: mhike.main builds a default app at import time
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["ORPHAN_SWEEP_ON_STARTUP"] = "false"
os.environ["ORPHAN_SWEEP_INTERVAL_MINUTES"] = "0"

from mhike.config import Settings  # noqa: E402
from mhike.main import create_app  # noqa: E402
from mhike.services.storage import AssetStorage  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Payloads
# ══════════════════════════════════════════════════════════════════════════

# PNG signature + IHDR chunk header; enough to look like an image
PNG_HEADER = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_HEADER + b"\x00" * 256


def stored_files(directory: Path) -> List[str]:
    """Names of the regular files in an upload directory."""
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir() if p.is_file())


def name_of(reference: str) -> str:
    """`/uploads/<name>` → `<name>`"""
    return reference.rsplit("/", 1)[-1]


# ══════════════════════════════════════════════════════════════════════════
# Unit-level fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def storage(tmp_path) -> AssetStorage:
    """AssetStorage over a fresh directory, with a 1KB limit and sentinels."""
    store = AssetStorage(
        upload_dir=tmp_path / "uploads",
        url_prefix="/uploads",
        max_size=1024,
        sentinels=("default_avatar.png", "default_photo.png"),
    )
    store.ensure_directory()
    return store


# ══════════════════════════════════════════════════════════════════════════
# Application fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'm_hike_test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        jwt_secret="test-secret-not-real",
        bcrypt_rounds=4,
        orphan_sweep_on_startup=False,
        orphan_sweep_interval_minutes=0,
        log_level="WARNING",
    )


@pytest.fixture
def upload_dir(test_settings) -> Path:
    return test_settings.upload_path


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient talking to the app in-process.

    ASGITransport does not send lifespan events, so the lifespan context is
    entered here; it opens the database and the upload directory.
    """
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def register(client):
    """
    Returns an async helper that registers a user and returns the response.

    Usage:
        response = await register("alice", avatar=png_bytes)
    """

    async def _register(
        username: str,
        email: Optional[str] = None,
        password: str = "password123",
        avatar: Optional[bytes] = None,
        avatar_name: str = "me.png",
        avatar_type: str = "image/png",
        **extra: str,
    ):
        data = {
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
            **extra,
        }
        files = {"avatar": (avatar_name, avatar, avatar_type)} if avatar is not None else None
        return await client.post("/api/auth/register", data=data, files=files)

    return _register


@pytest.fixture
def auth_headers(register):
    """Returns an async helper: register a user and build its auth header."""

    async def _auth_headers(username: str, **kwargs) -> dict:
        response = await register(username, **kwargs)
        assert response.status_code == 201, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _auth_headers


@pytest.fixture
def hike_payload() -> dict:
    return {
        "name": "Snowdon Ranger Path",
        "location": "Snowdonia",
        "hikeDate": "2024-05-18",
        "parkingAvailable": True,
        "length": 13.5,
        "difficultyLevel": "Moderate",
        "elevationGain": 936,
    }
