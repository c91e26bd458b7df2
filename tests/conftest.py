"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET and bot API key are set for test runs.
# This must happen before any import of skystand.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("API_KEY", "bot-shared-secret-for-tests")

from dataclasses import dataclass, field  # noqa: E402

import bcrypt  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from skystand.config import SkystandConfig  # noqa: E402
from skystand.database.engine import init_db  # noqa: E402
from skystand.database.models import User  # noqa: E402
from skystand.errors import UpstreamAssetError  # noqa: E402
from skystand.services.asset_store import StoredAsset  # noqa: E402

TEST_PASSWORD = "correct-horse"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Skystand tables.

    Uses StaticPool so all threads share the same in-memory database
    (route handlers and background tasks run on worker threads).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


def make_user(
    engine: Engine,
    username: str = "pilot",
    *,
    roles: list[str] | None = None,
    active: bool = True,
    password: str = TEST_PASSWORD,
    email: str | None = None,
) -> dict:
    """Insert a user directly (cheap bcrypt cost) and return its public dict."""
    from skystand.services.auth_service import serialize_user

    with Session(engine, expire_on_commit=False) as session:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=4)).decode(),
            roles=roles or ["user"],
            is_active=active,
        )
        session.add(user)
        session.commit()
        return serialize_user(user)


def make_token(user: dict) -> str:
    from skystand.api.deps import create_access_token

    return create_access_token(user, ttl_hours=1)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# CDN double
# ---------------------------------------------------------------------------
@dataclass
class FakeAssetStore:
    """Records calls instead of talking to Cloudinary."""

    uploads: list[str] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    fail_upload: bool = False
    fail_delete: bool = False

    async def upload(self, content: bytes, public_id: str) -> StoredAsset:
        if self.fail_upload:
            raise UpstreamAssetError()
        self.uploads.append(public_id)
        return StoredAsset(
            url=f"https://res.cloudinary.com/demo/image/upload/v1/{public_id}.png",
            public_id=public_id,
        )

    async def delete(self, public_id: str) -> None:
        self.deletes.append(public_id)
        if self.fail_delete:
            raise UpstreamAssetError("boom")


@pytest.fixture
def asset_store() -> FakeAssetStore:
    return FakeAssetStore()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------
@pytest.fixture
def client(db_engine, asset_store):
    """TestClient bound to the in-memory database and the fake CDN."""
    from fastapi.testclient import TestClient

    from skystand.api.deps import get_asset_store, get_config, get_engine
    from skystand.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_asset_store] = lambda: asset_store
    app.dependency_overrides[get_config] = lambda: SkystandConfig()
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db_engine) -> dict:
    return make_user(db_engine, "admin", roles=["admin"])


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth(make_token(admin))


@pytest.fixture
def user_headers(db_engine) -> dict:
    return auth(make_token(make_user(db_engine, "member", roles=["user"])))
