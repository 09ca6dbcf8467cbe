"""Shared pytest fixtures for the credential service tests.

Every test gets its own file-backed SQLite database (so concurrent sessions
really race inside SQLite), an in-memory session store and a fake clock that
only moves when a test advances it.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

# Cheap bcrypt cost for tests; read when the password module is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import httpx  # noqa: E402
import pytest  # noqa: E402

from authgate.core.app import create_app  # noqa: E402
from authgate.core.config import Settings  # noqa: E402
from authgate.database.connection import (  # noqa: E402
    DatabaseConfig,
    DatabaseManager,
    create_engine,
    create_session_factory,
)
from authgate.services.access_tokens import AccessTokenManager  # noqa: E402
from authgate.services.authorization_codes import AuthorizationCodeManager  # noqa: E402
from authgate.services.client_registry import ClientRegistry  # noqa: E402
from authgate.services.session_store import InMemorySessionStore  # noqa: E402
from authgate.services.token_manager import TokenManager  # noqa: E402
from authgate.services.user_management import UserService  # noqa: E402

TEST_SECRET = "test-signing-secret-0123456789-abcdefghij"


class FakeClock:
    """Deterministic clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret=TEST_SECRET, session_store_backend="memory")


@pytest.fixture
async def engine(tmp_path):
    config = DatabaseConfig(f"sqlite+aiosqlite:///{tmp_path / 'authgate.db'}")
    engine = create_engine(config)
    await DatabaseManager(engine).create_all_tables()
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def seeded(engine, session_factory):
    """Database with the demo client and demo user."""
    await DatabaseManager(engine).seed_demo_data(session_factory)
    return session_factory


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def token_manager(store, clock) -> TokenManager:
    return TokenManager(TEST_SECRET, store, clock=clock)


@pytest.fixture
def code_manager(seeded, clock) -> AuthorizationCodeManager:
    return AuthorizationCodeManager(seeded, clock=clock)


@pytest.fixture
def access_token_manager(seeded, clock) -> AccessTokenManager:
    return AccessTokenManager(seeded, clock=clock)


@pytest.fixture
def client_registry(seeded) -> ClientRegistry:
    return ClientRegistry(seeded)


@pytest.fixture
def user_service(seeded) -> UserService:
    return UserService(seeded)


@pytest.fixture
def app(settings, seeded, store, clock):
    return create_app(settings, session_factory=seeded, session_store=store, clock=clock)


@pytest.fixture
async def http_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
