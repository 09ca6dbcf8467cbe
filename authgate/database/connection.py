"""
Relational store for clients, users, authorization codes and opaque tokens.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) for local runs and
the test suite.
"""

import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import event, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from authgate.core.config import _env_bool, _env_int
from authgate.core.errors import StoreUnavailable
from authgate.database.models import Base, OAuthClient, User

logger = structlog.get_logger(__name__)

# Demo fixtures matching the reference deployment's .env
DEMO_CLIENT_ID = "demo_client"
DEMO_CLIENT_SECRET = "demo_secret"
DEMO_REDIRECT_URI = "http://127.0.0.1:8081/callback"
DEMO_USER_ID = "user_001"
DEMO_USERNAME = "demo"
DEMO_PASSWORD = "demo123"


def _default_url() -> str:
    return "postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}".format(
        user=os.getenv("PGUSER", "authgate"),
        password=os.getenv("PGPASSWORD", ""),
        host=os.getenv("PGHOST", "localhost"),
        port=os.getenv("PGPORT", "5432"),
        db=os.getenv("PGDATABASE", "authgate"),
    )


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the relational store lives and how its pool behaves."""

    url: str
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    command_timeout: int = 10
    echo: bool = False
    serverless: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            url=os.getenv("DATABASE_URL") or _default_url(),
            pool_size=_env_int("DB_POOL_SIZE", 10),
            max_overflow=_env_int("DB_MAX_OVERFLOW", 20),
            pool_timeout=_env_int("DB_POOL_TIMEOUT", 30),
            pool_recycle=_env_int("DB_POOL_RECYCLE", 1800),
            command_timeout=_env_int("DB_COMMAND_TIMEOUT", 10),
            echo=_env_bool("DB_ECHO_SQL"),
            serverless=_env_bool("SERVERLESS"),
        )

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    def engine_options(self) -> dict:
        if self.is_sqlite:
            return {"echo": self.echo}

        options = {
            "echo": self.echo,
            "pool_pre_ping": True,
            "pool_recycle": self.pool_recycle,
            "connect_args": {
                "server_settings": {"application_name": "authgate"},
                "command_timeout": self.command_timeout,
            },
        }
        if self.serverless:
            options["poolclass"] = NullPool
        else:
            options.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
            )
        return options

    def masked_url(self) -> str:
        return make_url(self.url).render_as_string(hide_password=True)


def create_engine(config: Optional[DatabaseConfig] = None) -> AsyncEngine:
    """Create the async engine; SQLite connections get foreign keys enabled."""
    config = config or DatabaseConfig.from_env()
    engine = create_async_engine(config.url, **config.engine_options())
    logger.info("Database engine created", url=config.masked_url())

    if config.is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by every store-backed manager."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def get_db_context(
    session_factory: async_sessionmaker,
) -> AsyncGenerator[AsyncSession, None]:
    """Unit of work: commit on success, roll back on any error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Schema setup, connectivity check and demo seeding for one engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def create_all_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Credential tables ensured", tables=sorted(Base.metadata.tables))

    async def check_connection(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error("Database unreachable", error=str(e))
            return False
        return True

    async def health(self) -> str:
        return "healthy" if await self.check_connection() else "unhealthy"

    async def seed_demo_data(self, session_factory: async_sessionmaker) -> bool:
        """Insert the demo client and user if they are missing.

        Returns True when anything was inserted.
        """
        from authgate.services.auth.password import hash_password

        inserted = False
        async with get_db_context(session_factory) as db:
            if await db.get(OAuthClient, DEMO_CLIENT_ID) is None:
                db.add(
                    OAuthClient(
                        client_id=DEMO_CLIENT_ID,
                        client_secret_hash=await hash_password(DEMO_CLIENT_SECRET),
                        redirect_uri=DEMO_REDIRECT_URI,
                        name="Demo Client",
                    )
                )
                inserted = True
            existing = await db.execute(select(User).where(User.username == DEMO_USERNAME))
            if existing.scalars().first() is None:
                db.add(
                    User(
                        user_id=DEMO_USER_ID,
                        username=DEMO_USERNAME,
                        email="demo@example.com",
                        password_hash=await hash_password(DEMO_PASSWORD),
                    )
                )
                inserted = True
        if inserted:
            logger.info("Demo client and user seeded", client_id=DEMO_CLIENT_ID)
        return inserted


@asynccontextmanager
async def store_guard(operation: str) -> AsyncGenerator[None, None]:
    """Translate driver/ORM failures into a retryable ``StoreUnavailable``."""
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        logger.error("Persistent store failure", operation=operation, error=str(e))
        raise StoreUnavailable(reason=f"database {operation}: {type(e).__name__}") from e
