"""
FastAPI application factory and configuration
"""

import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from authgate import __version__
from authgate.core.config import Settings, get_settings
from authgate.core.error_handlers import register_error_handlers
from authgate.database.connection import (
    DatabaseConfig,
    DatabaseManager,
    create_engine,
    create_session_factory,
)
from authgate.logging_config import bind_request_context
from authgate.middleware.auth import jwt_auth_middleware
from authgate.routes import register_all_routers
from authgate.services.access_tokens import AccessTokenManager
from authgate.services.authorization_codes import AuthorizationCodeManager
from authgate.services.client_registry import ClientRegistry
from authgate.services.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from authgate.services.token_manager import TokenManager
from authgate.services.user_management import UserService
from authgate.utils.date_utils import Clock, get_current_utc

logger = structlog.get_logger(__name__)


def build_session_store(settings: Settings, clock: Clock = get_current_utc) -> SessionStore:
    """Create the configured revocation/session store."""
    if settings.session_store_backend == "memory":
        logger.warning("Using in-memory session store; state is not shared between processes")
        return InMemorySessionStore(clock=clock)
    return RedisSessionStore.from_url(settings.redis_url)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    settings: Settings = app.state.settings
    logger.info("Starting credential service", version=__version__)

    db_manager: DatabaseManager = app.state.db_manager
    if settings.db_auto_create:
        await db_manager.create_all_tables()
    if settings.db_seed_demo:
        await db_manager.seed_demo_data(app.state.session_factory)
    if not await db_manager.check_connection():
        logger.warning("Database not reachable at startup")

    store = app.state.session_store
    if await store.ping():
        logger.info("Session store connected", backend=type(store).__name__)
    else:
        logger.warning("Session store not reachable at startup", backend=type(store).__name__)
    if isinstance(store, InMemorySessionStore):
        store.start_reaper(settings.reaper_interval_seconds)

    yield

    logger.info("Shutting down credential service")
    await store.close()
    if app.state.owns_engine:
        await db_manager.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[async_sessionmaker] = None,
    session_store: Optional[SessionStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not passed in are built from *settings*; the engine is only
    disposed on shutdown when it was created here.
    """
    settings = settings or get_settings()
    clock = clock or get_current_utc

    owns_engine = session_factory is None
    if session_factory is None:
        session_factory = create_session_factory(create_engine(DatabaseConfig.from_env()))
    engine = session_factory.kw["bind"]
    if session_store is None:
        session_store = build_session_store(settings, clock)

    app = FastAPI(
        title="authgate",
        version=__version__,
        description="Authorization codes, opaque access tokens and signed JWT lifecycle",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.owns_engine = owns_engine
    app.state.session_factory = session_factory
    app.state.db_manager = DatabaseManager(engine)
    app.state.session_store = session_store
    app.state.client_registry = ClientRegistry(session_factory)
    app.state.user_service = UserService(session_factory)
    app.state.code_manager = AuthorizationCodeManager(
        session_factory,
        clock=clock,
        code_ttl_seconds=settings.auth_code_expiry_seconds,
    )
    app.state.access_token_manager = AccessTokenManager(
        session_factory,
        clock=clock,
        token_ttl_seconds=settings.opaque_token_expiry_seconds,
    )
    app.state.token_manager = TokenManager(
        settings.jwt_secret,
        session_store,
        clock=clock,
        access_ttl_seconds=settings.access_token_expiry_seconds,
        refresh_ttl_seconds=settings.refresh_token_expiry_seconds,
    )

    setup_middleware(app)
    register_error_handlers(app)
    register_all_routers(app)
    return app


def setup_middleware(app: FastAPI):
    """Configure middleware (the last one registered runs first)"""

    @app.middleware("http")
    async def jwt_auth_wrapper(request: Request, call_next):
        return await jwt_auth_middleware(request, call_next)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        structlog.contextvars.clear_contextvars()
        request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        bind_request_context(request_id=request.state.request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response
