"""
OAuth client registry

Clients are immutable after registration and re-read from the database on
every lookup.  Secrets are stored as bcrypt hashes and checked in a worker
thread.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from authgate.core.errors import InvalidClient, InvalidRequest
from authgate.database.connection import get_db_context, store_guard
from authgate.database.models import OAuthClient
from authgate.services.auth.password import hash_password, verify_password

logger = structlog.get_logger(__name__)


class ClientRegistry:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_client(self, client_id: str) -> Optional[OAuthClient]:
        if not client_id:
            return None
        async with store_guard("get_client"):
            async with get_db_context(self.session_factory) as db:
                return await db.get(OAuthClient, client_id)

    async def register_client(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        name: Optional[str] = None,
    ) -> OAuthClient:
        """Register a client with exactly one redirect URI."""
        if not client_id or not client_secret or not redirect_uri:
            raise InvalidRequest("client_id, client_secret and redirect_uri are required.")

        secret_hash = await hash_password(client_secret)
        async with store_guard("register_client"):
            async with get_db_context(self.session_factory) as db:
                if await db.get(OAuthClient, client_id) is not None:
                    raise InvalidRequest("Client is already registered.")
                client = OAuthClient(
                    client_id=client_id,
                    client_secret_hash=secret_hash,
                    redirect_uri=redirect_uri,
                    name=name,
                )
                db.add(client)

        logger.info("Client registered", client_id=client_id)
        return client

    async def authenticate_client(self, client_id: str, client_secret: str) -> OAuthClient:
        """Return the client when the secret matches, else raise ``InvalidClient``."""
        client = await self.get_client(client_id)
        if client is None:
            logger.info("Client authentication failed", client_id=client_id, reason="unknown_client")
            raise InvalidClient(reason="unknown client")
        if not client_secret or not await verify_password(client_secret, client.client_secret_hash):
            logger.info("Client authentication failed", client_id=client_id, reason="bad_secret")
            raise InvalidClient(reason="secret mismatch")
        return client
