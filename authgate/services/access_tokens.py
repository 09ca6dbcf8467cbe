"""
Opaque Access Token Manager

Database-backed bearer tokens for the authorization server's own resource
endpoints.  No rotation: a token lives until it expires or is revoked.
"""

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from authgate.core.config import DEFAULT_OPAQUE_TOKEN_EXPIRY_SECONDS
from authgate.core.errors import InvalidToken
from authgate.database.connection import get_db_context, store_guard
from authgate.database.models import AccessToken
from authgate.logging_config import redact
from authgate.models.oauth import AccessTokenInfo
from authgate.utils.date_utils import Clock, ensure_utc, generate_token_value, get_current_utc

logger = structlog.get_logger(__name__)


class AccessTokenManager:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        clock: Clock = get_current_utc,
        token_ttl_seconds: int = DEFAULT_OPAQUE_TOKEN_EXPIRY_SECONDS,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.token_ttl_seconds = token_ttl_seconds

    async def issue(self, client_id: str, user_id: str, scope: Optional[str] = None) -> AccessToken:
        now = self.clock()
        record = AccessToken(
            token=generate_token_value(),
            client_id=client_id,
            user_id=user_id,
            scope=scope,
            expires_at=now + timedelta(seconds=self.token_ttl_seconds),
            created_at=now,
        )
        async with store_guard("issue_access_token"):
            async with get_db_context(self.session_factory) as db:
                db.add(record)

        logger.info("Access token issued", client_id=client_id, user_id=user_id)
        return record

    async def validate(self, token: str) -> AccessTokenInfo:
        """Resolve *token* to its owner; expired rows are deleted on read."""
        if not token:
            raise InvalidToken(reason="empty token")

        now = self.clock()
        async with store_guard("validate_access_token"):
            async with get_db_context(self.session_factory) as db:
                record = await db.get(AccessToken, token)
                if record is None:
                    raise InvalidToken(reason="unknown token")
                expires_at = ensure_utc(record.expires_at)
                if expires_at <= now:
                    await db.delete(record)
                    expired = True
                else:
                    expired = False

        if expired:
            logger.debug("Expired access token removed", token=redact(token))
            raise InvalidToken(reason="expired")

        return AccessTokenInfo(
            user_id=record.user_id,
            client_id=record.client_id,
            scope=record.scope,
            expires_at=expires_at,
        )

    async def revoke(self, token: str) -> bool:
        """Delete *token* if present. Returns whether a row was removed."""
        if not token:
            return False
        async with store_guard("revoke_access_token"):
            async with get_db_context(self.session_factory) as db:
                result = await db.execute(
                    delete(AccessToken)
                    .where(AccessToken.token == token)
                    .execution_options(synchronize_session=False)
                )
        removed = bool(result.rowcount)
        if removed:
            logger.info("Access token revoked", token=redact(token))
        return removed

    async def purge_expired(self) -> int:
        now = self.clock()
        async with store_guard("purge_access_tokens"):
            async with get_db_context(self.session_factory) as db:
                result = await db.execute(
                    delete(AccessToken)
                    .where(AccessToken.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount or 0
