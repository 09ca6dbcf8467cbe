"""
Authorization Code Manager

Issues one-time authorization codes and exchanges them exactly once.

Consumption is a single conditional ``DELETE ... RETURNING``: the row is only
removed when code, client, redirect URI and expiry all match, so two
concurrent exchanges of the same code race inside the database and at most
one of them sees a row come back.  A mismatching client or redirect URI does
not burn the code.

Every failure surfaces as the same ``InvalidGrant``; the precise cause is
diagnosed afterwards and only written to the log.
"""

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from authgate.core.config import DEFAULT_AUTH_CODE_EXPIRY_SECONDS
from authgate.core.errors import InvalidClient, InvalidGrant, InvalidRedirect, InvalidRequest
from authgate.database.connection import get_db_context, store_guard
from authgate.database.models import AuthorizationCode, OAuthClient, User
from authgate.logging_config import redact
from authgate.models.oauth import AuthorizationGrant
from authgate.utils.date_utils import Clock, ensure_utc, generate_token_value, get_current_utc

logger = structlog.get_logger(__name__)


class AuthorizationCodeManager:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        clock: Clock = get_current_utc,
        code_ttl_seconds: int = DEFAULT_AUTH_CODE_EXPIRY_SECONDS,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.code_ttl = timedelta(seconds=code_ttl_seconds)

    async def issue(
        self,
        client_id: str,
        user_id: str,
        redirect_uri: str,
        scope: Optional[str] = None,
    ) -> AuthorizationCode:
        """Create a code bound to client, user and redirect URI.

        Raises:
            InvalidClient: the client is not registered.
            InvalidRedirect: ``redirect_uri`` differs from the registered URI.
        """
        now = self.clock()
        async with store_guard("issue_code"):
            async with get_db_context(self.session_factory) as db:
                client = await db.get(OAuthClient, client_id)
                if client is None:
                    raise InvalidClient(reason="unknown client")
                # Exact string comparison, no normalisation
                if redirect_uri != client.redirect_uri:
                    raise InvalidRedirect(reason="redirect_uri mismatch")
                if await db.get(User, user_id) is None:
                    raise InvalidRequest("Unknown user.")

                record = AuthorizationCode(
                    code=generate_token_value(),
                    client_id=client_id,
                    user_id=user_id,
                    redirect_uri=redirect_uri,
                    scope=scope,
                    expires_at=now + self.code_ttl,
                    created_at=now,
                )
                db.add(record)

        logger.info(
            "Authorization code issued",
            client_id=client_id,
            user_id=user_id,
            code=redact(record.code),
        )
        return record

    async def consume(self, code: str, client_id: str, redirect_uri: str) -> AuthorizationGrant:
        """Atomically redeem *code*; succeeds at most once per code."""
        if not code:
            raise InvalidGrant(reason="empty code")

        now = self.clock()
        async with store_guard("consume_code"):
            async with get_db_context(self.session_factory) as db:
                stmt = (
                    delete(AuthorizationCode)
                    .where(
                        AuthorizationCode.code == code,
                        AuthorizationCode.client_id == client_id,
                        AuthorizationCode.redirect_uri == redirect_uri,
                        AuthorizationCode.expires_at > now,
                    )
                    .returning(AuthorizationCode.user_id, AuthorizationCode.scope)
                    .execution_options(synchronize_session=False)
                )
                row = (await db.execute(stmt)).first()
                if row is None:
                    reason = await self._diagnose(db, code, client_id, redirect_uri, now)

        if row is None:
            logger.info(
                "Authorization code rejected",
                client_id=client_id,
                code=redact(code),
                reason=reason,
            )
            raise InvalidGrant(reason=reason)

        logger.info("Authorization code consumed", client_id=client_id, user_id=row.user_id)
        return AuthorizationGrant(user_id=row.user_id, client_id=client_id, scope=row.scope)

    async def _diagnose(self, db, code, client_id, redirect_uri, now) -> str:
        existing = await db.get(AuthorizationCode, code)
        if existing is None:
            return "absent_or_consumed"
        if ensure_utc(existing.expires_at) <= now:
            await db.delete(existing)
            return "expired"
        if existing.client_id != client_id:
            return "client_mismatch"
        if existing.redirect_uri != redirect_uri:
            return "redirect_mismatch"
        # Row appeared valid on re-read: a concurrent exchange won the race
        return "absent_or_consumed"

    async def purge_expired(self) -> int:
        """Delete every expired code; returns the number removed."""
        now = self.clock()
        async with store_guard("purge_codes"):
            async with get_db_context(self.session_factory) as db:
                result = await db.execute(
                    delete(AuthorizationCode)
                    .where(AuthorizationCode.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
        removed = result.rowcount or 0
        if removed:
            logger.info("Expired authorization codes purged", removed=removed)
        return removed
