"""
JWT Token Service
Generates signed access tokens with paired refresh records, validates them
against the revocation blacklist, rotates refresh tokens and revokes JTIs.

Lifecycle of one issuance lineage::

    Active --refresh--> Refreshed (old refresh consumed, new pair Active)
    Active --revoke---> Revoked   (JTI blacklisted until natural expiry)
    Active --time-----> Expired

Signed tokens stay stateless; the only per-token state is the blacklist
entry and the refresh record, both held in the session store with TTLs.
"""

from typing import Any, Dict, Optional

import structlog

from authgate.core.config import (
    DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS,
    DEFAULT_REFRESH_TOKEN_EXPIRY_SECONDS,
)
from authgate.core.errors import InvalidGrant, TokenExpired, TokenRevoked
from authgate.logging_config import redact
from authgate.models.tokens import Claims, RefreshRecord, RefreshStatus, TokenPair
from authgate.services.auth.tokens import decode_and_verify, encode
from authgate.services.session_store import SessionStore
from authgate.utils.date_utils import Clock, get_current_utc

logger = structlog.get_logger(__name__)


class TokenManager:
    """Orchestrates the signed-token codec and the session store."""

    def __init__(
        self,
        secret: str,
        store: SessionStore,
        *,
        clock: Clock = get_current_utc,
        access_ttl_seconds: int = DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS,
        refresh_ttl_seconds: int = DEFAULT_REFRESH_TOKEN_EXPIRY_SECONDS,
    ):
        self._secret = secret
        self.store = store
        self.clock = clock
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds

    def _sign_access(
        self, subject: str, email: str, extra: Optional[Dict[str, Any]] = None
    ) -> str:
        claims = Claims.issue(
            subject, email, self.clock(), self.access_ttl_seconds, extra=extra
        )
        return encode(claims, self._secret)

    async def generate(
        self,
        subject: str,
        email: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> TokenPair:
        """Issue an access token and a fresh refresh record as one pair."""
        access_token = self._sign_access(subject, email, extra)
        record = RefreshRecord.new(subject, email, self.clock(), self.refresh_ttl_seconds)
        await self.store.put_refresh(record, self.refresh_ttl_seconds)

        logger.info("Token pair issued", subject=subject, refresh_id=redact(record.refresh_id))
        return TokenPair(
            access_token=access_token,
            refresh_token=record.refresh_id,
            expires_in=self.access_ttl_seconds,
        )

    async def validate(self, access_token: str) -> Claims:
        """Verify signature and expiry, then consult the blacklist.

        The blacklist is only read for tokens that verified, so a forged
        token never learns anything about revocation state.
        """
        claims = decode_and_verify(access_token, self._secret, now=self.clock())
        if await self.store.is_blacklisted(claims.jti):
            raise TokenRevoked(reason="jti blacklisted")
        return claims

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate *refresh_token*: consume it and issue a new pair.

        Concurrent calls with the same token succeed at most once; losers
        get ``InvalidGrant``.  The previous access token is left to expire.
        """
        if not refresh_token:
            raise InvalidGrant(reason="empty refresh token")

        now = self.clock()
        record = await self.store.get_refresh(refresh_token)
        if record is None:
            logger.info("Refresh rejected", refresh_id=redact(refresh_token), reason="absent")
            raise InvalidGrant(reason="refresh token absent")
        if record.status == RefreshStatus.CONSUMED:
            logger.warning(
                "Consumed refresh token presented again",
                subject=record.subject,
                refresh_id=redact(refresh_token),
            )
            raise InvalidGrant(reason="refresh token already consumed")
        if not record.is_usable(now):
            logger.info("Refresh rejected", refresh_id=redact(refresh_token), reason="expired")
            raise InvalidGrant(reason="refresh token expired")

        successor = RefreshRecord.new(record.subject, record.email, now, self.refresh_ttl_seconds)
        rotated = await self.store.rotate_refresh(
            record.refresh_id, successor, self.refresh_ttl_seconds
        )
        if not rotated:
            logger.warning(
                "Refresh rotation lost race",
                subject=record.subject,
                refresh_id=redact(refresh_token),
            )
            raise InvalidGrant(reason="refresh token consumed concurrently")

        access_token = self._sign_access(record.subject, record.email)
        logger.info(
            "Refresh token rotated",
            subject=record.subject,
            old_refresh_id=redact(record.refresh_id),
            new_refresh_id=redact(successor.refresh_id),
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=successor.refresh_id,
            expires_in=self.access_ttl_seconds,
        )

    async def revoke(self, access_token: str) -> Optional[str]:
        """Blacklist the token's JTI for the rest of its lifetime.

        The signature must verify.  Revoking an already-expired token is a
        no-op and returns None; otherwise the revoked JTI is returned.
        Repeating a revoke simply rewrites the same entry.
        """
        now = self.clock()
        try:
            claims = decode_and_verify(access_token, self._secret, now=now)
        except TokenExpired:
            logger.info("Revoke of expired token ignored")
            return None

        ttl = claims.remaining_seconds(now)
        if ttl <= 0:
            return None
        await self.store.blacklist(claims.jti, ttl)
        logger.info("Access token revoked", subject=claims.sub, jti=redact(claims.jti), ttl=ttl)
        return claims.jti

    async def revoke_refresh(self, refresh_token: str) -> bool:
        """Delete a refresh record. Unknown tokens are not an error."""
        if not refresh_token:
            return False
        removed = await self.store.delete_refresh(refresh_token)
        if removed:
            logger.info("Refresh token revoked", refresh_id=redact(refresh_token))
        return removed
