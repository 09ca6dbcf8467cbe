"""Opaque access tokens: issue, validate, expiry and revocation."""

import pytest

from authgate.core.errors import InvalidToken
from authgate.database.connection import DEMO_CLIENT_ID, DEMO_USER_ID, get_db_context
from authgate.database.models import AccessToken


class TestAccessTokenManager:
    @pytest.mark.asyncio
    async def test_issue_and_validate(self, access_token_manager, clock):
        issued = await access_token_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID, "profile")

        info = await access_token_manager.validate(issued.token)

        assert info.user_id == DEMO_USER_ID
        assert info.client_id == DEMO_CLIENT_ID
        assert info.scope == "profile"
        assert (info.expires_at - clock()).total_seconds() == 3600

    @pytest.mark.asyncio
    async def test_unknown_token(self, access_token_manager):
        with pytest.raises(InvalidToken):
            await access_token_manager.validate("nope")

    @pytest.mark.asyncio
    async def test_expired_token_is_deleted_on_read(self, access_token_manager, clock, seeded):
        issued = await access_token_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID)
        clock.advance(3600)

        with pytest.raises(InvalidToken):
            await access_token_manager.validate(issued.token)

        async with get_db_context(seeded) as db:
            assert await db.get(AccessToken, issued.token) is None

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, access_token_manager):
        issued = await access_token_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID)

        assert await access_token_manager.revoke(issued.token) is True
        assert await access_token_manager.revoke(issued.token) is False
        assert await access_token_manager.revoke("never-issued") is False
        with pytest.raises(InvalidToken):
            await access_token_manager.validate(issued.token)

    @pytest.mark.asyncio
    async def test_purge_expired(self, access_token_manager, clock):
        await access_token_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID)
        clock.advance(1800)
        live = await access_token_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID)
        clock.advance(1800)

        assert await access_token_manager.purge_expired() == 1
        assert (await access_token_manager.validate(live.token)).user_id == DEMO_USER_ID
