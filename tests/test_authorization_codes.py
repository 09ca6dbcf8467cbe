"""Authorization codes: single use, expiry and concurrent exchange."""

import asyncio

import pytest
from structlog.testing import capture_logs

from authgate.core.errors import (
    InvalidClient,
    InvalidGrant,
    InvalidRedirect,
    InvalidRequest,
    StoreUnavailable,
)
from authgate.database.connection import (
    DEMO_CLIENT_ID,
    DEMO_REDIRECT_URI,
    DEMO_USER_ID,
    DatabaseConfig,
    create_engine,
    create_session_factory,
    get_db_context,
    store_guard,
)
from authgate.database.models import AuthorizationCode
from authgate.models.oauth import AuthorizationGrant
from authgate.services.authorization_codes import AuthorizationCodeManager

OTHER_REDIRECT = "http://127.0.0.1:9999/elsewhere"


async def _issue(code_manager, scope="read"):
    return await code_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID, DEMO_REDIRECT_URI, scope)


class TestIssue:
    @pytest.mark.asyncio
    async def test_issue_binds_client_user_and_redirect(self, code_manager, clock):
        record = await _issue(code_manager)

        assert len(record.code) >= 32
        assert record.client_id == DEMO_CLIENT_ID
        assert record.user_id == DEMO_USER_ID
        assert record.redirect_uri == DEMO_REDIRECT_URI
        assert (record.expires_at - clock()).total_seconds() == 300

    @pytest.mark.asyncio
    async def test_codes_are_unique(self, code_manager):
        codes = {(await _issue(code_manager)).code for _ in range(5)}
        assert len(codes) == 5

    @pytest.mark.asyncio
    async def test_unknown_client(self, code_manager):
        with pytest.raises(InvalidClient):
            await code_manager.issue("nobody", DEMO_USER_ID, DEMO_REDIRECT_URI)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "redirect_uri",
        [OTHER_REDIRECT, DEMO_REDIRECT_URI + "/", DEMO_REDIRECT_URI.upper()],
    )
    async def test_redirect_must_match_exactly(self, code_manager, redirect_uri):
        with pytest.raises(InvalidRedirect):
            await code_manager.issue(DEMO_CLIENT_ID, DEMO_USER_ID, redirect_uri)

    @pytest.mark.asyncio
    async def test_unknown_user(self, code_manager):
        with pytest.raises(InvalidRequest):
            await code_manager.issue(DEMO_CLIENT_ID, "ghost", DEMO_REDIRECT_URI)


class TestConsume:
    @pytest.mark.asyncio
    async def test_code_is_accepted_exactly_once(self, code_manager):
        record = await _issue(code_manager)

        grant = await code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)

        assert grant == AuthorizationGrant(user_id=DEMO_USER_ID, client_id=DEMO_CLIENT_ID, scope="read")
        with pytest.raises(InvalidGrant):
            await code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_code_valid_until_expiry(self, code_manager, clock):
        record = await _issue(code_manager)
        clock.advance(299)
        grant = await code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
        assert grant.user_id == DEMO_USER_ID

    @pytest.mark.asyncio
    async def test_expired_code_rejected_and_removed(self, code_manager, clock, seeded):
        record = await _issue(code_manager)
        clock.advance(300)

        with pytest.raises(InvalidGrant) as exc_info:
            await code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)

        assert exc_info.value.reason == "expired"
        async with get_db_context(seeded) as db:
            assert await db.get(AuthorizationCode, record.code) is None

    @pytest.mark.asyncio
    async def test_wrong_redirect_does_not_burn_code(self, code_manager):
        record = await _issue(code_manager)

        with pytest.raises(InvalidGrant) as exc_info:
            await code_manager.consume(record.code, DEMO_CLIENT_ID, OTHER_REDIRECT)
        assert exc_info.value.reason == "redirect_mismatch"

        grant = await code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
        assert grant.user_id == DEMO_USER_ID
        with pytest.raises(InvalidGrant):
            await code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)

    @pytest.mark.asyncio
    async def test_wrong_client(self, code_manager, client_registry):
        await client_registry.register_client("other_client", "other_secret", DEMO_REDIRECT_URI)
        record = await _issue(code_manager)

        with pytest.raises(InvalidGrant) as exc_info:
            await code_manager.consume(record.code, "other_client", DEMO_REDIRECT_URI)
        assert exc_info.value.reason == "client_mismatch"

    @pytest.mark.asyncio
    async def test_failure_causes_are_indistinguishable_to_callers(self, code_manager, clock):
        expired = await _issue(code_manager)
        consumed = await _issue(code_manager)
        clock.advance(1)
        await code_manager.consume(consumed.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
        clock.advance(300)

        errors = []
        for code in (expired.code, consumed.code, "never-issued"):
            with pytest.raises(InvalidGrant) as exc_info:
                await code_manager.consume(code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
            errors.append(exc_info.value.to_payload())

        assert errors[0] == errors[1] == errors[2]

    @pytest.mark.asyncio
    async def test_rejection_reason_is_logged(self, code_manager):
        with capture_logs() as logs:
            with pytest.raises(InvalidGrant):
                await code_manager.consume("never-issued", DEMO_CLIENT_ID, DEMO_REDIRECT_URI)

        rejected = [e for e in logs if e["event"] == "Authorization code rejected"]
        assert rejected and rejected[0]["reason"] == "absent_or_consumed"
        assert "never-issued" not in str(rejected[0])

    @pytest.mark.asyncio
    async def test_concurrent_exchange_succeeds_once(self, code_manager):
        record = await _issue(code_manager)

        results = await asyncio.gather(
            *(
                code_manager.consume(record.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
                for _ in range(4)
            ),
            return_exceptions=True,
        )

        assert sum(isinstance(r, AuthorizationGrant) for r in results) == 1
        assert sum(isinstance(r, InvalidGrant) for r in results) == 3

    @pytest.mark.asyncio
    async def test_purge_expired(self, code_manager, clock):
        await _issue(code_manager)
        clock.advance(200)
        live = await _issue(code_manager)
        clock.advance(100)

        assert await code_manager.purge_expired() == 1
        grant = await code_manager.consume(live.code, DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
        assert grant.user_id == DEMO_USER_ID


class TestStoreOutage:
    @pytest.mark.asyncio
    async def test_missing_schema_is_store_unavailable(self, tmp_path, clock):
        engine = create_engine(DatabaseConfig(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"))
        manager = AuthorizationCodeManager(create_session_factory(engine), clock=clock)
        try:
            with pytest.raises(StoreUnavailable) as exc_info:
                await manager.consume("code", DEMO_CLIENT_ID, DEMO_REDIRECT_URI)
        finally:
            await engine.dispose()

        assert exc_info.value.reason.startswith("database consume_code")

    @pytest.mark.asyncio
    async def test_guard_leaves_other_errors_alone(self):
        with pytest.raises(InvalidGrant):
            async with store_guard("consume_code"):
                raise InvalidGrant()
