"""Client registry and user service lookups."""

import pytest

from authgate.core.errors import InvalidClient, InvalidRequest
from authgate.database.connection import (
    DEMO_CLIENT_ID,
    DEMO_CLIENT_SECRET,
    DEMO_PASSWORD,
    DEMO_USER_ID,
    DEMO_USERNAME,
)


class TestClientRegistry:
    @pytest.mark.asyncio
    async def test_authenticate_demo_client(self, client_registry):
        client = await client_registry.authenticate_client(DEMO_CLIENT_ID, DEMO_CLIENT_SECRET)
        assert client.client_id == DEMO_CLIENT_ID

    @pytest.mark.asyncio
    async def test_secret_is_stored_hashed(self, client_registry):
        client = await client_registry.get_client(DEMO_CLIENT_ID)
        assert client.client_secret_hash != DEMO_CLIENT_SECRET
        assert client.client_secret_hash.startswith("$2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "client_id,secret",
        [(DEMO_CLIENT_ID, "wrong"), (DEMO_CLIENT_ID, ""), ("unknown", DEMO_CLIENT_SECRET)],
    )
    async def test_bad_credentials(self, client_registry, client_id, secret):
        with pytest.raises(InvalidClient):
            await client_registry.authenticate_client(client_id, secret)

    @pytest.mark.asyncio
    async def test_register_and_authenticate(self, client_registry):
        await client_registry.register_client("c1", "s1", "https://app.example/cb", name="App")
        client = await client_registry.authenticate_client("c1", "s1")
        assert client.redirect_uri == "https://app.example/cb"

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, client_registry):
        with pytest.raises(InvalidRequest):
            await client_registry.register_client(DEMO_CLIENT_ID, "x", "https://app.example/cb")


class TestUserService:
    @pytest.mark.asyncio
    async def test_authenticate(self, user_service):
        user = await user_service.authenticate(DEMO_USERNAME, DEMO_PASSWORD)
        assert user.user_id == DEMO_USER_ID

    @pytest.mark.asyncio
    async def test_wrong_password(self, user_service):
        assert await user_service.authenticate(DEMO_USERNAME, "nope") is None
        assert await user_service.authenticate("nobody", DEMO_PASSWORD) is None

    @pytest.mark.asyncio
    async def test_create_user(self, user_service):
        user = await user_service.create_user("alice", "pw", email="alice@example.com")
        assert user.user_id.startswith("user_")
        assert (await user_service.get_user(user.user_id)).username == "alice"
        with pytest.raises(InvalidRequest):
            await user_service.create_user("alice", "other")
