"""
User lookup and password authentication for the consent step
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from authgate.core.errors import InvalidRequest
from authgate.database.connection import get_db_context, store_guard
from authgate.database.models import User
from authgate.services.auth.password import hash_password, verify_password
from authgate.utils.date_utils import generate_token_id

logger = structlog.get_logger(__name__)


class UserService:
    """Account records are read-only here apart from creation."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create_user(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        if not username or not password:
            raise InvalidRequest("username and password are required.")

        password_hash = await hash_password(password)
        async with store_guard("create_user"):
            async with get_db_context(self.session_factory) as db:
                existing = await db.execute(select(User).where(User.username == username))
                if existing.scalars().first() is not None:
                    raise InvalidRequest("Username is already taken.")
                user = User(
                    user_id=user_id or f"user_{generate_token_id()}",
                    username=username,
                    email=email,
                    password_hash=password_hash,
                )
                db.add(user)

        logger.info("User created", user_id=user.user_id)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        async with store_guard("get_user"):
            async with get_db_context(self.session_factory) as db:
                return await db.get(User, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with store_guard("get_user_by_username"):
            async with get_db_context(self.session_factory) as db:
                result = await db.execute(select(User).where(User.username == username))
                return result.scalars().first()

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user for valid credentials, otherwise None."""
        if not username or not password:
            return None
        user = await self.get_user_by_username(username)
        if user is None or not await verify_password(password, user.password_hash):
            logger.info("User authentication failed", username=username)
            return None
        return user
