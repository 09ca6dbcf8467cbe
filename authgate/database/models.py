"""
Database models for the authorization server

Logical contract only: every entity is addressed by its primary key and the
code/token tables support atomic delete-if-present.  Types are kept portable
so the same metadata runs on PostgreSQL (asyncpg) and SQLite (aiosqlite).
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthClient(Base):
    __tablename__ = "clients"

    client_id = Column(String(255), primary_key=True)
    client_secret_hash = Column(String(255), nullable=False)
    # Exactly one registered redirect URI, compared byte-for-byte
    redirect_uri = Column(Text, nullable=False)
    name = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<OAuthClient {self.client_id}>"


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(255), primary_key=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255))
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<User {self.username}>"


class AuthorizationCode(Base):
    __tablename__ = "authorization_codes"

    code = Column(String(255), primary_key=True)
    client_id = Column(
        String(255), ForeignKey("clients.client_id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(255), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    redirect_uri = Column(Text, nullable=False)
    scope = Column(Text)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_authorization_codes_expires_at", "expires_at"),)


class AccessToken(Base):
    __tablename__ = "access_tokens"

    token = Column(String(255), primary_key=True)
    client_id = Column(
        String(255), ForeignKey("clients.client_id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(255), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    scope = Column(Text)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("idx_access_tokens_expires_at", "expires_at"),)
