"""
Signed-token and refresh-record models
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from authgate.utils.date_utils import generate_token_id, generate_token_value, to_timestamp

# Names owned by the fixed-shape claims; custom attributes may not shadow them
REGISTERED_CLAIMS = frozenset({"sub", "email", "iat", "exp", "jti"})


class Claims(BaseModel):
    """Payload carried inside a signed access token.

    Immutable once built; a new token always means a new ``Claims``.
    Custom attributes live in the explicit ``extra`` map and are flattened
    into the JWT payload next to the registered claims.
    """

    model_config = ConfigDict(frozen=True)

    sub: str
    email: str
    iat: int
    exp: int
    jti: str
    extra: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_shape(self) -> "Claims":
        if self.exp <= self.iat:
            raise ValueError("exp must be strictly after iat")
        shadowed = REGISTERED_CLAIMS.intersection(self.extra)
        if shadowed:
            raise ValueError(f"extra claims may not override {sorted(shadowed)}")
        return self

    @classmethod
    def issue(
        cls,
        subject: str,
        email: str,
        now: datetime,
        lifetime_seconds: int,
        extra: Dict[str, Any] | None = None,
    ) -> "Claims":
        """Build claims for a fresh token with a new random ``jti``."""
        iat = to_timestamp(now)
        return cls(
            sub=subject,
            email=email,
            iat=iat,
            exp=iat + lifetime_seconds,
            jti=generate_token_id(),
            extra=dict(extra or {}),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sub": self.sub,
            "email": self.email,
            "iat": self.iat,
            "exp": self.exp,
            "jti": self.jti,
        }
        payload.update(self.extra)
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Claims":
        extra = {k: v for k, v in payload.items() if k not in REGISTERED_CLAIMS}
        return cls(
            sub=payload.get("sub"),
            email=payload.get("email"),
            iat=payload.get("iat"),
            exp=payload.get("exp"),
            jti=payload.get("jti"),
            extra=extra,
        )

    def remaining_seconds(self, now: datetime) -> int:
        return self.exp - to_timestamp(now)


class RefreshStatus(str, Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"


class RefreshRecord(BaseModel):
    """Server-side state behind an opaque refresh token."""

    model_config = ConfigDict(frozen=True)

    refresh_id: str
    subject: str
    email: str
    created_at: int
    expires_at: int
    status: RefreshStatus = RefreshStatus.ACTIVE

    @classmethod
    def new(cls, subject: str, email: str, now: datetime, lifetime_seconds: int) -> "RefreshRecord":
        created = to_timestamp(now)
        return cls(
            refresh_id=generate_token_value(),
            subject=subject,
            email=email,
            created_at=created,
            expires_at=created + lifetime_seconds,
        )

    def is_usable(self, now: datetime) -> bool:
        return self.status == RefreshStatus.ACTIVE and to_timestamp(now) < self.expires_at

    def consumed(self) -> "RefreshRecord":
        return self.model_copy(update={"status": RefreshStatus.CONSUMED})


class TokenPair(BaseModel):
    """Access + refresh credential, always issued together."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
