"""
Core configuration and settings for the credential service.

Values are read from the environment (a ``.env`` file is loaded by the
entry point).  Token lifetimes default to the values the rest of the
system assumes: 15-minute access JWTs, 7-day refresh records, 5-minute
authorization codes and 1-hour opaque access tokens.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

# Fixed signing algorithm family (symmetric HMAC only)
ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32

DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS = 900
DEFAULT_REFRESH_TOKEN_EXPIRY_SECONDS = 7 * 24 * 3600
DEFAULT_AUTH_CODE_EXPIRY_SECONDS = 300
DEFAULT_OPAQUE_TOKEN_EXPIRY_SECONDS = 3600


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: expected an integer, got {raw!r}") from None


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes"}


def _env_list(name: str, default: str) -> List[str]:
    return [p.strip() for p in os.getenv(name, default).split(",") if p.strip()]


def get_environment() -> str:
    """Get current environment"""
    return os.getenv("ENVIRONMENT", "production")


def is_production() -> bool:
    """Check if running in production"""
    return get_environment() == "production"


@dataclass(frozen=True)
class Settings:
    """Immutable service configuration."""

    jwt_secret: str
    access_token_expiry_seconds: int = DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS
    refresh_token_expiry_seconds: int = DEFAULT_REFRESH_TOKEN_EXPIRY_SECONDS
    auth_code_expiry_seconds: int = DEFAULT_AUTH_CODE_EXPIRY_SECONDS
    opaque_token_expiry_seconds: int = DEFAULT_OPAQUE_TOKEN_EXPIRY_SECONDS
    redis_url: str = "redis://localhost:6379"
    session_store_backend: str = "redis"
    reaper_interval_seconds: int = 60
    protected_path_prefixes: List[str] = field(
        default_factory=lambda: ["/auth/protected"]
    )
    db_auto_create: bool = False
    db_seed_demo: bool = False
    host: str = "127.0.0.1"
    port: int = 8083

    def __post_init__(self) -> None:
        if not self.jwt_secret or len(self.jwt_secret) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters (256 bits). "
                "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        for name in (
            "access_token_expiry_seconds",
            "refresh_token_expiry_seconds",
            "auth_code_expiry_seconds",
            "opaque_token_expiry_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.session_store_backend not in {"redis", "memory"}:
            raise ValueError(
                "SESSION_STORE_BACKEND must be 'redis' or 'memory', "
                f"got {self.session_store_backend!r}"
            )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", ""),
            access_token_expiry_seconds=_env_int(
                "JWT_ACCESS_TOKEN_EXPIRY_SECONDS", DEFAULT_ACCESS_TOKEN_EXPIRY_SECONDS
            ),
            refresh_token_expiry_seconds=_env_int(
                "JWT_REFRESH_TOKEN_EXPIRY_SECONDS", DEFAULT_REFRESH_TOKEN_EXPIRY_SECONDS
            ),
            auth_code_expiry_seconds=_env_int(
                "AUTH_CODE_EXPIRY_SECONDS", DEFAULT_AUTH_CODE_EXPIRY_SECONDS
            ),
            opaque_token_expiry_seconds=_env_int(
                "OPAQUE_TOKEN_EXPIRY_SECONDS", DEFAULT_OPAQUE_TOKEN_EXPIRY_SECONDS
            ),
            redis_url=os.getenv("REDIS_URL", "").strip() or "redis://localhost:6379",
            session_store_backend=os.getenv("SESSION_STORE_BACKEND", "redis").lower(),
            reaper_interval_seconds=_env_int("SESSION_REAPER_INTERVAL_SECONDS", 60),
            protected_path_prefixes=_env_list("PROTECTED_PATH_PREFIXES", "/auth/protected"),
            db_auto_create=_env_bool("DB_AUTO_CREATE"),
            db_seed_demo=_env_bool("DB_SEED_DEMO"),
            host=os.getenv("HOST", "127.0.0.1"),
            port=_env_int("PORT", 8083),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
