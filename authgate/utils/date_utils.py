"""
Clock and identifier helpers shared by every credential component.

All expiry decisions depend on an injected ``Clock`` (a zero-argument
callable returning an aware UTC ``datetime``) instead of calling
``datetime.now()`` directly, so tests can move time forward deterministically.
"""

import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def get_current_utc() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    Returns:
        Current UTC datetime
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return *dt* as an aware UTC datetime (naive values are assumed UTC).

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns, so every value read from the database passes through here.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_timestamp(dt: datetime) -> int:
    """Whole seconds since the UNIX epoch."""
    return int(ensure_utc(dt).timestamp())


def generate_token_value(nbytes: int = 32) -> str:
    """Unguessable URL-safe identifier used for codes, opaque tokens and refresh ids."""
    return secrets.token_urlsafe(nbytes)


def generate_token_id() -> str:
    """Shorter random identifier used as a JWT ``jti``."""
    return secrets.token_urlsafe(16)
