"""
Revocation/session store: JTI blacklist and refresh-token records

Every entry carries a time-to-live and disappears on its own, so nothing
here ever needs explicit cleanup.  Two implementations share one narrow
protocol:

* ``RedisSessionStore`` - the production store, shared by every instance.
  Refresh rotation runs as a Lua script so the compare-and-swap from
  ``active`` to ``consumed`` and the write of the successor are atomic.
* ``InMemorySessionStore`` - single-process substitute for tests and local
  development, with a background reaper approximating Redis expiry.

Keys:
    refresh_token:<refresh_id>  -> RefreshRecord JSON
    blacklist:jti:<jti>         -> "revoked"
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from authgate.core.errors import StoreUnavailable
from authgate.logging_config import redact
from authgate.models.tokens import RefreshRecord, RefreshStatus
from authgate.utils.date_utils import Clock, get_current_utc

logger = structlog.get_logger(__name__)

REFRESH_PREFIX = "refresh_token:"
BLACKLIST_PREFIX = "blacklist:jti:"
REVOKED_MARKER = "revoked"

# KEYS[1] old record, KEYS[2] successor
# ARGV[1] successor JSON, ARGV[2] rotation time (epoch s), ARGV[3] successor TTL (s)
_ROTATE_LUA = """
local raw = redis.call('GET', KEYS[1])
if not raw then
  return 0
end
local rec = cjson.decode(raw)
if rec['status'] ~= 'active' then
  return 0
end
if tonumber(rec['expires_at']) <= tonumber(ARGV[2]) then
  return 0
end
rec['status'] = 'consumed'
local pttl = redis.call('PTTL', KEYS[1])
if pttl > 0 then
  redis.call('SET', KEYS[1], cjson.encode(rec), 'PX', pttl)
else
  redis.call('DEL', KEYS[1])
end
redis.call('SET', KEYS[2], ARGV[1], 'EX', tonumber(ARGV[3]))
return 1
"""


@runtime_checkable
class SessionStore(Protocol):
    """Minimal contract for blacklist and refresh-record storage."""

    async def blacklist(self, jti: str, ttl_seconds: int) -> None: ...
    async def is_blacklisted(self, jti: str) -> bool: ...

    async def put_refresh(self, record: RefreshRecord, ttl_seconds: int) -> None: ...
    async def get_refresh(self, refresh_id: str) -> Optional[RefreshRecord]: ...
    async def rotate_refresh(
        self, old_refresh_id: str, successor: RefreshRecord, ttl_seconds: int
    ) -> bool: ...
    async def delete_refresh(self, refresh_id: str) -> bool: ...

    async def ping(self) -> bool: ...
    async def close(self) -> None: ...


def _parse_record(raw: Optional[str], refresh_id: str) -> Optional[RefreshRecord]:
    if not raw:
        return None
    try:
        return RefreshRecord.model_validate_json(raw)
    except ValidationError:
        logger.error("Corrupt refresh record", refresh_id=redact(refresh_id))
        return None


# --------------------------------------------------------------------------- #
# Redis implementation                                                        #
# --------------------------------------------------------------------------- #


class RedisSessionStore:
    """Redis-backed session store (``decode_responses=True`` client expected)."""

    def __init__(self, client: redis.Redis):
        self.client = client
        self._rotate_script = client.register_script(_ROTATE_LUA)

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 2.0, **kwargs) -> "RedisSessionStore":
        """Connect lazily to *url*.

        A finite socket timeout turns a stuck Redis into a ``TimeoutError``,
        which surfaces as a retryable ``StoreUnavailable``.
        """
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            **kwargs,
        )
        return cls(client)

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except (RedisError, OSError) as e:
            logger.error("Session store failure", operation=operation, error=str(e))
            raise StoreUnavailable(reason=f"redis {operation}: {type(e).__name__}") from e

    async def blacklist(self, jti: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        async with self._guard("blacklist"):
            await self.client.set(f"{BLACKLIST_PREFIX}{jti}", REVOKED_MARKER, ex=ttl_seconds)

    async def is_blacklisted(self, jti: str) -> bool:
        async with self._guard("is_blacklisted"):
            return bool(await self.client.exists(f"{BLACKLIST_PREFIX}{jti}"))

    async def put_refresh(self, record: RefreshRecord, ttl_seconds: int) -> None:
        async with self._guard("put_refresh"):
            await self.client.set(
                f"{REFRESH_PREFIX}{record.refresh_id}",
                record.model_dump_json(),
                ex=ttl_seconds,
            )

    async def get_refresh(self, refresh_id: str) -> Optional[RefreshRecord]:
        async with self._guard("get_refresh"):
            raw = await self.client.get(f"{REFRESH_PREFIX}{refresh_id}")
        return _parse_record(raw, refresh_id)

    async def rotate_refresh(
        self, old_refresh_id: str, successor: RefreshRecord, ttl_seconds: int
    ) -> bool:
        async with self._guard("rotate_refresh"):
            result = await self._rotate_script(
                keys=[
                    f"{REFRESH_PREFIX}{old_refresh_id}",
                    f"{REFRESH_PREFIX}{successor.refresh_id}",
                ],
                args=[
                    successor.model_dump_json(),
                    successor.created_at,
                    ttl_seconds,
                ],
            )
        return int(result or 0) == 1

    async def delete_refresh(self, refresh_id: str) -> bool:
        async with self._guard("delete_refresh"):
            return bool(await self.client.delete(f"{REFRESH_PREFIX}{refresh_id}"))

    async def ping(self) -> bool:
        try:
            await self.client.ping()
            return True
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        await self.client.aclose()


# --------------------------------------------------------------------------- #
# In-memory implementation                                                    #
# --------------------------------------------------------------------------- #


class InMemorySessionStore:
    """Process-local session store with TTL emulation.

    Expiry is evaluated against the injected clock on every access; the
    optional reaper task only bounds memory.
    """

    def __init__(self, clock: Clock = get_current_utc):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._reaper: Optional[asyncio.Task] = None

    def _now(self) -> float:
        return self._clock().timestamp()

    def _get_live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._now():
            self._data.pop(key, None)
            return None
        return value

    def _set(self, key: str, value: str, ttl_seconds: float) -> None:
        self._data[key] = (value, self._now() + ttl_seconds)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._now()
        expired = [k for k, (_, exp) in self._data.items() if exp <= now]
        for k in expired:
            self._data.pop(k, None)
        return len(expired)

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime of a raw key, or None when absent/expired."""
        if self._get_live(key) is None:
            return None
        return self._data[key][1] - self._now()

    async def blacklist(self, jti: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        async with self._lock:
            self._set(f"{BLACKLIST_PREFIX}{jti}", REVOKED_MARKER, ttl_seconds)

    async def is_blacklisted(self, jti: str) -> bool:
        return self._get_live(f"{BLACKLIST_PREFIX}{jti}") is not None

    async def put_refresh(self, record: RefreshRecord, ttl_seconds: int) -> None:
        async with self._lock:
            self._set(f"{REFRESH_PREFIX}{record.refresh_id}", record.model_dump_json(), ttl_seconds)

    async def get_refresh(self, refresh_id: str) -> Optional[RefreshRecord]:
        return _parse_record(self._get_live(f"{REFRESH_PREFIX}{refresh_id}"), refresh_id)

    async def rotate_refresh(
        self, old_refresh_id: str, successor: RefreshRecord, ttl_seconds: int
    ) -> bool:
        old_key = f"{REFRESH_PREFIX}{old_refresh_id}"
        async with self._lock:
            current = _parse_record(self._get_live(old_key), old_refresh_id)
            if current is None or current.status != RefreshStatus.ACTIVE:
                return False
            if current.expires_at <= successor.created_at:
                return False
            # Keep the consumed record until its original expiry so reuse is visible
            _, old_expiry = self._data[old_key]
            self._data[old_key] = (current.consumed().model_dump_json(), old_expiry)
            self._set(f"{REFRESH_PREFIX}{successor.refresh_id}", successor.model_dump_json(), ttl_seconds)
            return True

    async def delete_refresh(self, refresh_id: str) -> bool:
        async with self._lock:
            key = f"{REFRESH_PREFIX}{refresh_id}"
            live = self._get_live(key) is not None
            self._data.pop(key, None)
            return live

    def start_reaper(self, interval_seconds: float = 60.0) -> None:
        """Periodically purge expired entries in the background."""
        if self._reaper is not None and not self._reaper.done():
            return

        async def _reap() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                removed = self.purge_expired()
                if removed:
                    logger.debug("Reaped expired session entries", removed=removed)

        self._reaper = asyncio.create_task(_reap())

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None
