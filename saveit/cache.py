"""
Identity-isolated cache for saved-page listings.

Several people may sign in on the same device, so every cached payload is
keyed by the identity that fetched it and the identity is checked again on
every read. A mismatched entry is deleted, not just skipped.

Store failures never reach callers of the public methods: read() degrades
to a miss and write()/invalidate() to no-ops. The ``try_*`` variants expose
the underlying CacheResult so the failure can be inspected.

Persisted shape::

    {"savedPages_cache_<identityId>": {
        "identityId": "<identityId>",
        "response": {<listing payload>},
        "cachedAt": <epoch-ms>}}
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from .protocol import KeyValueStoreProtocol
from .types import utc_now_ms

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "savedPages_cache"

# Global key written by versions before per-identity isolation
LEGACY_CACHE_KEY = "savedPages_cache"

DEFAULT_TTL_MS = 5 * 60 * 1000

T = TypeVar("T")


class CacheError(Exception):
    """A key/value store operation failed."""

    def __init__(self, operation: str, key: Optional[str], cause: BaseException):
        self.operation = operation
        self.key = key
        self.cause = cause
        where = f" ({key})" if key else ""
        super().__init__(f"Cache {operation} failed{where}: {cause}")


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """Outcome of a cache operation: a value, or the error that prevented it."""
    value: Optional[T] = None
    error: Optional[CacheError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CacheEntry:
    """One cached listing, owned by a single identity."""
    identity_id: str
    payload: Any
    cached_at_ms: int

    def to_dict(self) -> dict:
        return {
            "identityId": self.identity_id,
            "response": self.payload,
            "cachedAt": self.cached_at_ms,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CacheEntry":
        return cls(
            identity_id=d.get("identityId") or "",
            payload=d.get("response"),
            cached_at_ms=int(d.get("cachedAt") or 0),
        )


class IdentityIsolatedCache:
    """
    Per-identity listing cache with expiry, over an async key/value store.

    Args:
        store: The key/value store to persist entries in
        ttl_ms: Maximum entry age in milliseconds; older entries are misses
        clock: Returns the current time in epoch milliseconds
        key_prefix: Prefix for per-identity keys
    """

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        *,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = utc_now_ms,
        key_prefix: str = CACHE_KEY_PREFIX,
    ):
        self._store = store
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._key_prefix = key_prefix
        # Serializes store access with identity switches
        self._lock = asyncio.Lock()

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def key_for(self, identity_id: str) -> str:
        return f"{self._key_prefix}_{identity_id}"

    # -------------------------------------------------------------------------
    # Result-returning operations
    # -------------------------------------------------------------------------

    async def try_read(self, identity_id: Optional[str]) -> CacheResult[Any]:
        """Read the payload cached for an identity.

        A miss is ``CacheResult(value=None)``; a store failure carries
        ``error``.
        """
        if not identity_id:
            logger.debug("No identity, skipping cache read")
            return CacheResult()
        async with self._lock:
            return await self._read_locked(identity_id)

    async def _read_locked(self, identity_id: str) -> CacheResult[Any]:
        key = self.key_for(identity_id)
        try:
            raw = (await self._store.get(key)).get(key)
        except Exception as e:
            return CacheResult(error=CacheError("read", key, e))

        if raw is None:
            logger.debug("No cache entry for identity %s", identity_id)
            return CacheResult()
        if not isinstance(raw, dict):
            logger.warning("Discarding malformed cache entry %s", key)
            return await self._discard_locked(key)

        entry = CacheEntry.from_dict(raw)
        if entry.identity_id != identity_id:
            logger.warning(
                "Cache identity mismatch for %s (stored %r); clearing entry",
                key, entry.identity_id,
            )
            return await self._discard_locked(key)

        age = self._clock() - entry.cached_at_ms
        if age > self._ttl_ms:
            logger.debug("Cache entry for %s expired (%.0fs old)", identity_id, age / 1000)
            return await self._discard_locked(key)

        logger.debug("Using cached listing for %s (%.0fs old)", identity_id, age / 1000)
        return CacheResult(value=entry.payload)

    async def _discard_locked(self, key: str) -> CacheResult[Any]:
        """Delete an unusable entry. The read is a miss either way."""
        try:
            await self._store.remove(key)
        except Exception as e:
            return CacheResult(error=CacheError("remove", key, e))
        return CacheResult()

    async def try_write(self, identity_id: Optional[str], payload: Any) -> CacheResult[None]:
        """Overwrite the identity's slot with ``payload``."""
        if not identity_id:
            logger.debug("No identity, skipping cache write")
            return CacheResult()
        async with self._lock:
            key = self.key_for(identity_id)
            entry = CacheEntry(identity_id, payload, self._clock())
            try:
                await self._store.set({key: entry.to_dict()})
            except Exception as e:
                return CacheResult(error=CacheError("write", key, e))
        logger.debug("Cache updated for %s", identity_id)
        return CacheResult()

    async def try_invalidate(self, identity_id: Optional[str]) -> CacheResult[None]:
        """Delete the identity's slot so the next read is a full fetch."""
        if not identity_id:
            return CacheResult()
        async with self._lock:
            return await self._invalidate_locked(identity_id)

    async def _invalidate_locked(self, identity_id: str) -> CacheResult[None]:
        key = self.key_for(identity_id)
        try:
            await self._store.remove(key)
        except Exception as e:
            return CacheResult(error=CacheError("invalidate", key, e))
        logger.debug("Cache invalidated for %s", identity_id)
        return CacheResult()

    async def try_clear_all(self) -> CacheResult[None]:
        """Delete every entry regardless of identity."""
        async with self._lock:
            try:
                await self._store.clear()
            except Exception as e:
                return CacheResult(error=CacheError("clear", None, e))
        logger.info("All cache entries cleared")
        return CacheResult()

    async def try_purge_legacy(self) -> CacheResult[None]:
        """Remove the pre-isolation global entry. Safe to repeat."""
        async with self._lock:
            try:
                await self._store.remove(LEGACY_CACHE_KEY)
            except Exception as e:
                return CacheResult(error=CacheError("purge", LEGACY_CACHE_KEY, e))
        return CacheResult()

    # -------------------------------------------------------------------------
    # Public boundary: failures become misses / no-ops
    # -------------------------------------------------------------------------

    async def read(self, identity_id: Optional[str]) -> Any:
        """Cached payload for ``identity_id``, or None."""
        result = await self.try_read(identity_id)
        if not result.ok:
            logger.warning("%s", result.error)
        return result.value

    async def write(self, identity_id: Optional[str], payload: Any) -> None:
        result = await self.try_write(identity_id, payload)
        if not result.ok:
            logger.warning("%s", result.error)

    async def invalidate(self, identity_id: Optional[str]) -> None:
        result = await self.try_invalidate(identity_id)
        if not result.ok:
            logger.warning("%s", result.error)

    async def clear_all(self) -> None:
        result = await self.try_clear_all()
        if not result.ok:
            logger.warning("%s", result.error)

    async def purge_legacy(self) -> None:
        result = await self.try_purge_legacy()
        if not result.ok:
            logger.warning("%s", result.error)

    async def switch_identity(self, identity_id: Optional[str]) -> None:
        """Handle an identity change as one step.

        The new identity's slot is invalidated while holding the lock, so
        no write can land between the switch and the invalidation.
        """
        if not identity_id:
            return
        async with self._lock:
            result = await self._invalidate_locked(identity_id)
        if not result.ok:
            logger.warning("%s", result.error)
        logger.info("Identity switched; cache slot reset for %s", identity_id)
