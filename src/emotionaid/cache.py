"""
Expiring cache on top of the encrypted KV store.

Entries are stored as CacheEntry envelopes under ``cache_<key>``.
The cache is advisory: an expired entry and a missing entry look the
same to the caller, and expired entries are evicted on read.

Expiry is an absolute UTC wall-clock timestamp so it survives restarts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import CorruptDataError
from .models import CacheEntry, utcnow
from .storage import EncryptedStore

logger = logging.getLogger("emotionaid.cache")

CACHE_PREFIX = "cache_"


class CacheLayer:
    """Generic TTL cache persisted through an EncryptedStore.

    Args:
        store: Backing KV store.
        clock: Returns the current aware UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: EncryptedStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def put(self, key: str, value: Any, ttl: Optional[timedelta]) -> CacheEntry:
        """Cache a value.

        Args:
            key: Logical cache key (stored as ``cache_<key>``).
            value: Any JSON-serializable value or pydantic model.
            ttl: Time to live; None never expires.

        Returns:
            The stored CacheEntry.
        """
        expiry = self._clock() + ttl if ttl is not None else None
        entry = CacheEntry(data=value, expiry=expiry)
        await self._store.save(CACHE_PREFIX + key, entry)
        logger.debug("Cached %s (expiry=%s)", key, expiry)
        return entry

    async def get(self, key: str, type_: Any = None) -> Any:
        """Return the cached value, or None if absent or expired.

        Expired entries are deleted before returning None.
        """
        store_key = CACHE_PREFIX + key
        entry = await self._store.load(store_key, CacheEntry)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            logger.info("Cache expired for key: %s", key)
            await self._store.remove(store_key)
            return None

        if type_ is None:
            return entry.data
        try:
            return TypeAdapter(type_).validate_python(entry.data)
        except ValidationError as exc:
            raise CorruptDataError(store_key, f"unexpected shape: {exc}") from exc

    async def clear(self, prefix: str = "") -> int:
        """Remove cached entries whose logical key starts with prefix.

        Only ``cache_`` records are enumerated; other store keys are
        never touched.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for store_key in await self._store.keys(CACHE_PREFIX + prefix):
            if await self._store.remove(store_key):
                removed += 1
        logger.info("Cleared %d cache entries for prefix: %r", removed, prefix)
        return removed
