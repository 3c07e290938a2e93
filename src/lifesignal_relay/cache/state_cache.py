"""Time-bounded cache of owner state read from the registry ledger.

The cache only saves reads. Nothing in the relay treats a cached record as
authoritative: every mirror write re-reads the registry first.
"""

import asyncio
import time
from dataclasses import replace
from typing import Callable, Dict, Optional

from ..domain.models import OwnerRecord, normalize_address
from ..utils.logging_config import get_logger

logger = get_logger('cache')

DEFAULT_TTL_SECONDS = 5 * 60


class StateCache:
    """Address-keyed OwnerRecord store with a single lock and a wall-clock TTL."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, OwnerRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, address: str) -> Optional[OwnerRecord]:
        """Return a copy of the cached record, or None on a miss."""
        key = normalize_address(address)
        async with self._lock:
            record = self._entries.get(key)
            if record is None:
                return None
            return replace(record)

    async def put(self, address: str, record: OwnerRecord) -> None:
        """Store a record, overwriting whatever is there (last write wins)."""
        key = normalize_address(address)
        stamped = replace(record, last_update=self._clock())
        async with self._lock:
            self._entries[key] = stamped
        logger.debug(f"Cached owner {key}: grace={record.grace_interval_seconds} deceased={record.is_deceased}")

    async def invalidate(self, address: str) -> bool:
        key = normalize_address(address)
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def evict_expired(self) -> int:
        """Remove entries older than the TTL.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        async with self._lock:
            expired = [
                key for key, record in self._entries.items()
                if now - record.last_update > self.ttl_seconds
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f"Cache cleanup completed: {len(expired)} evicted, {len(self._entries)} retained")
        return len(expired)

    def is_fresh(self, record: OwnerRecord) -> bool:
        return self._clock() - record.last_update <= self.ttl_seconds

    def size(self) -> int:
        return len(self._entries)

    async def snapshot(self) -> Dict[str, OwnerRecord]:
        async with self._lock:
            return {key: replace(record) for key, record in self._entries.items()}
