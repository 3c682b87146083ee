"""
Corroboration result cache: Local Memory (always) → Redis (optional shared tier).

Keyed by upload fingerprint, holds only the corroboration indication text.
Entries leave the local tier on whichever comes first: capacity eviction
(oldest insertion first) or TTL expiry measured from insertion.

One instance is built in the FastAPI lifespan and injected into the
corroboration pipeline. The Redis client is read at call-time via the
integration module so it picks up the instance initialized during startup.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from app.config import settings
from app.integrations import redis_client as redis_module

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "corroboration:"


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    text: str
    inserted_at: float


class ResultCache:
    def __init__(
        self,
        max_size: int = settings.corroboration_cache_max_size,
        ttl_sec: float = settings.corroboration_cache_ttl_sec,
        clock: Callable[[], float] = time.monotonic,
        use_redis: bool = True,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._use_redis = use_redis
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        # Held only for dict mutations, never across I/O.
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at < self.ttl_sec

    def get(self, fingerprint: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is not None:
                if self._is_fresh(entry, now):
                    logger.info(f"[CACHE] Local Memory HIT for key: {fingerprint[:12]}")
                    return entry.text
                logger.info(f"[CACHE] Local Memory EXPIRED for key: {fingerprint[:12]}")
                del self._entries[fingerprint]

        rc = redis_module.client if self._use_redis else None
        if rc:
            try:
                data = rc.get(f"{REDIS_KEY_PREFIX}{fingerprint}")
            except Exception as e:
                logger.warning(f"Redis get failed: {e}")
                return None
            if data:
                logger.info(f"[CACHE] Redis HIT for key: {fingerprint[:12]}")
                return data.decode() if isinstance(data, bytes) else str(data)

        logger.info(f"[CACHE] MISS for key: {fingerprint[:12]}")
        return None

    def put(self, fingerprint: str, text: str) -> None:
        entry = CacheEntry(fingerprint=fingerprint, text=text, inserted_at=self._clock())
        with self._lock:
            # Re-insert moves the key to the newest end so insertion order stays sorted by time.
            self._entries.pop(fingerprint, None)
            self._entries[fingerprint] = entry
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"[CACHE] Evicted oldest key: {evicted[:12]}")

        rc = redis_module.client if self._use_redis else None
        if rc:
            try:
                rc.set(f"{REDIS_KEY_PREFIX}{fingerprint}", text, ex=int(self.ttl_sec))
            except Exception as e:
                logger.warning(f"Redis set failed: {e}")

    def purge_expired(self) -> int:
        """Drop expired local entries. Returns how many were removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            while self._entries:
                oldest = next(iter(self._entries.values()))
                if self._is_fresh(oldest, now):
                    break
                self._entries.popitem(last=False)
                removed += 1
        if removed:
            logger.info(f"[CACHE] Sweep removed {removed} expired entries")
        return removed
