"""
TTL cache with a durable mirror for the core portfolio sections.
"""

import asyncio
import json
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, FrozenSet, Optional, TYPE_CHECKING

from shared.errors import StorageError
from shared.logging import get_logger
from .storage import DurableStorage, MemoryStorage

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 300
CLEANUP_INTERVAL_SECONDS = 300
STALE_SUFFIX = "_stale"
STORAGE_PREFIX = "cache_"

PERSISTENT_KEYS: FrozenSet[str] = frozenset({
    "projects-list",
    "contact-details",
    "about-content",
    "hero-content",
})


def stale_key(key: str) -> str:
    """Return the long-lived fallback slot for a logical key."""
    return f"{key}{STALE_SUFFIX}"


def is_stale_key(key: str) -> bool:
    return key.endswith(STALE_SUFFIX)


def logical_key(key: str) -> str:
    """Strip the stale suffix, if any."""
    return key[: -len(STALE_SUFFIX)] if is_stale_key(key) else key


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its write and expiry times in epoch milliseconds."""

    data: Any
    timestamp: int
    expiry: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expiry

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        payload = json.loads(raw)
        return cls(
            data=payload["data"],
            timestamp=int(payload["timestamp"]),
            expiry=int(payload["expiry"]),
        )


class TTLCache:
    """In-memory TTL cache mirrored to durable storage for allowlisted keys.

    Expired entries are evicted lazily on ``get``; ``cleanup`` sweeps the
    rest and runs periodically once ``start_cleanup`` is called. Durable
    storage is best-effort: failures are logged and the cache keeps working
    from memory.
    """

    def __init__(
        self,
        storage: Optional[DurableStorage] = None,
        *,
        persistent_keys: FrozenSet[str] = PERSISTENT_KEYS,
        clock: Callable[[], float] = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.persistent_keys = frozenset(persistent_keys)
        self.metrics = metrics
        self.logger = get_logger("portfolio.cache")
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._stats = {
            "hits": 0,
            "misses": 0,
            "expirations": 0,
            "durable_loads": 0,
            "storage_errors": 0,
        }

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_persistent(self, key: str) -> bool:
        return logical_key(key) in self.persistent_keys

    def set(self, key: str, data: Any, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        """Store ``data`` under ``key`` for ``ttl_seconds``."""
        now = self._now_ms()
        entry = CacheEntry(data=data, timestamp=now, expiry=now + int(ttl_seconds * 1000))
        self._entries[key] = entry

        if self.is_persistent(key):
            try:
                self.storage.set_item(self._storage_name(key), entry.to_json())
            except (StorageError, TypeError, ValueError) as exc:
                self._storage_failed("write", key, exc)

    def get(self, key: str) -> Optional[Any]:
        """Return cached data, or None when absent or expired."""
        entry = self._entries.get(key)
        now = self._now_ms()

        if entry is not None:
            if not entry.is_expired(now):
                self._record("hit")
                return entry.data
            self._evict(key)
            self._record("expired")
            return None

        entry = self._load_durable(key, now)
        if entry is None:
            self._record("miss")
            return None

        self._stats["durable_loads"] += 1
        self._record("durable")
        self._entries[key] = entry
        self.logger.debug("Promoted durable cache entry", key=key)
        return entry.data

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)
        if self.is_persistent(key):
            self._remove_durable(key)

    def clear(self) -> None:
        """Drop every in-memory entry and the allowlisted durable entries."""
        self._entries.clear()
        for key in sorted(self.persistent_keys):
            self._remove_durable(key)
            self._remove_durable(stale_key(key))

    def cleanup(self) -> int:
        """Remove expired in-memory entries and return how many went."""
        now = self._now_ms()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._stats["expirations"] += len(expired)
            self.logger.debug("Cache cleanup removed expired entries", count=len(expired))
        return len(expired)

    def start_cleanup(self, interval: float = CLEANUP_INTERVAL_SECONDS) -> asyncio.Task:
        """Run ``cleanup`` every ``interval`` seconds on the running loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval))
        return self._cleanup_task

    async def stop_cleanup(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _cleanup_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cleanup()

    def keys(self):
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "persistent_keys": sorted(self.persistent_keys),
            "storage_backend": type(self.storage).__name__,
            **self._stats,
        }

    def _storage_name(self, key: str) -> str:
        return f"{STORAGE_PREFIX}{key}"

    def _evict(self, key: str) -> None:
        self._entries.pop(key, None)
        self._stats["expirations"] += 1
        if self.is_persistent(key):
            self._remove_durable(key)

    def _load_durable(self, key: str, now: int) -> Optional[CacheEntry]:
        if not self.is_persistent(key):
            return None

        try:
            raw = self.storage.get_item(self._storage_name(key))
        except StorageError as exc:
            self._storage_failed("read", key, exc)
            return None
        if raw is None:
            return None

        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            self.logger.warning("Discarding unreadable durable cache entry", key=key, error=str(exc))
            self._remove_durable(key)
            return None

        if entry.is_expired(now):
            self._remove_durable(key)
            return None
        return entry

    def _remove_durable(self, key: str) -> None:
        try:
            self.storage.remove_item(self._storage_name(key))
        except StorageError as exc:
            self._storage_failed("remove", key, exc)

    def _storage_failed(self, operation: str, key: str, exc: Exception) -> None:
        self._stats["storage_errors"] += 1
        self.logger.warning(
            "Durable cache storage failed; continuing memory-only",
            operation=operation,
            key=key,
            error=str(exc),
        )

    def _record(self, result: str) -> None:
        if result == "hit" or result == "durable":
            self._stats["hits"] += 1
        else:
            self._stats["misses"] += 1
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", result=result)
