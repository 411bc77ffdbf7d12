"""
Response cache for generation results.
"""

import hashlib
import json
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from jira_planner.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """A cached payload and its bookkeeping."""

    payload: Any
    created_at: float
    expires_at: float
    last_accessed: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def make_cache_key(namespace: str, *parts: Any) -> str:
    """
    Build a deterministic fingerprint for an operation's inputs.

    Args:
        namespace: Operation family, e.g. 'requirements'
        *parts: JSON-serializable inputs of the operation

    Returns:
        '<namespace>:<sha256 hex>'
    """
    canonical = json.dumps(parts, sort_keys=True, default=str, ensure_ascii=False)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


class ResponseCache:
    """
    In-memory, time-boxed and size-bounded cache.

    Expired entries are removed lazily on lookup and on every write. When the
    cache is over capacity the least recently accessed entries are evicted.
    """

    def __init__(
        self,
        ttl_seconds: int = 30 * 60,
        max_entries: int = 100,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry
            max_entries: Capacity before LRU eviction
            clock: Wall-clock source in epoch seconds (defaults to time.time)
        """
        self._entries: dict[str, CacheEntry] = {}
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or time.time

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get(self, key: str) -> Optional[Any]:
        """Get a payload from cache, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            logger.debug("Cache entry expired", key=key)
            return None

        entry.hits += 1
        entry.last_accessed = now
        return entry.payload

    async def set(self, key: str, payload: Any) -> None:
        """Store a payload, then enforce expiry and capacity."""
        now = self._clock()
        self._entries[key] = CacheEntry(
            payload=payload,
            created_at=now,
            expires_at=now + self.ttl_seconds,
            last_accessed=now,
        )
        logger.debug("Cache set", key=key, ttl=self.ttl_seconds)
        await self.cleanup()

    async def cleanup(self) -> int:
        """Remove expired entries and evict LRU entries over capacity."""
        return self._prune()

    def _prune(self) -> int:
        now = self._clock()
        expired_keys = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired_keys:
            del self._entries[key]

        evicted = 0
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            # sorted() is stable, so ties keep insertion order
            by_age = sorted(self._entries.items(), key=lambda item: item[1].last_accessed)
            for key, _ in by_age[:overflow]:
                del self._entries[key]
                evicted += 1

        if expired_keys or evicted:
            logger.debug("Cache cleanup", expired=len(expired_keys), evicted=evicted)

        return len(expired_keys) + evicted

    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        if key in self._entries:
            del self._entries[key]
            return True
        return False

    async def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        logger.info("Cache cleared")

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        active = sum(1 for e in self._entries.values() if not e.is_expired(now))
        return {
            "total_entries": len(self._entries),
            "active_entries": active,
            "expired_entries": len(self._entries) - active,
            "total_hits": sum(e.hits for e in self._entries.values()),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
        }

    def export(self) -> dict[str, dict[str, Any]]:
        """Serialize all entries for persistence alongside a session."""
        return {key: asdict(entry) for key, entry in self._entries.items()}

    def import_entries(self, data: dict[str, Any]) -> int:
        """
        Load previously exported entries.

        Expired or malformed entries are skipped. Capacity is enforced
        afterwards, so least recently used entries may be evicted.

        Returns:
            Number of entries imported
        """
        if not isinstance(data, dict):
            return 0

        now = self._clock()
        imported = 0
        for key, raw in data.items():
            try:
                entry = CacheEntry(
                    payload=raw["payload"],
                    created_at=float(raw["created_at"]),
                    expires_at=float(raw["expires_at"]),
                    last_accessed=float(raw.get("last_accessed", raw["created_at"])),
                    hits=int(raw.get("hits", 0)),
                )
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.debug("Skipping malformed cache entry", key=key)
                continue
            if entry.is_expired(now):
                continue
            self._entries[key] = entry
            imported += 1

        self._prune()
        logger.info("Cache entries imported", count=imported, total=len(self._entries))
        return imported
