"""
In-process LRU cache for embedding vectors with TTL support and size limits.

Cache keys are prefixed with the embedding model id so that vectors produced
by one model are never served for another. There is no module-level
instance: callers construct a cache and pass it to the embedding client.

Concurrency: every operation runs under one re-entrant lock, so concurrent
readers and writers (threads or interleaved coroutines) never observe a torn
entry. Two writers racing on the same key resolve as last-writer-wins.
"""

import hashlib
import threading
import time
import unicodedata
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from src.shared.observability.metrics import cache_operations_total, cache_size_entries

CACHE_LAYER = "embedding_l1"


def normalize_text(text: str) -> str:
    """Normalization applied before hashing: NFC form, trimmed."""
    return unicodedata.normalize("NFC", text).strip()


def make_cache_key(model_id: str, text: str) -> str:
    """
    Generate cache key with model prefix.

    Format: {model_id}:{sha256(normalized text)}
    """
    digest = hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()
    return f"{model_id}:{digest}"


@dataclass
class CacheEntry:
    key: str
    vector: Tuple[float, ...]
    inserted_at: float
    last_accessed_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.inserted_at > ttl_seconds


class EmbeddingCache:
    """In-process LRU cache with TTL support and size limits."""

    def __init__(
        self,
        max_size: int = 10_000,
        ttl_seconds: float = 86_400,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @classmethod
    def from_config(cls, config: Any) -> "EmbeddingCache":
        """Build from an EmbeddingCacheConfig section."""
        return cls(max_size=config.max_size, ttl_seconds=config.ttl_seconds)

    def get(self, key: str) -> Optional[Tuple[float, ...]]:
        """Get vector from cache if present and not expired."""
        with self._lock:
            entry = self._cache.get(key)
            now = self._clock()
            if entry is None:
                self._misses += 1
                self._record_metrics("get", "miss")
                return None

            if entry.is_expired(now, self.ttl_seconds):
                # Expired entries are treated as absent
                del self._cache[key]
                self._misses += 1
                self._record_metrics("get", "expired")
                return None

            # Move to end (most recently used)
            entry.last_accessed_at = now
            self._cache.move_to_end(key)
            self._hits += 1
            self._record_metrics("get", "hit")
            return entry.vector

    def put(self, key: str, vector: Tuple[float, ...]) -> None:
        """Put vector in cache, evicting the least recently used entry at capacity."""
        with self._lock:
            now = self._clock()
            if key in self._cache:
                self._cache[key] = CacheEntry(key, tuple(vector), now, now)
                self._cache.move_to_end(key)
            else:
                while len(self._cache) >= self.max_size:
                    # Evict oldest
                    self._cache.popitem(last=False)
                    self._evictions += 1
                    self._record_metrics("evict", "ok")
                self._cache[key] = CacheEntry(key, tuple(vector), now, now)
            self._record_metrics("put", "ok")

    def entry(self, key: str) -> Optional[CacheEntry]:
        """Inspect an entry without touching recency or hit statistics."""
        with self._lock:
            return self._cache.get(key)

    def invalidate(self, key: str) -> None:
        """Remove specific key from cache."""
        with self._lock:
            self._cache.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove all keys with given prefix (e.g. a model id). Returns count invalidated."""
        with self._lock:
            keys_to_remove = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_remove:
                del self._cache[key]
            return len(keys_to_remove)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            cache_size_entries.labels(layer=CACHE_LAYER).set(0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not entry.is_expired(
                self._clock(), self.ttl_seconds
            )

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = self._hits / total if total > 0 else 0.0
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": hit_rate,
                "size": len(self._cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
            }

    def _record_metrics(self, operation: str, result: str) -> None:
        cache_operations_total.labels(
            operation=operation, layer=CACHE_LAYER, result=result
        ).inc()
        cache_size_entries.labels(layer=CACHE_LAYER).set(len(self._cache))
