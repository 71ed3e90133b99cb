"""
MarketLens — Caching Layer

TTL caches injected into the calling layer. The analytics engines never touch
a cache; the services above them do.

Two backends share the same surface (get / set / delete / clear_prefix / clear):
- MemoryCache: in-process dict; expired entries drop on read and are swept on write.
- RedisCache: JSON-serialized Redis under a key namespace, with graceful
  degradation (cache misses, never crashes, when Redis is unreachable).
"""

from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Optional

import structlog

from marketlens.config import get_settings

log = structlog.get_logger(__name__)


# ──────────────────────────────────────────────
# In-Memory Cache
# ──────────────────────────────────────────────


class MemoryCache:
    """Process-local TTL cache."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def available(self) -> bool:
        return True

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value. Returns None on miss or expiry."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Cache a value with TTL in seconds, sweeping out expired entries."""
        if ttl <= 0:
            return False
        with self._lock:
            now = self._clock()
            for stale in [k for k, (expires_at, _) in self._store.items() if now >= expires_at]:
                del self._store[stale]
            self._store[key] = (now + ttl, value)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> int:
        """Drop every entry. Returns count deleted."""
        with self._lock:
            count = len(self._store)
            self._store.clear()
        return count

    def clear_prefix(self, prefix: str) -> int:
        """Delete all keys under `prefix:`. Returns count deleted."""
        with self._lock:
            doomed = [k for k in self._store if k.startswith(f"{prefix}:")]
            for k in doomed:
                del self._store[k]
        return len(doomed)

    def stats(self) -> dict:
        with self._lock:
            return {
                "available": True,
                "backend": "memory",
                "hits": self._hits,
                "misses": self._misses,
                "keys": len(self._store),
            }


# ──────────────────────────────────────────────
# Redis Cache
# ──────────────────────────────────────────────


class RedisCache:
    """Redis-backed TTL cache for pydantic responses.

    Values are stored as JSON under `<namespace>:<key>`, so readers get plain
    dicts back and re-validate them into models. Every operation degrades to a
    miss or no-op when the server cannot be reached.
    """

    def __init__(self, url: Optional[str] = None, namespace: str = "marketlens", client=None):
        self._url = url or get_settings().redis_url
        self._namespace = namespace
        self._client = client
        self._available = client is not None
        if client is None:
            self._connect()

    def _connect(self):
        try:
            import redis as redis_lib
            self._client = redis_lib.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
            self._client.ping()
            self._available = True
            log.info("cache.connected", url=self._url, namespace=self._namespace)
        except Exception as exc:
            log.warning("cache.unavailable", url=self._url, error=str(exc))
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Decoded JSON value, or None on miss or error."""
        if not self._available:
            return None
        try:
            raw = self._client.get(self._key(key))
            return None if raw is None else json.loads(raw)
        except Exception as exc:
            log.debug("cache.get_failed", key=key, error=str(exc))
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        if not self._available or ttl <= 0:
            return False
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        try:
            self._client.setex(self._key(key), ttl, json.dumps(value, default=str))
            return True
        except Exception as exc:
            log.debug("cache.set_failed", key=key, error=str(exc))
            return False

    def delete(self, key: str) -> bool:
        if not self._available:
            return False
        try:
            return bool(self._client.delete(self._key(key)))
        except Exception:
            return False

    def _drop_matching(self, pattern: str) -> int:
        if not self._available:
            return 0
        try:
            keys = list(self._client.scan_iter(match=pattern))
            return self._client.delete(*keys) if keys else 0
        except Exception as exc:
            log.warning("cache.clear_failed", pattern=pattern, error=str(exc))
            return 0

    def clear_prefix(self, prefix: str) -> int:
        """Delete all keys under `prefix:` in this namespace. Returns count deleted."""
        return self._drop_matching(f"{self._key(prefix)}:*")

    def clear(self) -> int:
        """Drop every key in this cache's namespace."""
        return self._drop_matching(f"{self._namespace}:*")

    def stats(self) -> dict:
        if not self._available:
            return {"available": False}
        try:
            info = self._client.info("stats")
            return {
                "available": True,
                "backend": "redis",
                "hits": info.get("keyspace_hits", 0),
                "misses": info.get("keyspace_misses", 0),
                "keys": sum(1 for _ in self._client.scan_iter(match=f"{self._namespace}:*")),
            }
        except Exception:
            return {"available": False}


# ──────────────────────────────────────────────
# Singleton
# ──────────────────────────────────────────────

_cache = None


def get_cache():
    """Get or create the cache singleton selected by ``cache_backend``."""
    global _cache
    if _cache is None:
        settings = get_settings()
        if settings.cache_backend == "redis":
            _cache = RedisCache(settings.redis_url)
        else:
            _cache = MemoryCache()
    return _cache


def reset_cache() -> None:
    """Forget the singleton (tests, settings reloads)."""
    global _cache
    _cache = None
