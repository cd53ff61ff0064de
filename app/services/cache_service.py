"""
TTL cache service.

Provides a small cache wrapper with:
  - per-key TTL
  - prefix invalidation (flush every key starting with a prefix)
  - cache-aside helper (``remember``)

Uses Redis when REDIS_URL points at a Redis server, otherwise a
process-local in-memory store. One CacheService instance is built by
``create_app`` and stored on ``app.extensions["cache_service"]``;
services reach it through ``get_cache()``.
"""

import json
import logging
import threading
import time

from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300


# ── Backends ─────────────────────────────────────────────────────────────


class MemoryBackend:
    """Dict cache with expiry timestamps. Not shared across processes."""

    def __init__(self, clock=time.monotonic):
        self._store: dict = {}  # key → (value_json, expire_ts)
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key):
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            val, expires = entry
            if expires and self._clock() > expires:
                self._store.pop(key, None)
                return None
            return val

    def setex(self, key, ttl_seconds, value):
        with self._lock:
            self._store[key] = (value, self._clock() + ttl_seconds)

    def delete(self, *keys):
        with self._lock:
            for k in keys:
                self._store.pop(k, None)

    def keys_with_prefix(self, prefix):
        with self._lock:
            return [k for k in self._store if k.startswith(prefix)]

    def flushdb(self):
        with self._lock:
            self._store.clear()

    def ping(self):
        return True


class RedisBackend:
    """Thin adapter over a redis client exposing the MemoryBackend surface."""

    def __init__(self, client):
        self._client = client

    def get(self, key):
        return self._client.get(key)

    def setex(self, key, ttl_seconds, value):
        self._client.setex(key, ttl_seconds, value)

    def delete(self, *keys):
        if keys:
            self._client.delete(*keys)

    def keys_with_prefix(self, prefix):
        return list(self._client.scan_iter(match=f"{prefix}*"))

    def flushdb(self):
        self._client.flushdb()

    def ping(self):
        return self._client.ping()


# ── Service ──────────────────────────────────────────────────────────────


class CacheService:
    """JSON-serialising TTL cache over a pluggable backend."""

    def __init__(self, backend=None, default_ttl=DEFAULT_TTL):
        self.backend = backend or MemoryBackend()
        self.default_ttl = default_ttl

    @classmethod
    def from_config(cls, config):
        """Build Redis-backed cache when REDIS_URL is a redis URL, else in-memory."""
        redis_url = config.get("REDIS_URL") or ""
        if redis_url and not redis_url.startswith("memory://"):
            try:
                import redis as _redis
                client = _redis.from_url(redis_url, decode_responses=True)
                client.ping()
                logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
                return cls(RedisBackend(client))
            except Exception as exc:
                logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
        return cls(MemoryBackend())

    @property
    def backend_name(self) -> str:
        return "memory" if isinstance(self.backend, MemoryBackend) else "redis"

    def get(self, key):
        """Return the cached value, or None on miss/expiry/corrupt entry."""
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Cache: dropping undecodable entry %s", key)
            self.backend.delete(key)
            return None

    def set(self, key, value, ttl=None):
        self.backend.setex(key, ttl or self.default_ttl, json.dumps(value, default=str))

    def delete(self, key):
        self.backend.delete(key)

    def flush_prefix(self, prefix) -> int:
        """Delete every key starting with *prefix*. Returns the number removed."""
        keys = self.backend.keys_with_prefix(prefix)
        if keys:
            self.backend.delete(*keys)
        return len(keys)

    def remember(self, key, ttl, loader):
        """Cache-aside: return cached value or call *loader* and cache its result."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def clear(self):
        """Flush entire cache (use sparingly — mainly for testing)."""
        self.backend.flushdb()

    def health_check(self):
        """Return cache backend status."""
        try:
            self.backend.ping()
            return {"status": "ok", "backend": self.backend_name}
        except Exception as exc:
            return {"status": "error", "detail": str(exc)}


def init_cache(app) -> CacheService:
    """Create the process-wide cache for *app* and register it as an extension."""
    cache = CacheService.from_config(app.config)
    app.extensions["cache_service"] = cache
    return cache


def get_cache() -> CacheService:
    """Return the cache bound to the current Flask app."""
    return current_app.extensions["cache_service"]
