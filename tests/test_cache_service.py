"""
Cache service tests.

Covers:
    - TTL expiry through an injected clock
    - Prefix flush only touches matching keys
    - remember() calls the loader once per cache lifetime
    - Undecodable entries are dropped instead of raising
    - from_config() backend selection and the app-bound instance
"""

from app.services.cache_service import CacheService, MemoryBackend, get_cache


class _Clock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now


def _cache(clock=None):
    return CacheService(MemoryBackend(clock=clock or _Clock()), default_ttl=30)


def test_set_get_roundtrip_returns_json_copy():
    cache = _cache()
    value = {"orders": [{"id": 1}], "metrics": {"open_orders": 1}}
    cache.set("k", value)

    got = cache.get("k")
    assert got == value
    got["orders"].append({"id": 2})
    assert cache.get("k") == value


def test_entry_expires_after_ttl():
    clock = _Clock()
    cache = _cache(clock)
    cache.set("k", {"v": 1}, ttl=30)

    clock.now += 29
    assert cache.get("k") == {"v": 1}
    clock.now += 2
    assert cache.get("k") is None


def test_default_ttl_used_when_not_given():
    clock = _Clock()
    cache = _cache(clock)
    cache.set("k", 1)
    clock.now += 31
    assert cache.get("k") is None


def test_flush_prefix_removes_only_matching_keys():
    cache = _cache()
    cache.set("company:orders:dashboard:1:all", 1)
    cache.set("company:orders:dashboard:1:open", 2)
    cache.set("company:orders:dashboard:12:all", 3)
    cache.set("company:orders:escalation:1:5", 4)

    removed = cache.flush_prefix("company:orders:dashboard:1:")

    assert removed == 2
    assert cache.get("company:orders:dashboard:1:all") is None
    assert cache.get("company:orders:dashboard:12:all") == 3
    assert cache.get("company:orders:escalation:1:5") == 4


def test_remember_calls_loader_once():
    cache = _cache()
    calls = []

    def loader():
        calls.append(1)
        return {"built": True}

    assert cache.remember("k", 30, loader) == {"built": True}
    assert cache.remember("k", 30, loader) == {"built": True}
    assert len(calls) == 1


def test_remember_does_not_cache_none():
    cache = _cache()
    calls = []

    def loader():
        calls.append(1)

    cache.remember("k", 30, loader)
    cache.remember("k", 30, loader)
    assert len(calls) == 2


def test_undecodable_entry_is_dropped():
    backend = MemoryBackend(clock=_Clock())
    cache = CacheService(backend)
    backend.setex("broken", 30, "{not json")

    assert cache.get("broken") is None
    assert backend.get("broken") is None


def test_clear_empties_everything():
    cache = _cache()
    cache.set("a", 1)
    cache.set("b", 2)
    cache.clear()
    assert cache.get("a") is None
    assert cache.get("b") is None


def test_from_config_memory_url_uses_memory_backend():
    assert CacheService.from_config({"REDIS_URL": "memory://"}).backend_name == "memory"
    assert CacheService.from_config({}).backend_name == "memory"


def test_from_config_unreachable_redis_falls_back_to_memory():
    cache = CacheService.from_config({"REDIS_URL": "redis://127.0.0.1:1/0"})
    assert cache.backend_name == "memory"


def test_health_check_reports_backend():
    assert _cache().health_check() == {"status": "ok", "backend": "memory"}


def test_app_cache_is_registered_extension(app):
    assert get_cache() is app.extensions["cache_service"]
    assert get_cache().backend_name == "memory"
