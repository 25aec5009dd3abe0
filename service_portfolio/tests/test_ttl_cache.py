"""
Unit tests for the TTL cache.
"""

import asyncio
import json

import pytest

from shared.errors import StorageError
from shared.metrics import MetricsCollector
from service_portfolio.app.caching.storage import DurableStorage, MemoryStorage
from service_portfolio.app.caching.ttl_cache import CacheEntry, TTLCache


class BrokenStorage(DurableStorage):
    """Storage that fails every operation, like a full or disabled store."""

    def __init__(self):
        self.calls = 0

    def get_item(self, name):
        self.calls += 1
        raise StorageError("quota exceeded")

    def set_item(self, name, value):
        self.calls += 1
        raise StorageError("quota exceeded")

    def remove_item(self, name):
        self.calls += 1
        raise StorageError("storage disabled")


class TestTTLCache:
    """Test cases for TTLCache."""

    def test_set_then_get_returns_data(self, cache):
        cache.set("hero-content", {"name": "X"}, 900)
        assert cache.get("hero-content") == {"name": "X"}

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("hero-content", {"name": "X"}, 900)

        clock.advance(900)
        assert cache.get("hero-content") == {"name": "X"}

        clock.advance(1)
        assert cache.get("hero-content") is None

    def test_expired_get_is_idempotent(self, cache, clock):
        cache.set("temp", [1, 2, 3], 10)
        clock.advance(11)

        assert cache.get("temp") is None
        assert cache.get("temp") is None
        assert "temp" not in cache

    def test_missing_key_returns_none(self, cache):
        assert cache.get("nothing-here") is None

    def test_entry_timestamps_are_epoch_ms(self, storage, cache, clock):
        cache.set("hero-content", {"name": "X"}, 900)

        entry = CacheEntry.from_json(storage.get_item("cache_hero-content"))
        assert entry.timestamp == int(clock.now * 1000)
        assert entry.expiry == entry.timestamp + 900_000
        assert entry.data == {"name": "X"}

    def test_persistent_key_survives_reload(self, storage, cache, clock):
        projects = [{"title": "Vendora"}]
        cache.set("projects-list", projects, 300)

        reloaded = TTLCache(storage, clock=clock)
        assert reloaded.get("projects-list") == projects
        assert "projects-list" in reloaded
        assert reloaded.stats()["durable_loads"] == 1

    def test_reload_after_expiry_returns_none_and_drops_durable_copy(self, storage, cache, clock):
        cache.set("about-content", {"title": "About"}, 60)
        clock.advance(61)

        reloaded = TTLCache(storage, clock=clock)
        assert reloaded.get("about-content") is None
        assert "cache_about-content" not in storage

    def test_persistent_stale_key_expires_after_ttl(self, storage, cache, clock):
        cache.set("hero-content_stale", {"name": "X"}, 10)
        clock.advance(11)

        assert cache.get("hero-content_stale") is None
        assert cache.get("hero-content_stale") is None
        assert "cache_hero-content_stale" not in storage

    def test_expired_durable_stale_entry_is_not_served_after_reload(self, storage, cache, clock):
        cache.set("contact-details_stale", {"email": "a@b.c"}, 60)
        clock.advance(3600)

        reloaded = TTLCache(storage, clock=clock)
        assert reloaded.get("contact-details_stale") is None
        assert reloaded.get("contact-details_stale") is None
        assert "cache_contact-details_stale" not in storage

    def test_live_durable_stale_entry_is_promoted_after_reload(self, storage, cache, clock):
        cache.set("contact-details_stale", {"email": "a@b.c"}, 3600)
        clock.advance(60)

        reloaded = TTLCache(storage, clock=clock)
        assert reloaded.get("contact-details_stale") == {"email": "a@b.c"}
        assert "contact-details_stale" in reloaded

    def test_non_persistent_keys_stay_in_memory(self, storage, cache, clock):
        cache.set("http://localhost/api/other", {"a": 1}, 300)

        assert len(storage) == 0
        assert TTLCache(storage, clock=clock).get("http://localhost/api/other") is None

    def test_persistence_uses_exact_key_membership(self, storage, cache):
        cache.set("hero-content-preview", {"draft": True}, 300)
        cache.set("hero-content_stale", {"name": "X"}, 300)

        assert "cache_hero-content-preview" not in storage
        assert "cache_hero-content_stale" in storage

    def test_storage_failures_do_not_raise(self, clock):
        storage = BrokenStorage()
        cache = TTLCache(storage, clock=clock)

        cache.set("projects-list", [1], 300)
        assert cache.get("projects-list") == [1]

        cache.delete("projects-list")
        assert cache.get("projects-list") is None
        cache.clear()

        assert storage.calls > 0
        assert cache.stats()["storage_errors"] == storage.calls

    def test_corrupt_durable_entry_is_discarded(self, storage, clock):
        storage.set_item("cache_hero-content", "{not json")
        cache = TTLCache(storage, clock=clock)

        assert cache.get("hero-content") is None
        assert "cache_hero-content" not in storage

    def test_unserializable_data_stays_in_memory(self, storage, cache):
        cache.set("hero-content", {"when": object()}, 300)

        assert cache.get("hero-content") is not None
        assert "cache_hero-content" not in storage
        assert cache.stats()["storage_errors"] == 1

    def test_delete_removes_memory_and_durable_copy(self, storage, cache):
        cache.set("projects-list", [1], 300)
        cache.delete("projects-list")

        assert cache.get("projects-list") is None
        assert "cache_projects-list" not in storage

    def test_clear_removes_allowlisted_durable_keys(self, storage, cache):
        cache.set("projects-list", [1], 300)
        cache.set("projects-list_stale", [1], 3600)
        cache.set("hero-content", {"name": "X"}, 300)
        cache.set("scratch", "memory only", 300)
        storage.set_item("unrelated", "keep me")

        cache.clear()

        assert len(cache) == 0
        assert storage.get_item("unrelated") == "keep me"
        assert len(storage) == 1

    def test_cleanup_removes_only_expired_entries(self, cache, clock):
        cache.set("short", 1, 10)
        cache.set("long", 2, 1000)
        clock.advance(20)

        assert cache.cleanup() == 1
        assert cache.keys() == ["long"]

    @pytest.mark.asyncio
    async def test_periodic_cleanup_task(self, cache, clock):
        cache.set("short", 1, 10)
        clock.advance(20)

        task = cache.start_cleanup(interval=0.01)
        assert cache.start_cleanup(interval=0.01) is task
        await asyncio.sleep(0.05)
        await cache.stop_cleanup()

        assert "short" not in cache
        assert task.cancelled()

    def test_lookup_metrics(self, storage, clock):
        metrics = MetricsCollector("portfolio")
        cache = TTLCache(storage, clock=clock, metrics=metrics)

        cache.set("hero-content", {"name": "X"}, 10)
        cache.get("hero-content")
        cache.get("absent")
        clock.advance(11)
        cache.get("hero-content")

        assert metrics.get_sample_value("cache_lookups_total", result="hit") == 1.0
        assert metrics.get_sample_value("cache_lookups_total", result="miss") == 1.0
        assert metrics.get_sample_value("cache_lookups_total", result="expired") == 1.0

    def test_stats(self, cache):
        cache.set("hero-content", {"name": "X"}, 300)
        cache.get("hero-content")
        cache.get("absent")

        stats = cache.stats()
        assert stats["entries"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["storage_backend"] == "MemoryStorage"
        assert "projects-list" in stats["persistent_keys"]

    def test_cache_entry_json_round_trip(self):
        entry = CacheEntry(data={"a": [1, 2]}, timestamp=1000, expiry=2000)
        assert json.loads(entry.to_json()) == {"data": {"a": [1, 2]}, "timestamp": 1000, "expiry": 2000}
        assert CacheEntry.from_json(entry.to_json()) == entry
