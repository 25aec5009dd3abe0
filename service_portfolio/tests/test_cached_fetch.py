"""
Unit tests for the stale-while-revalidate cached fetcher.
"""

import asyncio

import httpx
import pytest

from shared.errors import HttpError, NetworkError, ParseError
from shared.metrics import MetricsCollector
from service_portfolio.app.caching.cached_fetch import CachedFetcher, RuntimeMode
from service_portfolio.app.caching.ttl_cache import CacheEntry

BASE = "http://api.test/api"


class TestCachedFetcher:
    """Test cases for CachedFetcher."""

    @pytest.mark.asyncio
    async def test_fresh_entry_skips_network(self, cache, make_api):
        api = make_api({"/api/hero": {"name": "network"}})
        cache.set("hero-content", {"name": "cached"}, 300)
        fetcher = CachedFetcher(cache, api.client())

        result = await fetcher.fetch(f"{BASE}/hero", {}, "hero-content", 900)

        assert result == {"name": "cached"}
        assert api.calls() == 0

    @pytest.mark.asyncio
    async def test_network_result_populates_fresh_and_stale(self, cache, clock, storage, make_api):
        api = make_api({"/api/hero": {"name": "Y"}})
        fetcher = CachedFetcher(cache, api.client())

        result = await fetcher.fetch(f"{BASE}/hero", {}, "hero-content", 900)

        assert result == {"name": "Y"}
        assert cache.get("hero-content") == {"name": "Y"}
        assert cache.get("hero-content_stale") == {"name": "Y"}

        stale = CacheEntry.from_json(storage.get_item("cache_hero-content_stale"))
        assert stale.expiry - stale.timestamp == 900 * 12 * 1000

        clock.advance(901)
        assert cache.get("hero-content") is None
        assert cache.get("hero-content_stale") == {"name": "Y"}

    @pytest.mark.asyncio
    async def test_stale_slot_expires_for_memory_only_keys(self, cache, clock, make_api):
        api = make_api({"/api/other": {"a": 1}})
        fetcher = CachedFetcher(cache, api.client(), stale_multiplier=2)

        await fetcher.fetch(f"{BASE}/other", {}, "other", 100)
        clock.advance(150)
        assert cache.get("other") is None
        assert cache.get("other_stale") == {"a": 1}

        clock.advance(100)
        assert cache.get("other_stale") is None

    @pytest.mark.asyncio
    async def test_url_is_default_cache_key(self, cache, make_api):
        api = make_api({"/api/other": [1, 2]})
        fetcher = CachedFetcher(cache, api.client())

        await fetcher.fetch(f"{BASE}/other")
        await fetcher.fetch(f"{BASE}/other")

        assert cache.get(f"{BASE}/other") == [1, 2]
        assert api.calls() == 1

    @pytest.mark.asyncio
    async def test_default_headers_merge_under_caller_headers(self, cache, make_api):
        api = make_api({"/api/about": {"title": "About"}})
        fetcher = CachedFetcher(cache, api.client())

        await fetcher.fetch(
            f"{BASE}/about",
            {"headers": {"Cache-Control": "no-cache", "X-Trace": "1"}, "params": {"lang": "en"}},
            "about-content",
        )

        request = api.requests[0]
        assert request.headers["Accept"] == "application/json"
        assert request.headers["Cache-Control"] == "no-cache"
        assert request.headers["X-Trace"] == "1"
        assert request.url.params["lang"] == "en"

    @pytest.mark.asyncio
    async def test_http_error_without_stale_raises(self, cache, make_api):
        api = make_api({"/api/hero": httpx.Response(500, text="boom")})
        fetcher = CachedFetcher(cache, api.client())

        with pytest.raises(HttpError) as exc_info:
            await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")

        assert exc_info.value.upstream_status == 500
        assert exc_info.value.details["status_code"] == 500
        assert cache.get("hero-content") is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises_parse_error(self, cache, make_api):
        api = make_api({"/api/hero": httpx.Response(200, text="<html>")})
        fetcher = CachedFetcher(cache, api.client())

        with pytest.raises(ParseError):
            await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")

    @pytest.mark.asyncio
    async def test_timeout_raises_network_error(self, cache, make_api):
        api = make_api({"/api/hero": httpx.ReadTimeout("timed out")})
        fetcher = CachedFetcher(cache, api.client())

        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")

        assert "Timeout" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_error_falls_back_to_stale(self, cache, make_api):
        api = make_api({"/api/hero": httpx.ConnectError("connection refused")})
        cache.set("hero-content_stale", {"name": "old"}, 3600)
        fetcher = CachedFetcher(cache, api.client())

        result = await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")

        assert result == {"name": "old"}
        assert api.calls() == 1

    @pytest.mark.asyncio
    async def test_http_error_falls_back_to_stale(self, cache, make_api):
        api = make_api({"/api/projects": httpx.Response(503)})
        cache.set("projects-list_stale", [{"title": "old"}], 3600)
        fetcher = CachedFetcher(cache, api.client())

        assert await fetcher.fetch(f"{BASE}/projects", {}, "projects-list") == [{"title": "old"}]

    @pytest.mark.asyncio
    async def test_development_revalidates_before_serving_stale(self, cache, make_api):
        api = make_api({"/api/hero": {"name": "new"}})
        cache.set("hero-content_stale", {"name": "old"}, 3600)
        fetcher = CachedFetcher(cache, api.client(), mode=RuntimeMode.DEVELOPMENT)

        assert await fetcher.fetch(f"{BASE}/hero", {}, "hero-content") == {"name": "new"}
        assert api.calls() == 1

    @pytest.mark.asyncio
    async def test_production_serves_stale_and_refreshes_in_background(self, cache, make_api):
        api = make_api({"/api/hero": {"name": "new"}})
        cache.set("hero-content_stale", {"name": "old"}, 3600)
        fetcher = CachedFetcher(cache, api.client(), mode=RuntimeMode.PRODUCTION)

        result = await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")
        assert result == {"name": "old"}
        assert fetcher.pending_refreshes == 1

        await fetcher.drain()

        assert api.calls() == 1
        assert fetcher.pending_refreshes == 0
        assert cache.get("hero-content") == {"name": "new"}
        assert cache.get("hero-content_stale") == {"name": "new"}

    @pytest.mark.asyncio
    async def test_production_does_not_serve_expired_stale_copy(self, cache, clock, make_api):
        api = make_api({"/api/hero": {"name": "new"}})
        cache.set("hero-content_stale", {"name": "ancient"}, 60)
        clock.advance(61)
        fetcher = CachedFetcher(cache, api.client(), mode=RuntimeMode.PRODUCTION)

        assert await fetcher.fetch(f"{BASE}/hero", {}, "hero-content") == {"name": "new"}
        assert api.calls() == 1
        assert fetcher.pending_refreshes == 0

    @pytest.mark.asyncio
    async def test_background_refresh_failure_is_contained(self, cache, make_api):
        api = make_api({"/api/hero": httpx.Response(502)})
        cache.set("hero-content_stale", {"name": "old"}, 3600)
        fetcher = CachedFetcher(cache, api.client(), mode=RuntimeMode.PRODUCTION)

        assert await fetcher.fetch(f"{BASE}/hero", {}, "hero-content") == {"name": "old"}
        await fetcher.drain()

        assert cache.get("hero-content") is None
        assert cache.get("hero-content_stale") == {"name": "old"}

    @pytest.mark.asyncio
    async def test_aclose_cancels_pending_refreshes(self, cache, make_api):
        api = make_api({"/api/hero": {"name": "new"}})
        fetcher = CachedFetcher(cache, api.client())

        task = fetcher.background_refresh(f"{BASE}/hero", None, "hero-content", delay=60)
        await fetcher.aclose()

        assert task.cancelled()
        assert api.calls() == 0

    @pytest.mark.asyncio
    async def test_production_extends_ttl_for_projects(self, cache, clock, make_api):
        api = make_api({"/api/projects": [{"title": "Vendora"}]})
        fetcher = CachedFetcher(cache, api.client(), mode=RuntimeMode.PRODUCTION)

        await fetcher.fetch(f"{BASE}/projects", {}, "projects-list", 300)
        clock.advance(600)

        assert cache.get("projects-list") == [{"title": "Vendora"}]
        assert fetcher.effective_ttl(f"{BASE}/contact-details", 300) == 900
        assert fetcher.effective_ttl(f"{BASE}/hero", 300) == 300

    def test_development_keeps_requested_ttl(self, cache):
        fetcher = CachedFetcher(cache, mode=RuntimeMode.DEVELOPMENT)
        assert fetcher.effective_ttl(f"{BASE}/projects", 300) == 300

    def test_timeouts_depend_on_mode(self, cache):
        assert CachedFetcher(cache, mode=RuntimeMode.DEVELOPMENT).timeout == 10.0
        assert CachedFetcher(cache, mode=RuntimeMode.PRODUCTION).timeout == 30.0

    def test_runtime_mode_from_env(self):
        assert RuntimeMode.from_env("Production") is RuntimeMode.PRODUCTION
        assert RuntimeMode.from_env("local") is RuntimeMode.DEVELOPMENT

    @pytest.mark.asyncio
    async def test_ping(self, cache, make_api):
        api = make_api({"/api/health": {"status": "ok"}, "/api/down": httpx.ConnectError("refused")})
        fetcher = CachedFetcher(cache, api.client())

        assert await fetcher.ping(f"{BASE}/health") is True
        assert await fetcher.ping(f"{BASE}/down") is False
        assert await fetcher.ping(f"{BASE}/missing") is False

    @pytest.mark.asyncio
    async def test_overlapping_fetches_are_not_coalesced(self, cache, make_api):
        async def slow(request):
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"name": "Y"})

        api = make_api({"/api/hero": slow})
        fetcher = CachedFetcher(cache, api.client())

        await asyncio.gather(
            fetcher.fetch(f"{BASE}/hero", {}, "hero-content"),
            fetcher.fetch(f"{BASE}/hero", {}, "hero-content"),
        )

        assert api.calls() == 2

    @pytest.mark.asyncio
    async def test_fetch_metrics(self, cache, make_api):
        metrics = MetricsCollector("portfolio")
        api = make_api({"/api/hero": {"name": "Y"}})
        fetcher = CachedFetcher(cache, api.client(), metrics=metrics)

        await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")
        await fetcher.fetch(f"{BASE}/hero", {}, "hero-content")

        assert metrics.get_sample_value("cache_fetch_total", source="network") == 1.0
        assert metrics.get_sample_value("cache_fetch_total", source="cache") == 1.0
        assert metrics.get_sample_value("cache_fetch_duration_seconds_count", outcome="success") == 1.0
