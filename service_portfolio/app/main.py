"""
Portfolio Edge service.

Serves the portfolio sections through the stale-while-revalidate cache and
degrades to build-time snapshots when the backend cannot answer.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Body, HTTPException, Query
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import FetchError
from service_portfolio.app.caching.cache_warmer import CacheWarmer
from service_portfolio.app.caching.cached_fetch import CachedFetcher, RuntimeMode
from service_portfolio.app.caching.invalidation import (
    ENDPOINT_CACHE_KEYS,
    clear_all_cache,
    invalidate_cache,
)
from service_portfolio.app.caching.storage import DurableStorage, create_storage
from service_portfolio.app.caching.ttl_cache import TTLCache
from service_portfolio.app.static_data.generator import BUILD_METADATA_FILE, CONTACT_FILE, PROJECTS_FILE
from service_portfolio.app.static_data.loader import StaticDataLoader

SERVICE_NAME = "portfolio"
SERVICE_PORT = 8000

# Sections that have a build-time snapshot to fall back on
SNAPSHOT_SECTIONS = {
    "projects": PROJECTS_FILE,
    "contact-details": CONTACT_FILE,
}


class PortfolioEdgeService(BaseService):
    """Portfolio Edge service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        storage: Optional[DurableStorage] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        self.cache = TTLCache(storage if storage is not None else create_storage(config))
        self.fetcher = CachedFetcher(
            self.cache,
            http_client,
            mode=RuntimeMode.from_env(config.env),
            dev_timeout=config.dev_fetch_timeout,
            prod_timeout=config.prod_fetch_timeout,
            extended_ttl=config.extended_ttl,
            stale_multiplier=config.stale_ttl_multiplier,
        )
        self.warmer = CacheWarmer(
            self.fetcher,
            ttl_seconds=config.default_ttl,
            failed_retry_delay=config.failed_retry_delay,
            warm_schedule=tuple(config.warm_schedule),
        )
        self.loader = StaticDataLoader(config.static_output_dir, config.static_fallback_dir)
        self._warm_task: Optional[asyncio.Task] = None

        super().__init__(SERVICE_NAME, config.port, config=config)

        # Collaborators were built before the metrics collector existed
        self.cache.metrics = self.metrics
        self.fetcher.metrics = self.metrics
        self.warmer.metrics = self.metrics

        self._setup_portfolio_routes()

    @property
    def api_base_url(self) -> str:
        return self.config.api_base_url.rstrip("/")

    async def on_startup(self):
        await super().on_startup()
        self.cache.start_cleanup(self.config.cleanup_interval)
        if self.config.is_production:
            self._warm_task = asyncio.create_task(self.warmer.warm_cache(self.api_base_url))

    async def on_shutdown(self):
        if self._warm_task is not None and not self._warm_task.done():
            self._warm_task.cancel()
            await asyncio.gather(self._warm_task, return_exceptions=True)
        await self.cache.stop_cleanup()
        await self.fetcher.aclose()
        await super().on_shutdown()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache": "ok",
            "storage": type(self.cache.storage).__name__,
            "pending_refreshes": str(self.fetcher.pending_refreshes),
        }

    async def get_section(self, section: str) -> JSONResponse:
        """Serve one portfolio section through the cache."""
        cache_key = ENDPOINT_CACHE_KEYS[section]
        try:
            data = await self.fetcher.fetch(
                f"{self.api_base_url}/{section}",
                cache_key=cache_key,
                ttl_seconds=self.config.default_ttl,
            )
        except FetchError as exc:
            snapshot_file = SNAPSHOT_SECTIONS.get(section)
            if snapshot_file is None:
                raise
            snapshot = await asyncio.to_thread(self.loader.load_snapshot, snapshot_file)
            self.logger.warning(
                "Upstream unavailable, serving static snapshot",
                section=section,
                source=snapshot.source,
                error=exc.message,
            )
            return JSONResponse(content=snapshot.data, headers={"X-Data-Source": f"static:{snapshot.source}"})

        return JSONResponse(content=data, headers={"X-Data-Source": "api"})

    def _setup_portfolio_routes(self):
        """Set up portfolio routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": self.service_name,
                "message": "Portfolio Edge - content cache",
                "env": self.config.env,
                "sections": list(ENDPOINT_CACHE_KEYS),
            }

        @self.app.get("/api/{section}")
        async def section_endpoint(section: str):
            if section not in ENDPOINT_CACHE_KEYS:
                raise HTTPException(status_code=404, detail=f"Unknown section: {section}")
            return await self.get_section(section)

        @self.app.get("/data/{filename}")
        async def static_snapshot(filename: str):
            snapshot = await asyncio.to_thread(self.loader.load_snapshot, filename)
            if snapshot is None:
                if filename == BUILD_METADATA_FILE:
                    metadata = await asyncio.to_thread(self.loader.load_build_metadata)
                    if metadata is not None:
                        return metadata.to_json_dict()
                raise HTTPException(status_code=404, detail=f"No static data named {filename}")
            return snapshot.to_json_dict()

        @self.app.post("/cache/warm")
        async def warm(retry_count: Optional[int] = Query(None, ge=1)):
            if retry_count is None:
                retry_count = self.config.warm_retry_count
            report = await self.warmer.pre_cache_data(self.api_base_url, retry_count=retry_count)
            return report.to_dict()

        @self.app.get("/cache/stats")
        async def stats():
            return {
                **self.cache.stats(),
                "pending_refreshes": self.fetcher.pending_refreshes,
                "endpoint_states": {name: state.value for name, state in self.warmer.states.items()},
            }

        @self.app.post("/cache/invalidate")
        async def invalidate(keys: List[str] = Body(..., embed=True)):
            return {"invalidated": invalidate_cache(self.cache, keys)}

        @self.app.delete("/cache")
        async def clear() -> Dict[str, Any]:
            clear_all_cache(self.cache)
            return {"cleared": True}


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = PortfolioEdgeService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = PortfolioEdgeService()
    service.run()
