"""
Stale-while-revalidate fetching on top of the TTL cache.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple, TYPE_CHECKING

import httpx

from shared.errors import FetchError, HttpError, NetworkError, ParseError
from shared.logging import get_logger
from .ttl_cache import DEFAULT_TTL_SECONDS, TTLCache, stale_key

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "public, max-age=300",
}
DEV_TIMEOUT_SECONDS = 10.0
PROD_TIMEOUT_SECONDS = 30.0
EXTENDED_TTL_SECONDS = 900
STALE_TTL_MULTIPLIER = 12
EXTENDED_TTL_PATHS: Tuple[str, ...] = ("/projects", "/contact-details")


class RuntimeMode(str, Enum):
    """Runtime modes that change cache behaviour."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def from_env(cls, env: str) -> "RuntimeMode":
        return cls.PRODUCTION if env.lower() == "production" else cls.DEVELOPMENT


class CachedFetcher:
    """Fetch JSON through the cache, serving stale data when upstream fails.

    In production a stale hit is returned immediately and refreshed in a
    detached background task. Refresh tasks are tracked so they can be
    drained in tests or cancelled on shutdown; their failures are logged and
    never reach the caller.
    """

    def __init__(
        self,
        cache: TTLCache,
        client: Optional[httpx.AsyncClient] = None,
        *,
        mode: RuntimeMode = RuntimeMode.DEVELOPMENT,
        dev_timeout: float = DEV_TIMEOUT_SECONDS,
        prod_timeout: float = PROD_TIMEOUT_SECONDS,
        extended_ttl: int = EXTENDED_TTL_SECONDS,
        stale_multiplier: int = STALE_TTL_MULTIPLIER,
        extended_ttl_paths: Tuple[str, ...] = EXTENDED_TTL_PATHS,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.mode = mode
        self.dev_timeout = dev_timeout
        self.prod_timeout = prod_timeout
        self.extended_ttl = extended_ttl
        self.stale_multiplier = max(1, stale_multiplier)
        self.extended_ttl_paths = extended_ttl_paths
        self.metrics = metrics
        self.logger = get_logger("portfolio.cached_fetch")
        self._client = client
        self._owns_client = client is None
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def is_production(self) -> bool:
        return self.mode == RuntimeMode.PRODUCTION

    @property
    def timeout(self) -> float:
        return self.prod_timeout if self.is_production else self.dev_timeout

    @property
    def pending_refreshes(self) -> int:
        return len(self._background_tasks)

    async def fetch(
        self,
        url: str,
        options: Optional[Dict[str, Any]] = None,
        cache_key: Optional[str] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> Any:
        """Return JSON for ``url``, from cache when possible.

        ``options`` may carry ``headers`` and ``params`` for the request.
        Raises FetchError when upstream fails and no stale copy exists.
        """
        key = cache_key or url

        cached = self.cache.get(key)
        if cached is not None:
            self._record_source("cache")
            return cached

        stale = self.cache.get(stale_key(key))
        if stale is not None and self.is_production:
            self.logger.info("Serving stale cache while revalidating", key=key, url=url)
            self._record_source("stale")
            self.background_refresh(url, options, key, ttl_seconds)
            return stale

        try:
            data = await self._fetch_and_store(url, options, key, ttl_seconds)
        except FetchError as exc:
            if stale is not None:
                self.logger.warning("Using stale cache due to error", key=key, url=url, error=exc.message)
                self._record_source("stale_fallback")
                return stale
            self._record_source("error")
            raise

        self._record_source("network")
        return data

    def background_refresh(
        self,
        url: str,
        options: Optional[Dict[str, Any]] = None,
        cache_key: Optional[str] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        *,
        delay: float = 0.0,
    ) -> asyncio.Task:
        """Schedule a detached refresh of ``cache_key`` (after ``delay`` seconds)."""
        key = cache_key or url
        task = asyncio.create_task(self._refresh(url, options, key, ttl_seconds, delay))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def ping(self, url: str, timeout: Optional[float] = None) -> bool:
        """Best-effort reachability probe; never raises for transport errors."""
        try:
            response = await self._request(url, None, timeout or self.timeout)
        except NetworkError as exc:
            self.logger.debug("Ping failed", url=url, error=exc.message)
            return False
        return response.is_success

    async def drain(self) -> None:
        """Wait for outstanding background refreshes to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background refreshes and close an owned HTTP client."""
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def effective_ttl(self, url: str, ttl_seconds: int) -> int:
        """TTL actually applied to a fresh entry for ``url``."""
        if self.is_production and any(path in url for path in self.extended_ttl_paths):
            return max(ttl_seconds, self.extended_ttl)
        return ttl_seconds

    def store(self, key: str, data: Any, ttl_seconds: int) -> None:
        """Write both the fresh and the stale slot for ``key``."""
        self.cache.set(key, data, ttl_seconds)
        self.cache.set(stale_key(key), data, ttl_seconds * self.stale_multiplier)

    async def _refresh(
        self,
        url: str,
        options: Optional[Dict[str, Any]],
        key: str,
        ttl_seconds: int,
        delay: float,
    ) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await self._fetch_and_store(url, options, key, ttl_seconds)
            self.logger.debug("Background refresh completed", key=key, url=url)
        except FetchError as exc:
            self.logger.warning("Background refresh failed", key=key, url=url, error=exc.message)

    async def _fetch_and_store(
        self,
        url: str,
        options: Optional[Dict[str, Any]],
        key: str,
        ttl_seconds: int,
    ) -> Any:
        start = time.perf_counter()
        outcome = "error"
        try:
            response = await self._request(url, options, self.timeout)

            if not response.is_success:
                raise HttpError(url, response.status_code, response.reason_phrase)

            try:
                data = response.json()
            except ValueError as exc:
                raise ParseError(url, f"Invalid JSON response from {url}: {exc}") from exc

            self.store(key, data, self.effective_ttl(url, ttl_seconds))
            outcome = "success"
            return data
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "cache_fetch_duration_seconds",
                    time.perf_counter() - start,
                    outcome=outcome,
                )

    async def _request(self, url: str, options: Optional[Dict[str, Any]], timeout: float) -> httpx.Response:
        options = options or {}
        headers = {**DEFAULT_HEADERS, **(options.get("headers") or {})}
        try:
            return await self._get_client().get(
                url,
                headers=headers,
                params=options.get("params"),
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(url, f"Timeout fetching {url} after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(url, f"Network error fetching {url}: {exc}") from exc

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def _record_source(self, source: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_fetch_total", source=source)
