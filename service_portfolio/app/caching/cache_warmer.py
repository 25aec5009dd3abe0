"""
Cache warming for the portfolio sections.

The backend runs on a serverless platform and can take several seconds to
answer its first request. The warmer fetches every section up front with
bounded retries, falls back to stale copies, and schedules delayed retries
for whatever still failed.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from shared.errors import FetchError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from .cached_fetch import CachedFetcher
from .ttl_cache import DEFAULT_TTL_SECONDS, stale_key

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


# (endpoint path, logical cache key)
WARM_ENDPOINTS: Tuple[Tuple[str, str], ...] = (
    ("projects", "projects-list"),
    ("contact-details", "contact-details"),
    ("about", "about-content"),
    ("hero", "hero-content"),
)
DEFAULT_RETRY_COUNT = 3
WARM_RETRY_COUNT = 1
WARM_SCHEDULE: Tuple[float, ...] = (0.0, 2.0, 5.0, 10.0)
FAILED_RETRY_DELAY = 5.0


class EndpointState(str, Enum):
    """Per-endpoint warm state."""
    UNFETCHED = "unfetched"
    FETCHING = "fetching"
    FRESH = "fresh"
    STALE_FALLBACK = "stale_fallback"
    FAILED = "failed"


@dataclass
class EndpointResult:
    """Outcome of warming one endpoint."""

    endpoint: str
    cache_key: str
    state: EndpointState
    attempts: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "cache_key": self.cache_key,
            "state": self.state.value,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class PreCacheReport:
    """Summary of one pre-cache pass."""

    base_url: str
    results: List[EndpointResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def failed(self) -> List[EndpointResult]:
        return [result for result in self.results if result.state == EndpointState.FAILED]

    @property
    def all_fresh(self) -> bool:
        return all(result.state == EndpointState.FRESH for result in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "duration_seconds": round(self.duration_seconds, 3),
            "results": [result.to_dict() for result in self.results],
            "failed": [result.endpoint for result in self.failed],
        }


class CacheWarmer:
    """Pre-populate the cache for the known portfolio endpoints."""

    def __init__(
        self,
        fetcher: CachedFetcher,
        *,
        endpoints: Tuple[Tuple[str, str], ...] = WARM_ENDPOINTS,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        backoff_base: float = 2.0,
        failed_retry_delay: float = FAILED_RETRY_DELAY,
        warm_schedule: Tuple[float, ...] = WARM_SCHEDULE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.fetcher = fetcher
        self.cache = fetcher.cache
        self.endpoints = endpoints
        self.ttl_seconds = ttl_seconds
        self.backoff_base = backoff_base
        self.failed_retry_delay = failed_retry_delay
        self.warm_schedule = warm_schedule
        self.metrics = metrics
        self.logger = get_logger("portfolio.cache_warmer")
        self._sleep = sleep
        self.states: Dict[str, EndpointState] = {
            endpoint: EndpointState.UNFETCHED for endpoint, _ in endpoints
        }

    async def pre_cache_data(self, base_url: str, retry_count: int = DEFAULT_RETRY_COUNT) -> PreCacheReport:
        """Fetch every endpoint in parallel, each with its own retry loop."""
        base_url = base_url.rstrip("/")
        start = time.perf_counter()

        outcomes = await asyncio.gather(
            *(self._warm_endpoint(base_url, endpoint, key, retry_count) for endpoint, key in self.endpoints),
            return_exceptions=True,
        )

        report = PreCacheReport(base_url=base_url)
        for (endpoint, key), outcome in zip(self.endpoints, outcomes):
            if isinstance(outcome, Exception):
                self.logger.error("Cache warm task crashed", endpoint=endpoint, error=str(outcome))
                outcome = EndpointResult(endpoint, key, EndpointState.FAILED, error=str(outcome))
                self.states[endpoint] = EndpointState.FAILED
            report.results.append(outcome)
            if self.metrics:
                self.metrics.increment_counter("cache_warm_total", endpoint=endpoint, state=outcome.state.value)

        for result in report.failed:
            self.schedule_retry(base_url, result.endpoint, result.cache_key)

        report.duration_seconds = time.perf_counter() - start
        self.logger.info(
            "Pre-cache completed",
            base_url=base_url,
            results={result.endpoint: result.state.value for result in report.results},
            failed=len(report.failed),
            duration_ms=round(report.duration_seconds * 1000, 2),
        )
        return report

    async def warm_cache(self, base_url: str) -> List[PreCacheReport]:
        """Absorb backend cold starts with repeated, spaced pre-cache passes.

        Production only. Passes start at the offsets in ``warm_schedule`` and
        stop once every endpoint is fresh.
        """
        if not self.fetcher.is_production:
            self.logger.debug("Cache warm skipped outside production")
            return []

        base_url = base_url.rstrip("/")
        healthy = await self.fetcher.ping(f"{base_url}/health")
        self.logger.info("Backend health ping", base_url=base_url, healthy=healthy)

        reports: List[PreCacheReport] = []
        elapsed = 0.0
        for offset in self.warm_schedule:
            wait = offset - elapsed
            if wait > 0:
                await self._sleep(wait)
            elapsed = max(elapsed, offset)

            report = await self.pre_cache_data(base_url, retry_count=WARM_RETRY_COUNT)
            reports.append(report)
            if report.all_fresh:
                break

        return reports

    def schedule_retry(self, base_url: str, endpoint: str, cache_key: str) -> asyncio.Task:
        """Retry a failed endpoint later via the fetcher's background refresh."""
        self.logger.info(
            "Scheduling background retry for failed endpoint",
            endpoint=endpoint,
            delay=self.failed_retry_delay,
        )
        self.states[endpoint] = EndpointState.FETCHING
        task = self.fetcher.background_refresh(
            f"{base_url}/{endpoint}",
            None,
            cache_key,
            self.ttl_seconds,
            delay=self.failed_retry_delay,
        )
        task.add_done_callback(lambda _task: self._settle(endpoint, cache_key))
        return task

    def _settle(self, endpoint: str, cache_key: str) -> None:
        if self.cache.get(cache_key) is not None:
            self.states[endpoint] = EndpointState.FRESH
        elif self.cache.get(stale_key(cache_key)) is not None:
            self.states[endpoint] = EndpointState.STALE_FALLBACK
        else:
            self.states[endpoint] = EndpointState.FAILED

    async def _warm_endpoint(self, base_url: str, endpoint: str, cache_key: str, retry_count: int) -> EndpointResult:
        self.states[endpoint] = EndpointState.FETCHING
        url = f"{base_url}/{endpoint}"
        attempts = 0

        async def attempt():
            nonlocal attempts
            attempts += 1
            return await self.fetcher.fetch(url, None, cache_key, self.ttl_seconds)

        config = RetryConfig(
            max_attempts=retry_count,
            base_delay=self.backoff_base,
            exponential_base=2.0,
            jitter=False,
        )
        retrying = retry_on_exception((FetchError,), config, sleep=self._sleep)(attempt)

        try:
            await retrying()
        except RetryError as exc:
            error = str(exc.last_exception)
            if self.cache.get(stale_key(cache_key)) is not None:
                self.logger.warning("Using stale cache after retries exhausted", endpoint=endpoint, error=error)
                state = EndpointState.STALE_FALLBACK
            else:
                self.logger.error("Endpoint failed after retries", endpoint=endpoint, attempts=attempts, error=error)
                state = EndpointState.FAILED
            self.states[endpoint] = state
            return EndpointResult(endpoint, cache_key, state, attempts=attempts, error=error)

        # A stale answer served by the fetcher still leaves the fresh slot empty
        state = EndpointState.FRESH if self.cache.get(cache_key) is not None else EndpointState.STALE_FALLBACK
        self.states[endpoint] = state
        return EndpointResult(endpoint, cache_key, state, attempts=attempts)
