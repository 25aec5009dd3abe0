"""
Cache invalidation helpers used after content edits.
"""

from typing import Any, Dict, Iterable, List

from shared.logging import get_logger
from .ttl_cache import DEFAULT_TTL_SECONDS, TTLCache, stale_key

logger = get_logger("portfolio.cache.invalidation")

ENDPOINT_CACHE_KEYS: Dict[str, str] = {
    "projects": "projects-list",
    "contact-details": "contact-details",
    "about": "about-content",
    "hero": "hero-content",
}
PROJECTS_KEY = ENDPOINT_CACHE_KEYS["projects"]
PROJECTS_STALE_TTL_MULTIPLIER = 3


def get_cache_key(endpoint: str) -> str:
    """Map an endpoint name to its logical cache key."""
    return ENDPOINT_CACHE_KEYS.get(endpoint.strip("/"), endpoint)


def invalidate_cache(cache: TTLCache, keys: Iterable[str]) -> List[str]:
    """Delete the fresh and stale slot of every key."""
    invalidated = []
    for key in keys:
        cache.delete(key)
        cache.delete(stale_key(key))
        invalidated.append(key)
    logger.info("Invalidated cache", keys=invalidated)
    return invalidated


def clear_projects_cache(cache: TTLCache) -> None:
    invalidate_cache(cache, [PROJECTS_KEY])


def update_projects_cache(cache: TTLCache, projects: List[Any], ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
    """Replace cached projects with fresh data instead of clearing them."""
    cache.set(PROJECTS_KEY, projects, ttl_seconds)
    cache.set(stale_key(PROJECTS_KEY), projects, ttl_seconds * PROJECTS_STALE_TTL_MULTIPLIER)
    logger.info("Updated projects cache", count=len(projects))


def clear_all_cache(cache: TTLCache) -> None:
    cache.clear()
    logger.info("Cleared all cache")
