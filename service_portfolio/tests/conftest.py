"""
Shared fixtures for Portfolio Edge unit tests.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from service_portfolio.app.caching.storage import MemoryStorage
from service_portfolio.app.caching.ttl_cache import TTLCache


class FakeClock:
    """Manually advanced wall clock (seconds since epoch)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingAPI:
    """httpx.MockTransport handler serving canned JSON per path."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def calls(self, path: Optional[str] = None) -> int:
        if path is None:
            return len(self.requests)
        return sum(1 for request in self.requests if request.url.path == path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "not found"})
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            # fresh copy per request so a canned response can be served repeatedly
            return httpx.Response(route.status_code, headers=route.headers, content=route.read())
        if callable(route):
            return route(request)
        return httpx.Response(200, content=json.dumps(route), headers={"Content-Type": "application/json"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def cache(storage, clock) -> TTLCache:
    return TTLCache(storage, clock=clock)


@pytest.fixture
def make_api() -> Callable[..., RecordingAPI]:
    return RecordingAPI


@pytest.fixture
def portfolio_content() -> Dict[str, Any]:
    return {
        "/api/projects": [
            {"_id": "p1", "title": "Vendora", "featured": True},
            {"_id": "p2", "title": "Weatherly", "featured": False},
        ],
        "/api/contact-details": {"email": "hello@example.com", "location": "India"},
        "/api/about": {"title": "About me"},
        "/api/hero": {"name": "Y"},
        "/api/resume/current": {"hasResume": True, "resumeUrl": "/blob/resume.pdf"},
        "/api/health": {"status": "ok"},
    }
