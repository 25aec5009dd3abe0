"""
Mock portfolio API providing the content endpoints the edge service caches.
"""

import asyncio
from collections import Counter
from typing import Any, Dict, Optional, Set
from fastapi import FastAPI, HTTPException

from shared.logging import get_logger


class MockPortfolioServer:
    """Mock portfolio backend with switchable failures and cold starts."""

    def __init__(self, port: int = 5002, cold_start_delay: float = 0.0):
        self.port = port
        self.logger = get_logger("mock.portfolio_api")
        self.app = FastAPI(title="Mock Portfolio API", version="1.0.0")

        self.cold_start_delay = cold_start_delay
        self.failing: Set[str] = set()
        self.requests: Counter = Counter()
        self._warm = False

        self.content: Dict[str, Any] = {
            "projects": [
                {"_id": "p1", "title": "Vendora", "featured": True, "technologies": ["NextJs", "MongoDb"]},
                {"_id": "p2", "title": "Weatherly", "featured": False, "technologies": ["React"]},
                {"_id": "p3", "title": "Ledger", "featured": True, "technologies": ["Express"]},
            ],
            "contact-details": {
                "_id": "c1",
                "email": "hello@example.com",
                "location": "India",
                "github": "https://github.com/example",
            },
            "about": {"title": "About me", "paragraphs": ["Full-stack developer."]},
            "hero": {"name": "Example Dev", "title": "Software Engineer"},
            "resume/current": {"hasResume": True, "resumeUrl": "/blob/resume/current.pdf"},
        }

        self._setup_routes()

    def fail(self, *sections: str) -> None:
        """Make the given sections answer 503 until recovered."""
        self.failing.update(sections)

    def recover(self, *sections: str) -> None:
        if sections:
            self.failing.difference_update(sections)
        else:
            self.failing.clear()

    async def _serve(self, section: str) -> Any:
        self.requests[section] += 1
        if not self._warm and self.cold_start_delay:
            await asyncio.sleep(self.cold_start_delay)
        self._warm = True
        if section in self.failing:
            self.logger.info("Simulated failure", section=section)
            raise HTTPException(status_code=503, detail="Service Unavailable")
        return self.content[section]

    def _setup_routes(self):
        @self.app.get("/api/health")
        async def health() -> Dict[str, str]:
            self.requests["health"] += 1
            return {"status": "ok"}

        @self.app.get("/api/projects")
        async def projects():
            return await self._serve("projects")

        @self.app.get("/api/contact-details")
        async def contact_details():
            return await self._serve("contact-details")

        @self.app.get("/api/about")
        async def about():
            return await self._serve("about")

        @self.app.get("/api/hero")
        async def hero():
            return await self._serve("hero")

        @self.app.get("/api/resume/current")
        async def resume():
            return await self._serve("resume/current")


def create_mock_server(cold_start_delay: Optional[float] = None) -> MockPortfolioServer:
    return MockPortfolioServer(cold_start_delay=cold_start_delay or 0.0)


if __name__ == "__main__":
    import uvicorn

    server = MockPortfolioServer()
    uvicorn.run(server.app, host="0.0.0.0", port=server.port)
