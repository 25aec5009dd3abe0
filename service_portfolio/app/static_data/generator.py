"""
Build-time static snapshot generation.

Fetches the portfolio API once during the site build and writes JSON
snapshots the site can read without any network call. A failing section
never fails the build: it is reported in the build metadata and the
runtime loader falls back to older snapshots or built-in defaults.
"""

import asyncio
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Union

import httpx

from shared.errors import FetchError, HttpError, NetworkError, ParseError, ValidationError
from shared.logging import get_logger
from .models import (
    BuildEnvironment,
    BuildMetadata,
    DataCounts,
    DataStatus,
    StaticDataWrapper,
)

PROJECTS_FILE = "projects.json"
CONTACT_FILE = "contact-details.json"
RESUME_FILE = "resume-status.json"
BUILD_METADATA_FILE = "build-metadata.json"
DEFAULT_TIMEOUT_SECONDS = 30.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


class StaticDataGenerator:
    """Fetch API data and write the static snapshot files."""

    def __init__(
        self,
        api_base_url: str,
        output_dir: Union[str, Path],
        fallback_dir: Optional[Union[str, Path]] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        env: str = "development",
        version: str = "1.0.0",
        now: Callable[[], datetime] = _utc_now,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.output_dir = Path(output_dir)
        self.fallback_dir = Path(fallback_dir) if fallback_dir else None
        self.timeout = timeout
        self.env = env
        self.version = version
        self.logger = get_logger("portfolio.static_data.generator")
        self._client = client
        self._now = now

    @property
    def target_dirs(self) -> Iterable[Path]:
        dirs = [self.output_dir]
        if self.fallback_dir is not None and self.fallback_dir != self.output_dir:
            dirs.append(self.fallback_dir)
        return dirs

    async def fetch_data(self, url: str) -> Any:
        """GET ``url`` and decode JSON, raising FetchError subclasses on failure."""
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise NetworkError(url, f"Timeout fetching {url} after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(url, f"Network error fetching {url}: {exc}") from exc

        if not response.is_success:
            raise HttpError(url, response.status_code, response.reason_phrase)

        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(url, f"Invalid JSON response from {url}: {exc}") from exc

    async def generate_projects_data(self) -> Optional[StaticDataWrapper]:
        self.logger.info("Generating projects data")
        try:
            projects = await self.fetch_data(f"{self.api_base_url}/projects")
            if not isinstance(projects, list):
                raise ValidationError("Projects data is not an array")

            snapshot = StaticDataWrapper(
                data=projects,
                count=len(projects),
                featured=[project for project in projects if isinstance(project, dict) and project.get("featured")],
                last_updated=_iso(self._now()),
                source="database",
            )
            self._write(PROJECTS_FILE, snapshot.to_json_dict())
        except (FetchError, ValidationError, OSError) as exc:
            self.logger.error("Failed to generate projects data", error=str(exc))
            return None

        self.logger.info("Generated projects data", count=len(projects))
        return snapshot

    async def generate_contact_data(self) -> Optional[StaticDataWrapper]:
        self.logger.info("Generating contact data")
        try:
            contact = await self.fetch_data(f"{self.api_base_url}/contact-details")
            if not isinstance(contact, dict):
                raise ValidationError("Contact details data is invalid")

            snapshot = StaticDataWrapper(data=contact, last_updated=_iso(self._now()), source="database")
            self._write(CONTACT_FILE, snapshot.to_json_dict())
        except (FetchError, ValidationError, OSError) as exc:
            self.logger.error("Failed to generate contact data", error=str(exc))
            return None

        self.logger.info("Generated contact details data")
        return snapshot

    async def generate_resume_data(self) -> Optional[StaticDataWrapper]:
        self.logger.info("Generating resume data")
        try:
            resume = await self.fetch_data(f"{self.api_base_url}/resume/current")
            snapshot = StaticDataWrapper(data=resume, last_updated=_iso(self._now()), source="database")
            self._write(RESUME_FILE, snapshot.to_json_dict())
        except (FetchError, OSError) as exc:
            self.logger.error("Failed to generate resume data", error=str(exc))
            return None

        self.logger.info("Generated resume status data")
        return snapshot

    def generate_build_metadata(
        self,
        projects: Optional[StaticDataWrapper],
        contact: Optional[StaticDataWrapper],
        resume: Optional[StaticDataWrapper],
    ) -> BuildMetadata:
        moment = self._now()
        metadata = BuildMetadata(
            build_time=_iso(moment),
            build_id=str(int(moment.timestamp() * 1000)),
            version=self.version,
            data_status=DataStatus(
                projects="success" if projects else "failed",
                contact="success" if contact else "failed",
                resume="success" if resume else "failed",
            ),
            counts=DataCounts(
                projects=len(projects.data) if projects else 0,
                featured_projects=len(projects.featured or []) if projects else 0,
            ),
            environment=BuildEnvironment(env=self.env, api_base_url=self.api_base_url),
        )
        self._write(BUILD_METADATA_FILE, metadata.to_json_dict())
        self.logger.info("Generated build metadata", build_id=metadata.build_id)
        return metadata

    async def run(self) -> BuildMetadata:
        """Generate every snapshot concurrently, then the build metadata."""
        self.logger.info(
            "Starting static data generation",
            api_base_url=self.api_base_url,
            output_dir=str(self.output_dir),
        )
        start = time.perf_counter()

        projects, contact, resume = await asyncio.gather(
            self.generate_projects_data(),
            self.generate_contact_data(),
            self.generate_resume_data(),
        )
        metadata = self.generate_build_metadata(projects, contact, resume)

        status = metadata.data_status
        self.logger.info(
            "Static data generation completed",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            status=f"{status.projects}/{status.contact}/{status.resume}",
            complete=bool(projects and contact and resume),
        )
        return metadata

    def _write(self, filename: str, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload, indent=2)
        for directory in self.target_dirs:
            directory.mkdir(parents=True, exist_ok=True)
            (directory / filename).write_text(body, encoding="utf-8")
