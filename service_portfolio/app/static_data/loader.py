"""
Runtime loading of static snapshots with layered fallbacks.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from .defaults import DEFAULT_CONTACT, DEFAULT_PROJECTS, DEFAULT_RESUME
from .generator import BUILD_METADATA_FILE, CONTACT_FILE, PROJECTS_FILE, RESUME_FILE
from .models import BuildMetadata, StaticDataWrapper

SNAPSHOT_DEFAULTS: Dict[str, Any] = {
    PROJECTS_FILE: DEFAULT_PROJECTS,
    CONTACT_FILE: DEFAULT_CONTACT,
    RESUME_FILE: DEFAULT_RESUME,
}


@dataclass
class PreloadResult:
    projects: StaticDataWrapper
    contact: StaticDataWrapper
    resume: StaticDataWrapper
    metadata: Optional[BuildMetadata]
    load_time_ms: float

    def summary(self) -> Dict[str, Any]:
        return {
            "projects": len(self.projects.data or []),
            "projects_source": self.projects.source,
            "contact_source": self.contact.source,
            "resume_source": self.resume.source,
            "build_id": self.metadata.build_id if self.metadata else None,
            "load_time_ms": self.load_time_ms,
        }


class StaticDataLoader:
    """Load snapshots from the public directory, then the fallback directory,
    then built-in defaults. Loading never raises."""

    def __init__(
        self,
        public_dir: Union[str, Path],
        fallback_dir: Optional[Union[str, Path]] = None,
    ):
        self.public_dir = Path(public_dir)
        self.fallback_dir = Path(fallback_dir) if fallback_dir else None
        self.logger = get_logger("portfolio.static_data.loader")

    def load(self, filename: str, default: Any) -> StaticDataWrapper:
        """Return the first readable snapshot for ``filename``."""
        snapshot = self._read_snapshot(self.public_dir, filename)
        if snapshot is not None:
            self.logger.debug("Loaded static data", filename=filename, origin="public")
            return snapshot

        if self.fallback_dir is not None:
            snapshot = self._read_snapshot(self.fallback_dir, filename)
            if snapshot is not None:
                self.logger.debug("Loaded static data", filename=filename, origin="fallback")
                return snapshot

        self.logger.info("Using default data", filename=filename)
        return StaticDataWrapper(
            data=default,
            last_updated=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            source="default",
        )

    def load_snapshot(self, filename: str) -> Optional[StaticDataWrapper]:
        """Load a known snapshot by file name; None for unknown names."""
        if filename not in SNAPSHOT_DEFAULTS:
            return None
        return self.load(filename, SNAPSHOT_DEFAULTS[filename])

    def load_projects(self) -> StaticDataWrapper:
        return self.load(PROJECTS_FILE, DEFAULT_PROJECTS)

    def load_contact(self) -> StaticDataWrapper:
        return self.load(CONTACT_FILE, DEFAULT_CONTACT)

    def load_resume(self) -> StaticDataWrapper:
        return self.load(RESUME_FILE, DEFAULT_RESUME)

    def load_build_metadata(self) -> Optional[BuildMetadata]:
        payload = self._read_json(self.public_dir / BUILD_METADATA_FILE)
        if payload is None:
            self.logger.info("Build metadata not available")
            return None
        try:
            return BuildMetadata.model_validate(payload)
        except PydanticValidationError as exc:
            self.logger.warning("Invalid build metadata", error=str(exc))
            return None

    async def preload_all(self) -> PreloadResult:
        """Load every snapshot concurrently."""
        start = time.perf_counter()
        projects, contact, resume, metadata = await asyncio.gather(
            asyncio.to_thread(self.load_projects),
            asyncio.to_thread(self.load_contact),
            asyncio.to_thread(self.load_resume),
            asyncio.to_thread(self.load_build_metadata),
        )
        result = PreloadResult(
            projects=projects,
            contact=contact,
            resume=resume,
            metadata=metadata,
            load_time_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        self.logger.info("Static data preload completed", **result.summary())
        return result

    def _read_snapshot(self, directory: Path, filename: str) -> Optional[StaticDataWrapper]:
        payload = self._read_json(directory / filename)
        if payload is None:
            return None
        try:
            return StaticDataWrapper.model_validate(payload)
        except PydanticValidationError as exc:
            self.logger.warning("Invalid static snapshot", path=str(directory / filename), error=str(exc))
            return None

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            self.logger.warning("Failed to read static data", path=str(path), error=str(exc))
            return None
        return payload if isinstance(payload, dict) else None
