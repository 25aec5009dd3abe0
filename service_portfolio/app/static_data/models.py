"""
Static snapshot file formats.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StaticDataWrapper(BaseModel):
    """Envelope written around every snapshot payload."""

    model_config = ConfigDict(populate_by_name=True)

    data: Any
    last_updated: str = Field(alias="lastUpdated")
    source: str = "database"
    count: Optional[int] = None
    featured: Optional[List[Any]] = None

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DataStatus(BaseModel):
    projects: str = "failed"
    contact: str = "failed"
    resume: str = "failed"


class DataCounts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    projects: int = 0
    featured_projects: int = Field(default=0, alias="featuredProjects")


class BuildEnvironment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    env: str
    api_base_url: str = Field(alias="apiBaseUrl")


class BuildMetadata(BaseModel):
    """Describes the build that produced the snapshots."""

    model_config = ConfigDict(populate_by_name=True)

    build_time: str = Field(alias="buildTime")
    build_id: str = Field(alias="buildId")
    version: str
    data_status: DataStatus = Field(alias="dataStatus")
    counts: DataCounts
    environment: BuildEnvironment

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
