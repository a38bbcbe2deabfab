"""
gungnr-jobs - Job API Data Models
Wire shapes of the /api/v1/jobs endpoints. Field names are snake_case in
Python and camelCase on the wire; both are accepted when parsing.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialise with camelCase keys, as the API sends them."""
        return self.model_dump(mode="json", by_alias=True)


class Job(_WireModel):
    """Server-tracked unit of asynchronous work."""
    id: int
    type: str = ""
    status: str = ""
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    finished_at: Optional[datetime] = Field(default=None, alias="finishedAt")
    error: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class JobDetail(Job):
    """A job plus its full log, replaced wholesale on every fetch."""
    log_lines: List[str] = Field(default_factory=list, alias="logLines")

    @field_validator("log_lines", mode="before")
    @classmethod
    def _null_logs(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def from_job(cls, job: Job) -> "JobDetail":
        data = job.model_dump()
        data["log_lines"] = []
        return cls(**data)


class JobPage(_WireModel):
    """One page of job summaries from GET /jobs."""
    jobs: List[Job] = Field(default_factory=list)
    page: int = 1
    page_size: int = Field(default=25, alias="pageSize")
    total: int = 0
    total_pages: int = Field(default=0, alias="totalPages")

    @field_validator("jobs", mode="before")
    @classmethod
    def _null_jobs(cls, value: Any) -> Any:
        return [] if value is None else value


class HostDeployRequest(_WireModel):
    """Payload for POST /jobs/host-deploy."""
    job_type: str = Field(..., alias="jobType")
    payload: Dict[str, Any] = Field(default_factory=dict)


class HostDeployResponse(_WireModel):
    """A freshly created host-deploy job and its one-time worker token."""
    job: Job
    token: str
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    action: str = ""


class JobStreamEvent(BaseModel):
    """One server-sent event from GET /jobs/{id}/stream."""
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return self.event in {"done", "error"}
