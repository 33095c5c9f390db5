from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.jobs.models import Job


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names (jobType, createdAt) like the rest of the product's API."""

    model_config = ConfigDict(populate_by_name=True)


class CreateJobRequest(CamelModel):
    """Request body for POST /ai/jobs. Why available: Carries the job type (selects the prompt) and the opaque generation payload."""

    job_type: str = Field(..., alias="jobType", min_length=1, max_length=64)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Generation inputs, e.g. {'topic': 'launch'}")


class CreateJobResponse(CamelModel):
    """Response for POST /ai/jobs: either a cached result (jobId null) or the id of the queued job to poll."""

    job_id: Optional[str] = Field(None, alias="jobId")
    status: str
    cached: bool = False
    result: Optional[Any] = None


class JobStatusResponse(CamelModel):
    """Job as returned to pollers. The payload is not echoed back."""

    id: str
    job_type: str = Field(..., alias="jobType")
    status: str = Field(..., description="queued | processing | completed | failed")
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            id=job.id,
            job_type=job.job_type,
            status=job.status,
            result=job.result,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class JobListResponse(BaseModel):
    jobs: List[JobStatusResponse] = Field(default_factory=list)


class StaleSweepResponse(CamelModel):
    failed_job_ids: List[str] = Field(default_factory=list, alias="failedJobIds")
    count: int = Field(..., ge=0)


class HealthResponse(BaseModel):
    status: str
    store: str
    generator_configured: bool
    cache: Dict[str, int] = Field(default_factory=dict)


class UsageResponse(BaseModel):
    """This month's AI usage for the caller: count, plan limit, remaining, and whether another job is allowed."""

    count: int
    limit: int
    remaining: int
    month: str
    allowed: bool
