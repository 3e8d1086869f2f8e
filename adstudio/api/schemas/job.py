from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from adstudio.models.job import AssetType, JobStatus, ProviderId


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: UUID
    asset_type: AssetType
    status: JobStatus
    provider: ProviderId | None = None
    input_params: dict[str, Any]
    result_url: str | None = None
    thumbnail_url: str | None = None
    result_metadata: dict[str, Any] | None = None
    error_message: str | None = None
    credits_used: int
    refunded: bool = False
    retry_count: int
    created_at: datetime
    submitted_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job) -> "JobResponse":
        response = cls.model_validate(job)
        response.refunded = job.refunded_at is not None
        return response


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    task_id: UUID
    status: JobStatus
    result_url: str | None = None
    thumbnail_url: str | None = None
    error: str | None = None
    queue_position: int | None = None


class RefundResponse(BaseModel):
    refunded: int
