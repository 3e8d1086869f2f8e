from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status

from adstudio.api.dependencies import (
    CurrentUser,
    DatabaseSession,
    Generations,
    OwnedJob,
    Providers,
    Publisher,
)
from adstudio.api.schemas import JobListResponse, JobResponse, JobStatusResponse, RefundResponse
from adstudio.core.config import settings
from adstudio.models import AssetType, Job
from adstudio.services import JobResolver

logger = structlog.get_logger()
router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="Lists the authenticated user's jobs, newest first.",
)
def list_jobs(
    current_user: CurrentUser,
    db: DatabaseSession,
    asset_type: AssetType | None = Query(None, alias="assetType"),
    skip: int = Query(0, ge=0, description="Items to skip"),
    limit: int = Query(50, ge=1, le=100, description="Page size"),
):
    query = db.query(Job).filter(Job.user_id == current_user.id)
    if asset_type is not None:
        query = query.filter(Job.asset_type == asset_type)
    total = query.count()
    jobs = query.order_by(Job.created_at.desc()).offset(skip).limit(limit).all()
    return JobListResponse(jobs=[JobResponse.from_job(j) for j in jobs], total=total)


@router.get("/{job_id}", response_model=JobResponse, summary="Job details")
def get_job(job: OwnedJob):
    return JobResponse.from_job(job)


@router.get(
    "/{job_id}/status",
    response_model=JobStatusResponse,
    summary="Job status",
    description="""
Refreshes the job from its provider and returns the current status.

**Use for polling:** call periodically until the status is `COMPLETED`, `FAILED` or `CANCELLED`.
Finished jobs are answered from the database without contacting the provider.

**Statuses:**
- `PENDING` - being submitted
- `IN_QUEUE` - waiting at the provider
- `IN_PROGRESS` - generating, or re-hosting the result
- `COMPLETED` - `resultUrl` is ready
- `FAILED` - credits were refunded
- `CANCELLED` - cancelled by the user
    """,
)
def get_job_status(job: OwnedJob, db: DatabaseSession, providers: Providers, publisher: Publisher):
    resolver = JobResolver(db, providers, publisher, rehost=settings.rehost_media)
    report = resolver.poll(job)
    db.refresh(job)

    return JobStatusResponse(
        task_id=job.id,
        status=job.status,
        result_url=job.result_url,
        thumbnail_url=job.thumbnail_url,
        error=job.error_message,
        queue_position=report.queue_position if report else None,
    )


@router.post("/{job_id}/retry", response_model=JobResponse, summary="Retry a failed job")
def retry_job(job: OwnedJob, service: Generations):
    return JobResponse.from_job(service.retry(job))


@router.post("/{job_id}/cancel", response_model=JobResponse, summary="Cancel a running job")
def cancel_job(job: OwnedJob, service: Generations):
    return JobResponse.from_job(service.cancel(job))


@router.post(
    "/{job_id}/refund",
    response_model=RefundResponse,
    summary="Refund and remove a failed job",
    description="Returns the credits of a failed job (if not already refunded) and deletes it.",
)
def refund_job(job: OwnedJob, service: Generations):
    return RefundResponse(refunded=service.refund_and_delete(job))


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete job",
    description="Deletes a job. Unfinished jobs are cancelled and refunded first.",
)
def delete_job(job_id: UUID, job: OwnedJob, service: Generations):
    service.delete(job)
    logger.info("job_deleted_by_user", job_id=str(job_id))
