from datetime import datetime, timedelta

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from adstudio.core.config import settings
from adstudio.models import Job, JobStatus, utcnow

from .resolver import JobResolver

logger = structlog.get_logger()

TIMEOUT_MESSAGE = "Generation timed out"
STALE_STATUSES = (JobStatus.PENDING, JobStatus.IN_QUEUE, JobStatus.IN_PROGRESS)


def sweep_stale_jobs(
    db: Session,
    now: datetime | None = None,
    max_age_minutes: int | None = None,
    upload_max_age_minutes: int | None = None,
) -> dict[str, int]:
    """Fail and refund jobs stuck in a non-terminal state; cancel abandoned uploads."""
    now = now or utcnow()
    job_cutoff = now - timedelta(minutes=max_age_minutes or settings.job_max_age_minutes)
    upload_cutoff = now - timedelta(minutes=upload_max_age_minutes or settings.upload_max_age_minutes)
    resolver = JobResolver(db)

    stale = db.execute(
        select(Job)
        .where(Job.status.in_(STALE_STATUSES), func.coalesce(Job.submitted_at, Job.created_at) < job_cutoff)
        .with_for_update(skip_locked=True)
    ).scalars().all()
    for job in stale:
        resolver.fail(job, TIMEOUT_MESSAGE, "Refund for timed out generation")
        logger.warning("job_timed_out", job_id=str(job.id), status=job.status.value)

    abandoned = db.execute(
        select(Job)
        .where(Job.status == JobStatus.UPLOADING, Job.created_at < upload_cutoff)
        .with_for_update(skip_locked=True)
    ).scalars().all()
    for job in abandoned:
        resolver.advance(job, JobStatus.CANCELLED, "UPLOAD_EXPIRED")

    db.commit()
    if stale or abandoned:
        logger.info("stale_sweep_completed", failed=len(stale), uploads_cancelled=len(abandoned))
    return {"failed": len(stale), "uploads_cancelled": len(abandoned)}
