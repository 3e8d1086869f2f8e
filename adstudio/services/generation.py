import uuid
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from adstudio.core.config import settings
from adstudio.core.errors import InternalError, ValidationFailed, VendorError
from adstudio.core.security import callback_token
from adstudio.models import AssetType, Job, JobStatus, ProviderId, utcnow
from adstudio.providers import ProviderRegistry

from .ledger import CreditLedger
from .pricing import credit_cost
from .resolver import JobResolver

logger = structlog.get_logger()

MIN_MERGE_VIDEOS = 2
MAX_MERGE_VIDEOS = 10


def callback_url(provider: ProviderId) -> str | None:
    if not settings.callbacks_enabled:
        return None
    base = settings.callback_base_url.rstrip("/")
    name = provider.value.lower()
    return f"{base}{settings.api_prefix}/callbacks/{name}?token={callback_token(name)}"


class GenerationService:
    """Charges for, submits and manages generation jobs."""

    def __init__(self, db: Session, registry: ProviderRegistry, publisher=None) -> None:
        self.db = db
        self.registry = registry
        self.publisher = publisher
        self.ledger = CreditLedger(db)
        self.resolver = JobResolver(db, registry, publisher, rehost=settings.rehost_media)

    def submit(self, user_id: uuid.UUID, asset_type: AssetType, params: dict[str, Any]) -> Job:
        """Debit credits, persist the job, then hand it to the vendor.

        The debit and the job row commit together before any vendor call, so
        a crash in between leaves a PENDING job that the staleness sweep
        refunds. A vendor rejection refunds immediately.
        """
        cost = credit_cost(asset_type, params)
        adapter = self.registry.route(asset_type, params)

        job = Job(
            id=uuid.uuid4(),
            user_id=user_id,
            asset_type=asset_type,
            status=JobStatus.PENDING,
            input_params=params,
            credits_used=cost,
        )
        try:
            self.ledger.deduct(user_id, cost, feature=asset_type, job_id=job.id)
            self.db.add(job)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "job_created",
            job_id=str(job.id),
            user_id=str(user_id),
            asset_type=asset_type.value,
            provider=adapter.provider.value,
            credits=cost,
        )
        self._dispatch(job, adapter)
        return job

    def _dispatch(self, job: Job, adapter=None) -> None:
        adapter = adapter or self.registry.route(job.asset_type, job.input_params)
        try:
            result = adapter.submit(job.asset_type, job.input_params, callback_url(adapter.provider))
        except Exception as e:
            self.db.rollback()
            message = str(e) if isinstance(e, VendorError) else "Failed to submit generation"
            logger.error("job_submit_failed", job_id=str(job.id), error=str(e))
            self.resolver.fail(job, message, "Refund for rejected generation")
            self.db.commit()
            if isinstance(e, VendorError):
                raise
            raise InternalError(message) from e

        job.provider = adapter.provider
        job.provider_task_id = result.task_id
        job.provider_model = result.model
        job.submitted_at = utcnow()
        self.resolver.advance(job, JobStatus.IN_QUEUE, "SUBMITTED", {"task_id": result.task_id})
        self.db.commit()
        logger.info("job_submitted", job_id=str(job.id), provider=adapter.provider.value, task_id=result.task_id)

    def merge(self, user_id: uuid.UUID, job_ids: list[uuid.UUID]) -> Job:
        """Concatenate finished video ads into one clip on the media worker."""
        if not MIN_MERGE_VIDEOS <= len(job_ids) <= MAX_MERGE_VIDEOS:
            raise ValidationFailed(f"Merge needs between {MIN_MERGE_VIDEOS} and {MAX_MERGE_VIDEOS} videos")

        found = {
            job.id: job
            for job in self.db.execute(
                select(Job).where(Job.id.in_(job_ids), Job.user_id == user_id)
            ).scalars()
        }
        urls = []
        for job_id in job_ids:
            source = found.get(job_id)
            if (
                source is None
                or source.asset_type != AssetType.VIDEO_AD
                or source.status != JobStatus.COMPLETED
                or not source.result_url
            ):
                raise ValidationFailed(f"Video {job_id} is not a completed video ad")
            urls.append(source.result_url)

        job = Job(
            id=uuid.uuid4(),
            user_id=user_id,
            asset_type=AssetType.VIDEO_MERGE,
            status=JobStatus.PENDING,
            input_params={"source_job_ids": [str(j) for j in job_ids], "video_urls": urls},
            credits_used=credit_cost(AssetType.VIDEO_MERGE, {}),
        )
        self.db.add(job)
        self.resolver.advance(job, JobStatus.IN_QUEUE, "SUBMITTED", {"videos": len(urls)})
        self.db.commit()
        self.resolver.schedule_postprocess(job)
        logger.info("merge_queued", job_id=str(job.id), videos=len(urls))
        return job

    def retry(self, job: Job) -> Job:
        """Resubmit a FAILED job, charging again if its credits were refunded."""
        if job.asset_type == AssetType.UPLOAD:
            raise ValidationFailed("Uploads cannot be retried")

        try:
            # Only one concurrent retry can move the row out of FAILED
            claimed = self.db.execute(
                update(Job)
                .where(Job.id == job.id, Job.status == JobStatus.FAILED)
                .values(status=JobStatus.PENDING, submitted_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise ValidationFailed("Only failed jobs can be retried")
            job = self.db.execute(
                select(Job).where(Job.id == job.id).execution_options(populate_existing=True)
            ).scalar_one()

            if job.refunded_at is not None:
                self.ledger.deduct(
                    job.user_id,
                    job.credits_used,
                    feature=job.asset_type,
                    job_id=job.id,
                    description=f"{job.asset_type.value} retry",
                )
                job.refunded_at = None

            job.error_message = None
            job.provider_output_urls = None
            job.result_url = None
            job.thumbnail_url = None
            job.completed_at = None
            job.retry_count += 1
            self.resolver.log_event(job, "RETRY_REQUESTED", JobStatus.FAILED, JobStatus.PENDING)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("job_retry", job_id=str(job.id), attempt=job.retry_count)
        if job.asset_type == AssetType.VIDEO_MERGE:
            self.resolver.advance(job, JobStatus.IN_QUEUE, "SUBMITTED")
            self.db.commit()
            self.resolver.schedule_postprocess(job)
        else:
            self._dispatch(job)
        return job

    def cancel(self, job: Job) -> Job:
        if job.status.is_terminal:
            raise ValidationFailed(f"Job is already {job.status.value}")

        task = job.task_ref
        if task is not None:
            try:
                self.registry.get(task.provider).cancel(task)
            except VendorError as e:
                logger.warning("vendor_cancel_failed", job_id=str(job.id), error=str(e))

        self.resolver.advance(job, JobStatus.CANCELLED, "CANCELLED")
        self.ledger.refund_job(job, "Refund for cancelled generation")
        self.db.commit()
        logger.info("job_cancelled", job_id=str(job.id))
        return job

    def refund_and_delete(self, job: Job) -> int:
        if job.status != JobStatus.FAILED:
            raise ValidationFailed("Only failed jobs can be refunded")
        refunded = self.ledger.refund_job(job, "Refund for failed generation")
        self.db.delete(job)
        self.db.commit()
        logger.info("job_refunded_and_deleted", job_id=str(job.id), refunded=refunded)
        return refunded

    def delete(self, job: Job) -> None:
        """Remove a job; unfinished work is cancelled and refunded first."""
        if not job.status.is_terminal:
            self.cancel(job)
        elif job.status == JobStatus.FAILED:
            self.ledger.refund_job(job)
        self.db.delete(job)
        self.db.commit()
        logger.info("job_deleted", job_id=str(job.id))
