"""Advances job records from vendor reports (polls, webhooks) and post-processing."""

from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from adstudio.core.errors import VendorError
from adstudio.models import Job, JobEvent, JobStatus, ProviderId, can_advance, utcnow
from adstudio.providers import MediaResult, ProviderRegistry, StatusReport

from .ledger import CreditLedger

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProcessedMedia:
    result_url: str
    thumbnail_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class JobResolver:
    def __init__(
        self,
        db: Session,
        registry: ProviderRegistry | None = None,
        publisher=None,
        rehost: bool = True,
    ) -> None:
        self.db = db
        self.registry = registry
        self.publisher = publisher
        self.rehost = rehost

    # -- state transitions (no commit) -------------------------------------

    def advance(
        self,
        job: Job,
        status: JobStatus,
        event_type: str = "STATUS_CHANGED",
        data: dict | None = None,
    ) -> bool:
        if not can_advance(job.status, status):
            return False
        old_status = job.status
        job.status = status
        if status.is_terminal:
            job.completed_at = utcnow()
        self.log_event(job, event_type, old_status, status, data)
        logger.info("job_status_changed", job_id=str(job.id), old=old_status.value, new=status.value)
        return True

    def fail(self, job: Job, error: str, refund_reason: str | None = None) -> bool:
        """Move to FAILED and refund; a no-op for jobs that are already terminal."""
        if not self.advance(job, JobStatus.FAILED, "FAILED", {"error": error[:500]}):
            return False
        job.error_message = error[:1000]
        CreditLedger(self.db).refund_job(job, refund_reason)
        return True

    def record_output(self, job: Job, media: MediaResult | None) -> bool:
        """Store vendor output. Returns True when post-processing must be queued after commit."""
        if media is None or not media.media_urls:
            self.fail(job, "No media generated")
            return False

        job.provider_output_urls = list(media.media_urls)
        if media.metadata:
            job.result_metadata = {**(job.result_metadata or {}), **media.metadata}

        if self.rehost:
            # Stays IN_PROGRESS until the worker has re-hosted the media
            self.advance(job, JobStatus.IN_PROGRESS, "OUTPUT_READY", {"count": len(media.media_urls)})
            return True

        job.result_url = media.media_urls[0]
        if job.asset_type.media_kind == "image":
            job.thumbnail_url = media.media_urls[0]
        self.advance(job, JobStatus.COMPLETED, "COMPLETED")
        return False

    def apply(
        self,
        job: Job,
        status: JobStatus | None,
        media: MediaResult | None = None,
        error: str | None = None,
    ) -> bool:
        """Apply one vendor report. Returns True when post-processing must be queued."""
        if status is None or job.status.is_terminal or job.awaiting_postprocess:
            return False
        if status == JobStatus.FAILED:
            self.fail(job, error or "Generation failed")
            return False
        if status == JobStatus.COMPLETED:
            return self.record_output(job, media)
        self.advance(job, status)
        return False

    def finish(self, job: Job, processed: ProcessedMedia) -> bool:
        if job.status.is_terminal:
            return False
        job.result_url = processed.result_url
        job.thumbnail_url = processed.thumbnail_url
        job.result_metadata = {**(job.result_metadata or {}), **processed.metadata}
        job.error_message = None
        return self.advance(job, JobStatus.COMPLETED, "COMPLETED")

    def log_event(
        self,
        job: Job,
        event_type: str,
        old_status: JobStatus | None,
        new_status: JobStatus | None,
        data: dict | None = None,
    ) -> None:
        self.db.add(
            JobEvent(
                job_id=job.id,
                event_type=event_type,
                old_status=old_status,
                new_status=new_status,
                event_data=data,
            )
        )

    # -- entry points (commit) ----------------------------------------------

    def poll(self, job: Job) -> StatusReport | None:
        """Client-driven status refresh.

        Terminal jobs and jobs already waiting on post-processing are returned
        as stored, without contacting the vendor. Vendor errors leave the job
        untouched so the next poll can try again.
        """
        task = job.task_ref
        if job.status.is_terminal or job.awaiting_postprocess or task is None:
            return None

        adapter = self.registry.get(task.provider)
        try:
            report = adapter.poll_status(task)
            media = adapter.fetch_result(task) if report.status == JobStatus.COMPLETED else None
        except VendorError as e:
            logger.warning("vendor_poll_failed", job_id=str(job.id), provider=task.provider.value, error=str(e))
            return None

        locked = self._lock(job.id)
        if locked is None:
            return report
        needs_postprocess = self.apply(locked, report.status, media, report.error)
        self.db.commit()
        if needs_postprocess:
            self.schedule_postprocess(locked)
        return report

    def handle_callback(self, provider: ProviderId, payload: dict[str, Any]) -> bool:
        """Apply a vendor webhook. Returns False when the task id is unknown."""
        adapter = self.registry.get(provider)
        event = adapter.parse_callback(payload)

        job = self._find_by_task(provider, event.task_id)
        if job is None:
            logger.warning("callback_unknown_task", provider=provider.value, task_id=event.task_id)
            return False

        media = None
        if event.status == JobStatus.COMPLETED:
            media = MediaResult(event.media_urls, event.metadata)
            if not event.media_urls and not job.status.is_terminal and not job.awaiting_postprocess:
                try:
                    media = adapter.fetch_result(job.task_ref)
                except VendorError as e:
                    logger.warning("callback_result_fetch_failed", job_id=str(job.id), error=str(e))
                    return True

        locked = self._lock(job.id)
        if locked is None:
            return False
        needs_postprocess = self.apply(locked, event.status, media, event.error)
        self.db.commit()
        if needs_postprocess:
            self.schedule_postprocess(locked)
        logger.info(
            "callback_applied",
            job_id=str(job.id),
            provider=provider.value,
            status=locked.status.value,
        )
        return True

    def schedule_postprocess(self, job: Job) -> None:
        if self.publisher is None:
            logger.error("postprocess_publisher_missing", job_id=str(job.id))
            return
        try:
            self.publisher.publish_postprocess(str(job.id), str(job.user_id))
        except Exception as e:
            # The staleness sweep fails and refunds the job if it never gets processed
            logger.error("postprocess_publish_failed", job_id=str(job.id), error=str(e))

    def _lock(self, job_id) -> Job | None:
        return self.db.execute(
            select(Job)
            .where(Job.id == job_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _find_by_task(self, provider: ProviderId, task_id: str) -> Job | None:
        return self.db.execute(
            select(Job).where(Job.provider == provider, Job.provider_task_id == task_id)
        ).scalar_one_or_none()
