import tempfile
import time
from dataclasses import dataclass
from uuid import UUID

import redis
import structlog
from sqlalchemy.orm import Session, sessionmaker

from adstudio.core.config import Settings
from adstudio.models import AssetType, Job, JobStatus
from adstudio.services import JobResolver, PostProcessor

logger = structlog.get_logger()


@dataclass
class WorkerContext:
    session_factory: sessionmaker
    postprocessor: PostProcessor
    redis: redis.Redis
    settings: Settings


def is_processed(client: redis.Redis, job_id: str) -> bool:
    return bool(client.exists(f"processed:{job_id}"))


def mark_processed(client: redis.Redis, job_id: str) -> None:
    client.set(f"processed:{job_id}", "1", ex=3600)


def acquire_lock(client: redis.Redis, job_id: str, timeout: int = 1800) -> redis.lock.Lock | None:
    """Acquire distributed lock."""
    lock = client.lock(f"lock:job:{job_id}", timeout=timeout)
    if lock.acquire(blocking=False):
        return lock
    return None


def _load(db: Session, job_id: str) -> Job | None:
    return db.get(Job, UUID(job_id), populate_existing=True)


def process_job(ctx: WorkerContext, job_id: str, retry_count: int = 0) -> dict:
    """Re-host a job's media and mark it COMPLETED.

    The last failed attempt marks the job FAILED and refunds it.
    """
    logger.info("postprocess_started", job_id=job_id, attempt=retry_count + 1)

    try:
        UUID(job_id)
    except ValueError:
        return {"status": "error", "reason": "invalid_job_id"}

    if is_processed(ctx.redis, job_id):
        logger.info("duplicate_skipped", job_id=job_id)
        return {"status": "skipped", "reason": "duplicate"}

    lock = acquire_lock(ctx.redis, job_id)
    if not lock:
        logger.info("locked_skipped", job_id=job_id)
        return {"status": "skipped", "reason": "locked"}

    db = ctx.session_factory()
    resolver = JobResolver(db, rehost=ctx.settings.rehost_media)
    start_time = time.time()

    try:
        job = _load(db, job_id)
        if job is None:
            return {"status": "error", "reason": "job_not_found"}
        if job.status.is_terminal:
            return {"status": "skipped", "reason": job.status.value}

        if job.asset_type == AssetType.VIDEO_MERGE:
            resolver.advance(job, JobStatus.IN_PROGRESS, "PROCESSING_STARTED")
            db.commit()
        elif not job.awaiting_postprocess:
            return {"status": "skipped", "reason": "no_output"}

        with tempfile.TemporaryDirectory() as workdir:
            processed = ctx.postprocessor.run(job, workdir)

        # The job may have been cancelled while we were converting
        job = _load(db, job_id)
        if job is None or job.status.is_terminal:
            return {"status": "skipped", "reason": "cancelled"}

        resolver.finish(job, processed)
        db.commit()
        mark_processed(ctx.redis, job_id)

        processing_time = int(time.time() - start_time)
        logger.info("postprocess_completed", job_id=job_id, processing_time=processing_time)
        return {"status": "success", "job_id": job_id, "result_url": processed.result_url}

    except Exception as e:
        db.rollback()
        logger.error("postprocess_failed", job_id=job_id, error=str(e))

        will_retry = retry_count < ctx.settings.max_retries - 1
        if not will_retry:
            job = _load(db, job_id)
            if job is not None:
                resolver.fail(job, f"Post-processing failed: {str(e)[:200]}")
                db.commit()

        return {"status": "failed", "error": str(e), "retry": will_retry}

    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            logger.warning("lock_release_failed", job_id=job_id)
        db.close()
