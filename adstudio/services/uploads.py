import uuid

import structlog
from sqlalchemy.orm import Session

from adstudio.core.errors import ValidationFailed
from adstudio.models import AssetType, Job, JobStatus

from .resolver import JobResolver
from .storage import StorageService

logger = structlog.get_logger()

UPLOAD_KINDS = {"avatar", "product"}
CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def upload_prefix(kind: str, user_id: uuid.UUID, job_id: uuid.UUID) -> str:
    return f"uploads/{kind}/{user_id}/{job_id}"


class UploadService:
    """Direct-to-bucket uploads through short-lived presigned PUT URLs."""

    def __init__(self, db: Session, storage: StorageService) -> None:
        self.db = db
        self.storage = storage
        self.resolver = JobResolver(db)

    def create(self, user_id: uuid.UUID, kind: str, content_type: str) -> tuple[Job, str]:
        if kind not in UPLOAD_KINDS:
            raise ValidationFailed(f"Unsupported upload kind: {kind}")
        extension = CONTENT_TYPES.get(content_type)
        if extension is None:
            raise ValidationFailed(f"Unsupported content type: {content_type}")

        job_id = uuid.uuid4()
        key = f"{upload_prefix(kind, user_id, job_id)}.{extension}"
        upload_url = self.storage.generate_upload_url(key, content_type)

        job = Job(
            id=job_id,
            user_id=user_id,
            asset_type=AssetType.UPLOAD,
            status=JobStatus.UPLOADING,
            input_params={"kind": kind, "content_type": content_type, "key": key},
            credits_used=0,
        )
        self.db.add(job)
        self.resolver.log_event(job, "UPLOAD_STARTED", None, JobStatus.UPLOADING)
        self.db.commit()

        logger.info("upload_url_issued", job_id=str(job_id), user_id=str(user_id), kind=kind)
        return job, upload_url

    def complete(self, job: Job, url: str) -> Job:
        """Confirm an upload; the URL must point at the key issued for this job."""
        if job.asset_type != AssetType.UPLOAD:
            raise ValidationFailed("Job is not an upload")
        if job.status != JobStatus.UPLOADING:
            raise ValidationFailed(f"Upload is already {job.status.value}")

        key = job.input_params.get("key", "")
        if not key or url != self.storage.public_url(key):
            logger.warning("upload_url_rejected", job_id=str(job.id), url=url)
            raise ValidationFailed("Upload URL does not belong to this upload")
        if not self.storage.file_exists(key):
            raise ValidationFailed("Uploaded file not found")

        job.result_url = url
        job.thumbnail_url = url
        self.resolver.advance(job, JobStatus.COMPLETED, "UPLOAD_COMPLETED")
        self.db.commit()
        logger.info("upload_completed", job_id=str(job.id))
        return job
