from fastapi import APIRouter, Depends, status

from adstudio.api.dependencies import CurrentUser, DatabaseSession, OwnedJob, Storage, upload_rate_limit
from adstudio.api.schemas import JobResponse, UploadCompleteRequest, UploadRequest, UploadResponse
from adstudio.services import UploadService

router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post(
    "",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start an upload",
    description="""
Returns a short-lived presigned URL. `PUT` the file there with the same
`Content-Type`, then confirm with `POST /uploads/{jobId}/complete`.

**Kinds:** `avatar`, `product`. **Types:** `image/jpeg`, `image/png`, `image/webp`.
    """,
    dependencies=[Depends(upload_rate_limit)],
)
def create_upload(request: UploadRequest, current_user: CurrentUser, db: DatabaseSession, storage: Storage):
    job, upload_url = UploadService(db, storage).create(current_user.id, request.kind, request.content_type)
    return UploadResponse(
        job_id=job.id,
        upload_url=upload_url,
        public_url=storage.public_url(job.input_params["key"]),
        expires_in=storage.upload_expiry,
    )


@router.post("/{job_id}/complete", response_model=JobResponse, summary="Confirm an upload")
def complete_upload(request: UploadCompleteRequest, job: OwnedJob, db: DatabaseSession, storage: Storage):
    return JobResponse.from_job(UploadService(db, storage).complete(job, request.url))
