"""
Unit tests for adstudio/services/uploads.py
"""

import pytest

from adstudio.core.errors import ValidationFailed
from adstudio.models import AssetType, JobEvent, JobStatus
from adstudio.services import UploadService


@pytest.fixture
def uploads(db_session, mock_storage) -> UploadService:
    return UploadService(db_session, mock_storage)


class TestCreateUpload:

    @pytest.mark.unit
    def test_create_issues_presigned_url(self, uploads, db_session, make_user, mock_storage):
        user = make_user()

        job, upload_url = uploads.create(user.id, "avatar", "image/png")

        assert upload_url == "https://upload.example.com/signed"
        assert job.asset_type == AssetType.UPLOAD
        assert job.status == JobStatus.UPLOADING
        assert job.credits_used == 0
        assert job.input_params["key"] == f"uploads/avatar/{user.id}/{job.id}.png"
        mock_storage.generate_upload_url.assert_called_once_with(job.input_params["key"], "image/png")
        assert db_session.query(JobEvent).filter(JobEvent.job_id == job.id).count() == 1

    @pytest.mark.unit
    @pytest.mark.parametrize("kind,content_type", [("logo", "image/png"), ("product", "image/gif")])
    def test_rejects_unsupported_input(self, uploads, make_user, kind, content_type):
        with pytest.raises(ValidationFailed):
            uploads.create(make_user().id, kind, content_type)


class TestCompleteUpload:

    @pytest.mark.unit
    def test_complete_marks_job_done(self, uploads, make_user):
        user = make_user()
        job, _ = uploads.create(user.id, "product", "image/jpeg")
        url = f"https://media.example.com/{job.input_params['key']}"

        uploads.complete(job, url)

        assert job.status == JobStatus.COMPLETED
        assert job.result_url == url
        assert job.thumbnail_url == url

    @pytest.mark.unit
    def test_foreign_url_is_rejected(self, uploads, make_user):
        user = make_user()
        job, _ = uploads.create(user.id, "product", "image/jpeg")

        with pytest.raises(ValidationFailed, match="does not belong"):
            uploads.complete(job, "https://evil.example.com/uploads/product/x.jpg")
        assert job.status == JobStatus.UPLOADING

    @pytest.mark.unit
    def test_url_extending_the_issued_key_is_rejected(self, uploads, make_user, mock_storage):
        user = make_user()
        job, _ = uploads.create(user.id, "avatar", "image/png")
        stem = job.input_params["key"].rsplit(".", 1)[0]

        with pytest.raises(ValidationFailed, match="does not belong"):
            uploads.complete(job, f"https://media.example.com/{stem}-other.png")
        mock_storage.file_exists.assert_not_called()
        assert job.result_url is None

    @pytest.mark.unit
    def test_missing_object_is_rejected(self, uploads, make_user, mock_storage):
        user = make_user()
        job, _ = uploads.create(user.id, "avatar", "image/webp")
        mock_storage.file_exists.return_value = False

        with pytest.raises(ValidationFailed, match="not found"):
            uploads.complete(job, f"https://media.example.com/{job.input_params['key']}")

    @pytest.mark.unit
    def test_complete_twice(self, uploads, make_user):
        user = make_user()
        job, _ = uploads.create(user.id, "avatar", "image/png")
        url = f"https://media.example.com/{job.input_params['key']}"
        uploads.complete(job, url)

        with pytest.raises(ValidationFailed, match="already"):
            uploads.complete(job, url)
