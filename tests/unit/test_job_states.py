"""
Unit tests for job status progression rules.
"""

import pytest

from adstudio.models import AssetType, Job, JobStatus, ProviderId, can_advance


class TestCanAdvance:
    """Forward-only progression with absorbing terminal states."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.PENDING, JobStatus.IN_QUEUE),
            (JobStatus.PENDING, JobStatus.IN_PROGRESS),
            (JobStatus.IN_QUEUE, JobStatus.IN_PROGRESS),
            (JobStatus.IN_QUEUE, JobStatus.COMPLETED),
            (JobStatus.IN_PROGRESS, JobStatus.COMPLETED),
            (JobStatus.IN_QUEUE, JobStatus.FAILED),
            (JobStatus.UPLOADING, JobStatus.COMPLETED),
            (JobStatus.UPLOADING, JobStatus.CANCELLED),
        ],
    )
    def test_forward_transitions_allowed(self, current, target):
        assert can_advance(current, target) is True

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.IN_PROGRESS, JobStatus.IN_QUEUE),
            (JobStatus.IN_QUEUE, JobStatus.IN_QUEUE),
            (JobStatus.IN_QUEUE, JobStatus.PENDING),
        ],
    )
    def test_backward_or_repeated_transitions_rejected(self, current, target):
        assert can_advance(current, target) is False

    @pytest.mark.unit
    @pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED])
    @pytest.mark.parametrize("target", list(JobStatus))
    def test_terminal_states_absorb(self, terminal, target):
        assert can_advance(terminal, target) is False


class TestJobRecord:
    """Derived properties on the job row."""

    @pytest.mark.unit
    def test_task_ref_requires_provider_and_task(self):
        job = Job(asset_type=AssetType.AVATAR, status=JobStatus.PENDING)
        assert job.task_ref is None

        job.provider = ProviderId.FAL
        job.provider_task_id = "req-1"
        job.provider_model = "fal-ai/z-image/turbo"

        ref = job.task_ref
        assert ref.provider == ProviderId.FAL
        assert ref.task_id == "req-1"
        assert ref.model == "fal-ai/z-image/turbo"

    @pytest.mark.unit
    def test_awaiting_postprocess(self):
        job = Job(asset_type=AssetType.VIDEO_AD, status=JobStatus.IN_PROGRESS)
        assert job.awaiting_postprocess is False

        job.provider_output_urls = ["https://vendor/v.mp4"]
        assert job.awaiting_postprocess is True

    @pytest.mark.unit
    def test_asset_media_kinds(self):
        assert AssetType.IMAGE_AD.media_kind == "image"
        assert AssetType.VIDEO_MERGE.media_kind == "video"
        assert AssetType.TTS.media_kind == "audio"
        assert AssetType.IMAGE_AD.folder == "image-ads"
