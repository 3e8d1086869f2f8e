"""
Unit tests for adstudio/services/postprocess.py
"""

import uuid
from unittest.mock import MagicMock, patch

import httpx
import pytest

from adstudio.models import AssetType, Job, JobStatus
from adstudio.services import FFmpegError, PostProcessError, PostProcessor


def vendor_transport(request: httpx.Request) -> httpx.Response:
    if request.url.host == "gone.example.com":
        return httpx.Response(404)
    if request.url.path.endswith("empty.png"):
        return httpx.Response(200, content=b"")
    return httpx.Response(200, content=b"media-bytes")


@pytest.fixture
def processor():
    processor = MagicMock()
    processor.to_webp.side_effect = lambda source, output: output
    processor.thumbnail.side_effect = lambda source, output, from_video=False: output
    processor.normalize_audio.side_effect = lambda source, output: output
    processor.concat_videos.side_effect = lambda sources, output: output
    return processor


@pytest.fixture
def postprocessor(mock_storage, processor):
    http = httpx.Client(transport=httpx.MockTransport(vendor_transport))
    pp = PostProcessor(mock_storage, processor, http)
    yield pp
    pp.close()


def make_job(asset_type: AssetType, urls=None, **fields) -> Job:
    return Job(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        asset_type=asset_type,
        status=JobStatus.IN_PROGRESS,
        provider_output_urls=urls,
        input_params=fields.pop("input_params", {}),
        **fields,
    )


class TestImages:

    @pytest.mark.unit
    def test_single_image_is_converted_and_thumbnailed(self, postprocessor, processor, mock_storage, tmp_path):
        job = make_job(AssetType.AVATAR, ["https://cdn.vendor.example.com/a.png"])

        with patch("adstudio.services.postprocess.time.time", return_value=1700000000):
            processed = postprocessor.run(job, str(tmp_path))

        assert processed.result_url == f"https://media.example.com/avatars/{job.user_id}/{job.id}_1700000000.webp"
        assert processed.thumbnail_url.endswith("_1700000000_thumb.webp")
        assert processed.metadata == {}
        assert (tmp_path / "source_0").read_bytes() == b"media-bytes"
        mock_storage.upload_file.assert_any_call(
            str(tmp_path / "image_0.webp"),
            f"avatars/{job.user_id}/{job.id}_1700000000.webp",
            "image/webp",
        )

    @pytest.mark.unit
    def test_multiple_images_are_listed_in_metadata(self, postprocessor, processor, tmp_path):
        job = make_job(AssetType.IMAGE_AD, [f"https://cdn.vendor.example.com/{i}.png" for i in range(3)])

        processed = postprocessor.run(job, str(tmp_path))

        assert len(processed.metadata["images"]) == 3
        assert processed.metadata["images"][0] == processed.result_url
        assert processor.to_webp.call_count == 3
        assert processor.thumbnail.call_count == 1


class TestVideoAndAudio:

    @pytest.mark.unit
    def test_video_keeps_mp4_and_poster(self, postprocessor, processor, tmp_path):
        job = make_job(AssetType.VIDEO_AD, ["https://cdn.vendor.example.com/v.mp4"])

        processed = postprocessor.run(job, str(tmp_path))

        assert processed.result_url.endswith(".mp4")
        assert processed.thumbnail_url.endswith("_thumb.webp")
        assert processor.thumbnail.call_args.kwargs == {"from_video": True}

    @pytest.mark.unit
    def test_video_without_poster_still_succeeds(self, postprocessor, processor, tmp_path):
        processor.thumbnail.side_effect = FFmpegError("no frames")
        job = make_job(AssetType.VIDEO_AD, ["https://cdn.vendor.example.com/v.mp4"])

        processed = postprocessor.run(job, str(tmp_path))

        assert processed.result_url.endswith(".mp4")
        assert processed.thumbnail_url is None

    @pytest.mark.unit
    def test_audio_is_normalized_to_mp3(self, postprocessor, processor, mock_storage, tmp_path):
        job = make_job(AssetType.MUSIC, ["https://cdn.vendor.example.com/song.wav"])

        processed = postprocessor.run(job, str(tmp_path))

        assert processed.result_url.endswith(".mp3")
        assert processed.thumbnail_url is None
        assert mock_storage.upload_file.call_args[0][2] == "audio/mpeg"

    @pytest.mark.unit
    def test_merge_concatenates_sources(self, postprocessor, processor, tmp_path):
        source_ids = [str(uuid.uuid4()), str(uuid.uuid4())]
        job = make_job(
            AssetType.VIDEO_MERGE,
            input_params={
                "source_job_ids": source_ids,
                "video_urls": ["https://media.example.com/a.mp4", "https://media.example.com/b.mp4"],
            },
        )

        processed = postprocessor.run(job, str(tmp_path))

        parts, output = processor.concat_videos.call_args[0]
        assert parts == [str(tmp_path / "part_0.mp4"), str(tmp_path / "part_1.mp4")]
        assert processed.result_url.startswith(f"https://media.example.com/video-merges/{job.user_id}/")
        assert processed.metadata == {"source_job_ids": source_ids}


class TestFailures:

    @pytest.mark.unit
    def test_no_vendor_output(self, postprocessor, tmp_path):
        with pytest.raises(PostProcessError):
            postprocessor.run(make_job(AssetType.AVATAR, []), str(tmp_path))

    @pytest.mark.unit
    def test_expired_vendor_url(self, postprocessor, tmp_path):
        job = make_job(AssetType.AVATAR, ["https://gone.example.com/a.png"])

        with pytest.raises(PostProcessError, match="Download failed"):
            postprocessor.run(job, str(tmp_path))

    @pytest.mark.unit
    def test_empty_download(self, postprocessor, tmp_path):
        job = make_job(AssetType.AVATAR, ["https://cdn.vendor.example.com/empty.png"])

        with pytest.raises(PostProcessError, match="empty"):
            postprocessor.run(job, str(tmp_path))

    @pytest.mark.unit
    def test_merge_needs_two_sources(self, postprocessor, tmp_path):
        job = make_job(AssetType.VIDEO_MERGE, input_params={"video_urls": ["https://media.example.com/a.mp4"]})

        with pytest.raises(PostProcessError):
            postprocessor.run(job, str(tmp_path))
