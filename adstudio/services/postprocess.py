"""Re-hosts vendor output in our bucket.

Vendor URLs expire within hours to days, so every finished asset is
downloaded, converted to the format the frontend expects and uploaded under
``{folder}/{user_id}/{job_id}_{timestamp}.{ext}``.
"""

import time
from pathlib import Path

import httpx
import structlog

from adstudio.core.config import settings
from adstudio.models import AssetType, Job

from .media import MediaProcessor
from .resolver import ProcessedMedia
from .storage import StorageService

logger = structlog.get_logger()

CONTENT_TYPES = {
    "webp": "image/webp",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
}


class PostProcessError(Exception):
    pass


class PostProcessor:
    def __init__(
        self,
        storage: StorageService,
        processor: MediaProcessor | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.storage = storage
        self.processor = processor or MediaProcessor()
        self.http = http or httpx.Client(timeout=settings.download_timeout_seconds, follow_redirects=True)

    def run(self, job: Job, workdir: str) -> ProcessedMedia:
        work = Path(workdir)
        if job.asset_type == AssetType.VIDEO_MERGE:
            return self._merge(job, work)

        urls = job.provider_output_urls or []
        if not urls:
            raise PostProcessError("Job has no vendor output")

        kind = job.asset_type.media_kind
        if kind == "image":
            return self._image(job, urls, work)
        if kind == "video":
            return self._video(job, urls[0], work)
        return self._audio(job, urls[0], work)

    def _image(self, job: Job, urls: list[str], work: Path) -> ProcessedMedia:
        hosted = []
        thumbnail_url = None
        for index, url in enumerate(urls):
            source = self.download(url, work / f"source_{index}")
            image = self.processor.to_webp(str(source), str(work / f"image_{index}.webp"))
            hosted.append(self._upload(job, image, "webp", suffix=f"_{index}" if index else ""))
            if index == 0:
                thumb = self.processor.thumbnail(image, str(work / "thumb.webp"))
                thumbnail_url = self._upload(job, thumb, "webp", suffix="_thumb")

        metadata = {"images": hosted} if len(hosted) > 1 else {}
        return ProcessedMedia(hosted[0], thumbnail_url, metadata)

    def _video(self, job: Job, url: str, work: Path) -> ProcessedMedia:
        source = self.download(url, work / "source.mp4")
        return self._finish_video(job, str(source), work)

    def _merge(self, job: Job, work: Path) -> ProcessedMedia:
        urls = job.input_params.get("video_urls") or []
        if len(urls) < 2:
            raise PostProcessError("Merge needs at least two videos")

        parts = [str(self.download(url, work / f"part_{i}.mp4")) for i, url in enumerate(urls)]
        merged = self.processor.concat_videos(parts, str(work / "merged.mp4"))
        processed = self._finish_video(job, merged, work)
        return ProcessedMedia(
            processed.result_url,
            processed.thumbnail_url,
            {"source_job_ids": job.input_params.get("source_job_ids", [])},
        )

    def _finish_video(self, job: Job, path: str, work: Path) -> ProcessedMedia:
        result_url = self._upload(job, path, "mp4")
        try:
            thumb = self.processor.thumbnail(path, str(work / "thumb.webp"), from_video=True)
            thumbnail_url = self._upload(job, thumb, "webp", suffix="_thumb")
        except Exception as e:
            # A missing poster frame does not fail the video
            logger.warning("thumbnail_failed", job_id=str(job.id), error=str(e))
            thumbnail_url = None
        return ProcessedMedia(result_url, thumbnail_url)

    def _audio(self, job: Job, url: str, work: Path) -> ProcessedMedia:
        source = self.download(url, work / "source_audio")
        audio = self.processor.normalize_audio(str(source), str(work / "audio.mp3"))
        return ProcessedMedia(self._upload(job, audio, "mp3"))

    def download(self, url: str, destination: Path) -> Path:
        logger.info("media_download_started", url=url)
        try:
            with self.http.stream("GET", url) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise PostProcessError(f"Download failed for {url}: {e}") from e

        if destination.stat().st_size == 0:
            raise PostProcessError(f"Downloaded file is empty: {url}")
        return destination

    def _upload(self, job: Job, path: str, ext: str, suffix: str = "") -> str:
        key = f"{job.asset_type.folder}/{job.user_id}/{job.id}_{int(time.time())}{suffix}.{ext}"
        return self.storage.upload_file(path, key, CONTENT_TYPES[ext])

    def close(self) -> None:
        self.http.close()
