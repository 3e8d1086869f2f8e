import subprocess
from pathlib import Path

import structlog

from adstudio.core.config import settings

logger = structlog.get_logger()


class FFmpegError(Exception):
    """Exception raised when FFmpeg processing fails."""
    pass


class MediaProcessor:
    """Image, video and audio conversions through FFmpeg."""

    def __init__(
        self,
        max_dimension: int | None = None,
        thumbnail_size: tuple[int, int] | None = None,
        webp_quality: int | None = None,
        timeout: int | None = None,
    ) -> None:
        self.max_dimension = max_dimension or settings.image_max_dimension
        self.thumbnail_size = thumbnail_size or (settings.thumbnail_width, settings.thumbnail_height)
        self.webp_quality = webp_quality or settings.webp_quality
        self.timeout = timeout or settings.ffmpeg_timeout_seconds

    def to_webp(self, source: str, output: str) -> str:
        """Re-encode an image as WebP, capping its longest side."""
        size = self.max_dimension
        scale = f"scale='min({size},iw)':'min({size},ih)':force_original_aspect_ratio=decrease"
        self._run([
            "ffmpeg", "-y", "-i", source,
            "-vf", scale,
            "-c:v", "libwebp", "-quality", str(self.webp_quality),
            output,
        ])
        return output

    def thumbnail(self, source: str, output: str, from_video: bool = False) -> str:
        width, height = self.thumbnail_size
        cmd = ["ffmpeg", "-y"]
        if from_video:
            cmd += ["-ss", "1"]
        cmd += [
            "-i", source,
            "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease",
            "-frames:v", "1",
        ]
        if output.endswith(".webp"):
            cmd += ["-c:v", "libwebp", "-quality", str(self.webp_quality)]
        self._run(cmd + [output])
        return output

    def normalize_audio(self, source: str, output: str) -> str:
        """Loudness-normalise to -14 LUFS and encode as MP3."""
        self._run([
            "ffmpeg", "-y", "-i", source,
            "-af", "loudnorm=I=-14:TP=-1:LRA=11",
            "-c:a", "libmp3lame", "-b:a", "192k",
            output,
        ])
        return output

    def concat_videos(self, sources: list[str], output: str) -> str:
        if not sources:
            raise FFmpegError("No videos to concatenate")

        list_file = Path(output).with_suffix(".txt")
        list_file.write_text("".join(f"file '{Path(s).resolve()}'\n" for s in sources))

        self._run([
            "ffmpeg", "-y", "-f", "concat", "-safe", "0",
            "-i", str(list_file),
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-c:a", "aac", "-movflags", "+faststart",
            output,
        ])
        return output

    def _run(self, cmd: list[str]) -> None:
        logger.info("ffmpeg_started", output=cmd[-1])
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired as e:
            raise FFmpegError(f"FFmpeg timeout: {e}") from e

        if result.returncode != 0:
            logger.error("ffmpeg_failed", returncode=result.returncode, stderr=result.stderr[:500])
            raise FFmpegError(f"FFmpeg failed: {result.stderr[-500:]}")
        logger.info("ffmpeg_completed", output=cmd[-1])
