"""BytePlus ModelArk content generation (Seedance video)."""

from typing import Any

import structlog

from adstudio.core.errors import ValidationFailed, VendorError
from adstudio.models.job import AssetType, JobStatus, ProviderId, TaskRef

from .base import CallbackEvent, MediaResult, StatusReport, SubmitResult, VendorAdapter

logger = structlog.get_logger()

TASK_STATUSES = {
    "queued": JobStatus.IN_QUEUE,
    "running": JobStatus.IN_PROGRESS,
    "succeeded": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
    "expired": JobStatus.FAILED,
}


def map_task_status(status: str | None) -> JobStatus:
    # Unknown states are treated as still running
    return TASK_STATUSES.get((status or "").lower(), JobStatus.IN_PROGRESS)


def task_video_urls(task: dict[str, Any]) -> list[str]:
    for key in ("content", "output"):
        section = task.get(key)
        if isinstance(section, dict) and section.get("video_url"):
            return [section["video_url"]]
    return []


def task_error(task: dict[str, Any]) -> str:
    error = task.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    return error if isinstance(error, str) and error else "Video generation failed"


class BytePlusAdapter(VendorAdapter):
    provider = ProviderId.BYTEPLUS
    supported = frozenset({AssetType.VIDEO_AD})

    def __init__(self, http, api_key: str, base_url: str, model: str) -> None:
        super().__init__(http, api_key, base_url)
        self.model = model

    @property
    def tasks_url(self) -> str:
        return f"{self.base_url}/content_generation/tasks"

    def submit(
        self, asset_type: AssetType, params: dict[str, Any], callback_url: str | None = None
    ) -> SubmitResult:
        if asset_type != AssetType.VIDEO_AD or params.get("model") != "seedance":
            raise ValidationFailed("BytePlus only generates Seedance video ads")

        body: dict[str, Any] = {
            "model": self.model,
            "content": [
                {"type": "text", "text": params["prompt"]},
                {"type": "image_url", "image_url": {"url": params["image_url"]}},
            ],
            "duration": int(params["duration"]),
            "resolution": params.get("resolution", "720p"),
            "ratio": params.get("aspect_ratio", "9:16"),
        }
        if callback_url:
            body["callback_url"] = callback_url

        data = self._request("POST", self.tasks_url, json=body)
        if not data.get("id"):
            raise VendorError(self.provider.value, "task creation returned no id")
        return SubmitResult(task_id=data["id"], model=self.model)

    def poll_status(self, task: TaskRef) -> StatusReport:
        data = self._task(task.task_id)
        status = map_task_status(data.get("status"))
        return StatusReport(
            status=status,
            error=task_error(data) if status == JobStatus.FAILED else None,
        )

    def fetch_result(self, task: TaskRef) -> MediaResult:
        data = self._task(task.task_id)
        metadata = {"usage": data["usage"]} if data.get("usage") else {}
        return MediaResult(media_urls=task_video_urls(data), metadata=metadata)

    def cancel(self, task: TaskRef) -> None:
        try:
            self._request("DELETE", f"{self.tasks_url}/{task.task_id}")
        except VendorError as e:
            logger.warning("vendor_cancel_failed", provider=self.provider.value, task_id=task.task_id, error=str(e))

    def parse_callback(self, payload: dict[str, Any]) -> CallbackEvent:
        # The callback body is the task object itself
        task_id = payload.get("id")
        if not task_id:
            raise ValidationFailed("BytePlus callback without task id")

        status = map_task_status(payload.get("status"))
        return CallbackEvent(
            task_id=task_id,
            status=status,
            media_urls=task_video_urls(payload),
            error=task_error(payload) if status == JobStatus.FAILED else None,
        )

    def _task(self, task_id: str) -> dict[str, Any]:
        return self._request("GET", f"{self.tasks_url}/{task_id}")
