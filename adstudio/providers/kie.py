"""Kie.ai: image and video models behind ``jobs/createTask``, Suno music behind ``generate``."""

import json
from typing import Any

from adstudio.core.errors import ValidationFailed, VendorError
from adstudio.models.job import AssetType, JobStatus, ProviderId, TaskRef

from .base import CallbackEvent, MediaResult, StatusReport, SubmitResult, VendorAdapter

ZIMAGE_MODEL = "z-image"
EDIT_MODEL = "seedream/4.5-edit"
WAN_VIDEO_MODEL = "wan/2-6-image-to-video"
SEEDANCE_VIDEO_MODEL = "bytedance/seedance-1.5-pro"
MUSIC_MODEL = "suno/V5"

JOB_STATES = {
    "waiting": JobStatus.IN_QUEUE,
    "queuing": JobStatus.IN_QUEUE,
    "generating": JobStatus.IN_PROGRESS,
    "running": JobStatus.IN_PROGRESS,
    "processing": JobStatus.IN_PROGRESS,
    "success": JobStatus.COMPLETED,
    "fail": JobStatus.FAILED,
}

MUSIC_STATUSES = {
    "PENDING": JobStatus.IN_QUEUE,
    "TEXT_SUCCESS": JobStatus.IN_PROGRESS,
    "FIRST_SUCCESS": JobStatus.IN_PROGRESS,
    "SUCCESS": JobStatus.COMPLETED,
    "CREATE_TASK_FAILED": JobStatus.FAILED,
    "GENERATE_AUDIO_FAILED": JobStatus.FAILED,
    "CALLBACK_EXCEPTION": JobStatus.FAILED,
    "SENSITIVE_WORD_ERROR": JobStatus.FAILED,
}


def map_job_state(state: str | None) -> JobStatus:
    return JOB_STATES.get((state or "").lower(), JobStatus.IN_QUEUE)


def map_music_status(status: str | None) -> JobStatus:
    return MUSIC_STATUSES.get((status or "").upper(), JobStatus.IN_QUEUE)


def parse_result_urls(result_json: str | dict | None) -> list[str]:
    """``resultJson`` arrives as a JSON *string* holding ``{"resultUrls": [...]}``."""
    if not result_json:
        return []
    if isinstance(result_json, str):
        try:
            result_json = json.loads(result_json)
        except ValueError:
            return []
    return [url for url in result_json.get("resultUrls") or [] if url]


class KieAdapter(VendorAdapter):
    provider = ProviderId.KIE
    supported = frozenset(
        {
            AssetType.AVATAR,
            AssetType.OUTFIT,
            AssetType.IMAGE_AD,
            AssetType.BACKGROUND,
            AssetType.VIDEO_AD,
            AssetType.MUSIC,
        }
    )

    def submit(
        self, asset_type: AssetType, params: dict[str, Any], callback_url: str | None = None
    ) -> SubmitResult:
        if asset_type == AssetType.MUSIC:
            return self._submit_music(params, callback_url)

        model, task_input = self._build_task(asset_type, params)
        body: dict[str, Any] = {"model": model, "input": task_input}
        if callback_url:
            body["callBackUrl"] = callback_url

        data = self._unwrap(self._request("POST", f"{self.base_url}/jobs/createTask", json=body))
        task_id = data.get("taskId")
        if not task_id:
            raise VendorError(self.provider.value, "createTask returned no taskId")
        return SubmitResult(task_id=task_id, model=model)

    def poll_status(self, task: TaskRef) -> StatusReport:
        if task.model == MUSIC_MODEL:
            record = self._music_record(task.task_id)
            status = map_music_status(record.get("status"))
            error = record.get("errorMessage") if status == JobStatus.FAILED else None
            return StatusReport(status=status, error=error or _failed(status, "Music generation failed"))

        record = self._job_record(task.task_id)
        status = map_job_state(record.get("state"))
        error = record.get("failMsg") if status == JobStatus.FAILED else None
        return StatusReport(status=status, error=error or _failed(status, "Generation failed"))

    def fetch_result(self, task: TaskRef) -> MediaResult:
        if task.model == MUSIC_MODEL:
            tracks = (self._music_record(task.task_id).get("response") or {}).get("sunoData") or []
            return _music_result(
                [
                    {
                        "id": t.get("id"),
                        "audio_url": t.get("audioUrl"),
                        "image_url": t.get("imageUrl"),
                        "title": t.get("title"),
                        "duration": t.get("duration"),
                    }
                    for t in tracks
                ]
            )

        record = self._job_record(task.task_id)
        return MediaResult(media_urls=parse_result_urls(record.get("resultJson")))

    def parse_callback(self, payload: dict[str, Any]) -> CallbackEvent:
        data = payload.get("data")
        if not isinstance(data, dict):
            raise ValidationFailed("Kie callback without task data")
        if "callbackType" in data:
            return self._parse_music_callback(payload, data)

        task_id = data.get("taskId")
        if not task_id:
            raise ValidationFailed("Kie callback without taskId")

        status = map_job_state(data.get("state"))
        if payload.get("code") not in (None, 200) and status != JobStatus.COMPLETED:
            status = JobStatus.FAILED
        return CallbackEvent(
            task_id=task_id,
            status=status,
            media_urls=parse_result_urls(data.get("resultJson")),
            error=(data.get("failMsg") or payload.get("msg") or "Generation failed")
            if status == JobStatus.FAILED
            else None,
        )

    # -- helpers ---------------------------------------------------------

    def _build_task(self, asset_type: AssetType, params: dict[str, Any]) -> tuple[str, dict]:
        if asset_type in (AssetType.AVATAR, AssetType.BACKGROUND):
            return ZIMAGE_MODEL, {
                "prompt": params["prompt"],
                "aspect_ratio": params.get("aspect_ratio", "9:16"),
            }
        if asset_type == AssetType.OUTFIT:
            return EDIT_MODEL, {
                "prompt": params.get("prompt") or "Dress the person in the first image with the outfit in the second image",
                "image_urls": [params["avatar_image_url"], params["outfit_image_url"]],
                "aspect_ratio": params.get("aspect_ratio", "9:16"),
                "quality": "high",
            }
        if asset_type == AssetType.IMAGE_AD:
            return EDIT_MODEL, {
                "prompt": params["prompt"],
                "image_urls": params.get("image_urls") or [],
                "aspect_ratio": params.get("aspect_ratio", "1:1"),
                "quality": params.get("quality", "medium"),
                "max_images": params.get("num_images", 1),
            }
        if asset_type == AssetType.VIDEO_AD:
            model = WAN_VIDEO_MODEL if params.get("model") == "wan2.6" else SEEDANCE_VIDEO_MODEL
            return model, {
                "prompt": params["prompt"],
                "image_urls": [params["image_url"]],
                "duration": str(params["duration"]),
                "resolution": params.get("resolution", "720p"),
                "aspect_ratio": params.get("aspect_ratio", "9:16"),
            }
        raise ValidationFailed(f"Kie does not generate {asset_type.value}")

    def _submit_music(self, params: dict[str, Any], callback_url: str | None) -> SubmitResult:
        body = {
            "prompt": params["prompt"],
            "customMode": False,
            "instrumental": params.get("instrumental", True),
            "model": "V5",
            # Suno rejects requests without a callback; polling still works with a dummy one
            "callBackUrl": callback_url or "https://localhost/noop",
        }
        data = self._unwrap(self._request("POST", f"{self.base_url}/generate", json=body))
        task_id = data.get("taskId")
        if not task_id:
            raise VendorError(self.provider.value, "generate returned no taskId")
        return SubmitResult(task_id=task_id, model=MUSIC_MODEL)

    def _parse_music_callback(self, payload: dict[str, Any], data: dict[str, Any]) -> CallbackEvent:
        task_id = data.get("task_id") or data.get("taskId")
        if not task_id:
            raise ValidationFailed("Kie music callback without task_id")

        callback_type = data.get("callbackType")
        if payload.get("code") != 200 or callback_type == "error":
            return CallbackEvent(
                task_id=task_id,
                status=JobStatus.FAILED,
                error=payload.get("msg") or "Music generation failed",
            )
        if callback_type not in ("first", "complete"):
            return CallbackEvent(task_id=task_id, status=JobStatus.IN_PROGRESS)

        result = _music_result(data.get("data") or [])
        return CallbackEvent(
            task_id=task_id,
            status=JobStatus.COMPLETED,
            media_urls=result.media_urls,
            metadata=result.metadata,
        )

    def _job_record(self, task_id: str) -> dict[str, Any]:
        return self._unwrap(
            self._request("GET", f"{self.base_url}/jobs/recordInfo", params={"taskId": task_id})
        )

    def _music_record(self, task_id: str) -> dict[str, Any]:
        return self._unwrap(
            self._request("GET", f"{self.base_url}/generate/record-info", params={"taskId": task_id})
        )

    def _unwrap(self, envelope: dict[str, Any]) -> dict[str, Any]:
        if envelope.get("code") != 200:
            raise VendorError(self.provider.value, envelope.get("msg") or "unexpected response code")
        return envelope.get("data") or {}


def _music_result(tracks: list[dict[str, Any]]) -> MediaResult:
    tracks = [t for t in tracks if t.get("audio_url")]
    return MediaResult(
        media_urls=[t["audio_url"] for t in tracks],
        metadata={
            "tracks": [
                {
                    "id": t.get("id"),
                    "title": t.get("title"),
                    "duration": t.get("duration"),
                    "image_url": t.get("image_url"),
                }
                for t in tracks
            ]
        },
    )


def _failed(status: JobStatus, message: str) -> str | None:
    return message if status == JobStatus.FAILED else None
