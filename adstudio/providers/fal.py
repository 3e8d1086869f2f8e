"""fal.ai queue API."""

from typing import Any

import structlog

from adstudio.core.errors import ValidationFailed, VendorError
from adstudio.models.job import AssetType, JobStatus, ProviderId, TaskRef

from .base import CallbackEvent, MediaResult, StatusReport, SubmitResult, VendorAdapter

logger = structlog.get_logger()

ZIMAGE_MODEL = "fal-ai/z-image/turbo/lora"
OUTFIT_MODEL = "fal-ai/qwen-image-edit-2511/lora"
IMAGE_AD_MODEL = "fal-ai/gpt-image-1.5/edit"
SEEDANCE_MODEL = "fal-ai/bytedance/seedance/v1.5/pro/image-to-video"

QUEUE_STATUSES = {
    "IN_QUEUE": JobStatus.IN_QUEUE,
    "IN_PROGRESS": JobStatus.IN_PROGRESS,
    "COMPLETED": JobStatus.COMPLETED,
}

WEBHOOK_STATUSES = {
    "OK": JobStatus.COMPLETED,
    "ERROR": JobStatus.FAILED,
}

IMAGE_SIZES = {
    "1:1": "square_hd",
    "9:16": "portrait_16_9",
    "16:9": "landscape_16_9",
    "3:4": "portrait_4_3",
    "4:3": "landscape_4_3",
}


def map_queue_status(payload: dict[str, Any]) -> JobStatus:
    status = QUEUE_STATUSES.get(payload.get("status"), JobStatus.IN_QUEUE)
    # fal finishes errored requests as COMPLETED and reports the error alongside
    if status == JobStatus.COMPLETED and payload.get("error"):
        return JobStatus.FAILED
    return status


def map_webhook_status(status: str | None) -> JobStatus:
    return WEBHOOK_STATUSES.get((status or "").upper(), JobStatus.FAILED)


def extract_media_urls(output: dict[str, Any] | None) -> list[str]:
    if not output:
        return []
    urls = [image.get("url") for image in output.get("images") or []]
    for key in ("video", "audio", "image"):
        if isinstance(output.get(key), dict):
            urls.append(output[key].get("url"))
    return [url for url in urls if url]


def app_path(model: str) -> str:
    """Status, result and cancel live under the app id (owner/app), not the full model path."""
    return "/".join(model.split("/")[:2])


class FalAdapter(VendorAdapter):
    provider = ProviderId.FAL
    supported = frozenset(
        {
            AssetType.AVATAR,
            AssetType.OUTFIT,
            AssetType.IMAGE_AD,
            AssetType.BACKGROUND,
            AssetType.VIDEO_AD,
        }
    )

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Key {self.api_key}"}

    def submit(
        self, asset_type: AssetType, params: dict[str, Any], callback_url: str | None = None
    ) -> SubmitResult:
        model, body = self._build_request(asset_type, params)
        query = {"fal_webhook": callback_url} if callback_url else None

        data = self._request("POST", f"{self.base_url}/{model}", json=body, params=query)
        request_id = data.get("request_id")
        if not request_id:
            raise VendorError(self.provider.value, "queue submit returned no request_id")
        return SubmitResult(task_id=request_id, model=model)

    def poll_status(self, task: TaskRef) -> StatusReport:
        data = self._request("GET", f"{self._request_url(task)}/status")
        status = map_queue_status(data)
        return StatusReport(
            status=status,
            queue_position=data.get("queue_position"),
            error=str(data.get("error") or "Generation failed") if status == JobStatus.FAILED else None,
        )

    def fetch_result(self, task: TaskRef) -> MediaResult:
        data = self._request("GET", self._request_url(task))
        metadata = {k: data[k] for k in ("seed", "timings") if k in data}
        images = data.get("images") or []
        if images:
            metadata["dimensions"] = [
                {"width": image.get("width"), "height": image.get("height")} for image in images
            ]
        return MediaResult(media_urls=extract_media_urls(data), metadata=metadata)

    def cancel(self, task: TaskRef) -> None:
        try:
            self._request("PUT", f"{self._request_url(task)}/cancel")
        except VendorError as e:
            logger.warning("vendor_cancel_failed", provider=self.provider.value, task_id=task.task_id, error=str(e))

    def parse_callback(self, payload: dict[str, Any]) -> CallbackEvent:
        task_id = payload.get("request_id") or payload.get("gateway_request_id")
        if not task_id:
            raise ValidationFailed("fal webhook without request_id")

        status = map_webhook_status(payload.get("status"))
        if status == JobStatus.FAILED:
            return CallbackEvent(
                task_id=task_id,
                status=status,
                error=str(payload.get("error") or "Generation failed"),
            )

        output = payload.get("payload") or {}
        return CallbackEvent(
            task_id=task_id,
            status=status,
            media_urls=extract_media_urls(output),
            metadata={"seed": output["seed"]} if "seed" in output else {},
        )

    def _request_url(self, task: TaskRef) -> str:
        if not task.model:
            raise VendorError(self.provider.value, "task has no model path")
        return f"{self.base_url}/{app_path(task.model)}/requests/{task.task_id}"

    def _build_request(self, asset_type: AssetType, params: dict[str, Any]) -> tuple[str, dict]:
        aspect_ratio = params.get("aspect_ratio", "9:16")
        if asset_type in (AssetType.AVATAR, AssetType.BACKGROUND):
            return ZIMAGE_MODEL, {
                "prompt": params["prompt"],
                "image_size": IMAGE_SIZES.get(aspect_ratio, "portrait_16_9"),
                "num_images": 1,
                "output_format": "png",
            }
        if asset_type == AssetType.OUTFIT:
            return OUTFIT_MODEL, {
                "prompt": params.get("prompt") or "Change the outfit of the person to the outfit in the second image",
                "image_urls": [params["avatar_image_url"], params["outfit_image_url"]],
                "num_images": 1,
            }
        if asset_type == AssetType.IMAGE_AD:
            return IMAGE_AD_MODEL, {
                "prompt": params["prompt"],
                "image_urls": params.get("image_urls") or [],
                "quality": params.get("quality", "medium"),
                "num_images": params.get("num_images", 1),
            }
        if asset_type == AssetType.VIDEO_AD and params.get("model") == "seedance":
            return SEEDANCE_MODEL, {
                "prompt": params["prompt"],
                "image_url": params["image_url"],
                "duration": str(params["duration"]),
                "resolution": params.get("resolution", "720p"),
                "aspect_ratio": aspect_ratio,
            }
        raise ValidationFailed(f"fal.ai does not generate {asset_type.value} with these options")
