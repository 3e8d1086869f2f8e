"""WaveSpeed predictions API (MiniMax speech for TTS)."""

from typing import Any

from adstudio.core.errors import ValidationFailed, VendorError
from adstudio.models.job import AssetType, JobStatus, ProviderId, TaskRef

from .base import CallbackEvent, MediaResult, StatusReport, SubmitResult, VendorAdapter

TTS_MODEL = "minimax/speech-2.6-hd"

PREDICTION_STATUSES = {
    "created": JobStatus.IN_QUEUE,
    "processing": JobStatus.IN_PROGRESS,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}


def map_prediction_status(status: str | None) -> JobStatus:
    return PREDICTION_STATUSES.get((status or "").lower(), JobStatus.IN_QUEUE)


def clamp_speed(speed: float | None) -> float:
    return max(0.5, min(2.0, speed if speed is not None else 1.0))


class WaveSpeedAdapter(VendorAdapter):
    provider = ProviderId.WAVESPEED
    supported = frozenset({AssetType.TTS})

    def submit(
        self, asset_type: AssetType, params: dict[str, Any], callback_url: str | None = None
    ) -> SubmitResult:
        if asset_type != AssetType.TTS:
            raise ValidationFailed("WaveSpeed only generates speech")

        body = {
            "text": params["text"],
            "voice_id": params["voice_id"],
            "speed": clamp_speed(params.get("speed")),
            "enable_sync_mode": False,
        }
        query = {"webhook": callback_url} if callback_url else None
        prediction = self._unwrap(
            self._request("POST", f"{self.base_url}/{TTS_MODEL}", json=body, params=query)
        )
        if not prediction.get("id"):
            raise VendorError(self.provider.value, "prediction returned no id")
        return SubmitResult(task_id=prediction["id"], model=TTS_MODEL)

    def poll_status(self, task: TaskRef) -> StatusReport:
        prediction = self._prediction(task.task_id)
        status = map_prediction_status(prediction.get("status"))
        return StatusReport(
            status=status,
            error=(prediction.get("error") or "Speech synthesis failed")
            if status == JobStatus.FAILED
            else None,
        )

    def fetch_result(self, task: TaskRef) -> MediaResult:
        prediction = self._prediction(task.task_id)
        return MediaResult(media_urls=[url for url in prediction.get("outputs") or [] if url])

    def parse_callback(self, payload: dict[str, Any]) -> CallbackEvent:
        prediction = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        task_id = prediction.get("id")
        if not task_id:
            raise ValidationFailed("WaveSpeed webhook without prediction id")

        status = map_prediction_status(prediction.get("status"))
        return CallbackEvent(
            task_id=task_id,
            status=status,
            media_urls=[url for url in prediction.get("outputs") or [] if url],
            error=(prediction.get("error") or "Speech synthesis failed")
            if status == JobStatus.FAILED
            else None,
        )

    def _prediction(self, task_id: str) -> dict[str, Any]:
        return self._unwrap(self._request("GET", f"{self.base_url}/predictions/{task_id}/result"))

    def _unwrap(self, envelope: dict[str, Any]) -> dict[str, Any]:
        if envelope.get("code") != 200:
            raise VendorError(self.provider.value, envelope.get("message") or "unexpected response code")
        return envelope.get("data") or {}
