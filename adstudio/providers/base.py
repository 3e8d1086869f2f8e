"""Vendor adapter interface shared by every AI provider."""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from adstudio.core.errors import VendorError
from adstudio.models.job import AssetType, JobStatus, ProviderId, TaskRef

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubmitResult:
    task_id: str
    model: str


@dataclass(frozen=True)
class StatusReport:
    status: JobStatus
    queue_position: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class MediaResult:
    media_urls: list[str]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CallbackEvent:
    """A vendor push normalised to our vocabulary.

    ``status`` is None when the payload carries nothing that moves the job
    (progress pings, intermediate lyric/text stages).
    """

    task_id: str
    status: JobStatus | None
    media_urls: list[str] = field(default_factory=list)
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class VendorAdapter:
    """Base interface every provider must implement.

    Adapters are built once per process around a shared ``httpx.Client`` and
    must stay free of database access: the resolver owns all state changes.
    """

    provider: ProviderId
    supported: frozenset[AssetType] = frozenset()

    def __init__(self, http: httpx.Client, api_key: str, base_url: str) -> None:
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def supports(self, asset_type: AssetType) -> bool:
        return asset_type in self.supported

    def submit(
        self, asset_type: AssetType, params: dict[str, Any], callback_url: str | None = None
    ) -> SubmitResult:
        raise NotImplementedError

    def poll_status(self, task: TaskRef) -> StatusReport:
        raise NotImplementedError

    def fetch_result(self, task: TaskRef) -> MediaResult:
        raise NotImplementedError

    def parse_callback(self, payload: dict[str, Any]) -> CallbackEvent:
        raise NotImplementedError

    def cancel(self, task: TaskRef) -> None:
        """Best effort; vendors without a cancel endpoint keep running the task."""
        logger.info("vendor_cancel_unsupported", provider=self.provider.value, task_id=task.task_id)

    # -- transport -------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        name = self.provider.value
        if not self.api_key:
            raise VendorError(name, "API key is not configured")

        try:
            response = self.http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error("vendor_transport_error", provider=name, url=url, error=str(e))
            raise VendorError(name, f"request failed: {e}") from e

        if response.is_error:
            logger.error(
                "vendor_http_error",
                provider=name,
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise VendorError(name, f"HTTP {response.status_code}: {_error_text(response)}")

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise VendorError(name, "response is not valid JSON") from e


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        return str(body.get("msg") or body.get("message") or body.get("detail") or error or body)[:200]
    return str(body)[:200]
