from typing import Any, Iterable

import httpx

from adstudio.core.config import Settings
from adstudio.core.errors import ValidationFailed, VendorError
from adstudio.models.job import AssetType, ProviderId

from .base import CallbackEvent, MediaResult, StatusReport, SubmitResult, VendorAdapter
from .byteplus import BytePlusAdapter
from .fal import FalAdapter
from .kie import KieAdapter
from .wavespeed import WaveSpeedAdapter


class ProviderRegistry:
    """Adapters keyed by provider, plus the asset-type -> provider routing table."""

    def __init__(
        self,
        adapters: Iterable[VendorAdapter],
        routing: dict[AssetType, ProviderId],
        seedance_provider: ProviderId = ProviderId.FAL,
        http: httpx.Client | None = None,
    ) -> None:
        self._adapters = {adapter.provider: adapter for adapter in adapters}
        self._routing = routing
        self._seedance_provider = seedance_provider
        self._http = http

    def get(self, provider: ProviderId) -> VendorAdapter:
        try:
            return self._adapters[provider]
        except KeyError:
            raise VendorError(provider.value, "provider is not registered") from None

    def route(self, asset_type: AssetType, params: dict[str, Any]) -> VendorAdapter:
        if asset_type == AssetType.VIDEO_AD:
            provider = ProviderId.KIE if params.get("model") == "wan2.6" else self._seedance_provider
        elif asset_type in self._routing:
            provider = self._routing[asset_type]
        else:
            raise ValidationFailed(f"{asset_type.value} is not generated by an AI provider")

        adapter = self.get(provider)
        if not adapter.supports(asset_type):
            raise ValidationFailed(f"{provider.value} cannot generate {asset_type.value}")
        return adapter

    def close(self) -> None:
        if self._http is not None:
            self._http.close()


def build_registry(settings: Settings) -> ProviderRegistry:
    http = httpx.Client(timeout=settings.vendor_timeout_seconds, follow_redirects=True)
    adapters = [
        KieAdapter(http, settings.kie_api_key, settings.kie_base_url),
        FalAdapter(http, settings.fal_api_key, settings.fal_queue_url),
        BytePlusAdapter(
            http, settings.byteplus_api_key, settings.byteplus_base_url, settings.byteplus_seedance_model
        ),
        WaveSpeedAdapter(http, settings.wavespeed_api_key, settings.wavespeed_base_url),
    ]
    routing = {
        AssetType.AVATAR: ProviderId(settings.avatar_provider.upper()),
        AssetType.OUTFIT: ProviderId(settings.outfit_provider.upper()),
        AssetType.IMAGE_AD: ProviderId(settings.image_ad_provider.upper()),
        AssetType.BACKGROUND: ProviderId(settings.background_provider.upper()),
        AssetType.MUSIC: ProviderId.KIE,
        AssetType.TTS: ProviderId.WAVESPEED,
    }
    return ProviderRegistry(
        adapters,
        routing,
        seedance_provider=ProviderId(settings.seedance_provider.upper()),
        http=http,
    )


__all__ = [
    "ProviderRegistry",
    "build_registry",
    "VendorAdapter",
    "SubmitResult",
    "StatusReport",
    "MediaResult",
    "CallbackEvent",
    "KieAdapter",
    "FalAdapter",
    "BytePlusAdapter",
    "WaveSpeedAdapter",
]
