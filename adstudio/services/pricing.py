from typing import Any

from adstudio.core.errors import ValidationFailed
from adstudio.models.job import AssetType

FLAT_COSTS = {
    AssetType.AVATAR: 1,
    AssetType.OUTFIT: 2,
    AssetType.BACKGROUND: 1,
    AssetType.MUSIC: 3,
    AssetType.TTS: 0,
    AssetType.VIDEO_MERGE: 0,
    AssetType.UPLOAD: 0,
}

IMAGE_AD_COSTS = {"medium": 2, "high": 3}
MAX_IMAGE_AD_COUNT = 4

# model -> {duration seconds: credits}
VIDEO_AD_COSTS = {
    "seedance": {4: 8, 8: 12, 12: 16},
    "wan2.6": {5: 10, 10: 15, 15: 20},
}


def credit_cost(asset_type: AssetType, params: dict[str, Any]) -> int:
    """Credits charged for one generation request."""
    if asset_type in FLAT_COSTS:
        return FLAT_COSTS[asset_type]

    if asset_type == AssetType.IMAGE_AD:
        quality = params.get("quality", "medium")
        count = params.get("num_images", 1)
        if quality not in IMAGE_AD_COSTS:
            raise ValidationFailed(f"Unsupported image quality: {quality}")
        if not 1 <= count <= MAX_IMAGE_AD_COUNT:
            raise ValidationFailed(f"num_images must be between 1 and {MAX_IMAGE_AD_COUNT}")
        return IMAGE_AD_COSTS[quality] * count

    if asset_type == AssetType.VIDEO_AD:
        model = params.get("model")
        table = VIDEO_AD_COSTS.get(model)
        if table is None:
            raise ValidationFailed(f"Unsupported video model: {model}")
        duration = params.get("duration")
        if duration not in table:
            allowed = ", ".join(str(d) for d in table)
            raise ValidationFailed(f"{model} supports durations {allowed}")
        return table[duration]

    raise ValidationFailed(f"No price for {asset_type.value}")
