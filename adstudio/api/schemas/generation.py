from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from adstudio.models.job import JobStatus

AspectRatio = Literal["1:1", "9:16", "16:9", "4:3", "3:4"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_params(self) -> dict:
        """Stored verbatim as the job's input params."""
        return self.model_dump(mode="json", exclude_none=True)


class AvatarRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=2000)
    aspect_ratio: AspectRatio = "9:16"


class OutfitRequest(CamelModel):
    avatar_image_url: str
    outfit_image_url: str
    prompt: str | None = Field(None, max_length=2000)
    aspect_ratio: AspectRatio = "9:16"


class ImageAdRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=4000)
    image_urls: list[str] = Field(default_factory=list, max_length=8)
    quality: Literal["medium", "high"] = "medium"
    num_images: int = Field(1, ge=1, le=4)
    aspect_ratio: AspectRatio = "1:1"


class BackgroundRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=2000)
    aspect_ratio: AspectRatio = "9:16"


class VideoAdRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=4000)
    image_url: str
    model: Literal["seedance", "wan2.6"] = "seedance"
    duration: int
    resolution: Literal["480p", "720p", "1080p"] = "720p"
    aspect_ratio: AspectRatio = "9:16"


class MusicRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=500)
    instrumental: bool = True


class TtsRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=5000)
    voice_id: str
    speed: float | None = None


class MergeRequest(CamelModel):
    job_ids: list[UUID] = Field(..., min_length=2, max_length=10)


class GenerationResponse(CamelModel):
    task_id: UUID
    credit_cost: int
    status: JobStatus
