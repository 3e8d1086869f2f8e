"""One POST /{asset}/generate endpoint per asset type, all funnelled into GenerationService."""

from fastapi import APIRouter, Depends, status

from adstudio.api.dependencies import CurrentUser, Generations, generation_rate_limit
from adstudio.api.schemas import (
    AvatarRequest,
    BackgroundRequest,
    GenerationResponse,
    ImageAdRequest,
    MergeRequest,
    MusicRequest,
    OutfitRequest,
    TtsRequest,
    VideoAdRequest,
)
from adstudio.models import AssetType, Job

router = APIRouter(tags=["Generation"], dependencies=[Depends(generation_rate_limit)])

GENERATE_RESPONSES = {
    400: {"description": "Invalid parameters"},
    402: {"description": "Insufficient credits"},
    429: {"description": "Rate limited"},
    500: {"description": "Provider rejected the request (credits refunded)"},
}


def _accepted(job: Job) -> GenerationResponse:
    return GenerationResponse(task_id=job.id, credit_cost=job.credits_used, status=job.status)


def _generate(service, user, asset_type: AssetType, request) -> GenerationResponse:
    job = service.submit(user.id, asset_type, request.to_params())
    return _accepted(job)


@router.post(
    "/avatars/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate avatar",
    responses=GENERATE_RESPONSES,
)
def generate_avatar(request: AvatarRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.AVATAR, request)


@router.post(
    "/outfits/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Dress an avatar in an outfit",
    responses=GENERATE_RESPONSES,
)
def generate_outfit(request: OutfitRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.OUTFIT, request)


@router.post(
    "/image-ads/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate image ads",
    description="Costs 2 credits per image at `medium` quality, 3 at `high`.",
    responses=GENERATE_RESPONSES,
)
def generate_image_ad(request: ImageAdRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.IMAGE_AD, request)


@router.post(
    "/backgrounds/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate background",
    responses=GENERATE_RESPONSES,
)
def generate_background(request: BackgroundRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.BACKGROUND, request)


@router.post(
    "/video-ads/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate video ad",
    description="""
**Models and durations:**
- `seedance`: 4s (8 credits), 8s (12), 12s (16)
- `wan2.6`: 5s (10 credits), 10s (15), 15s (20)
    """,
    responses=GENERATE_RESPONSES,
)
def generate_video_ad(request: VideoAdRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.VIDEO_AD, request)


@router.post(
    "/video-ads/merge",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Merge video ads",
    description="Concatenates 2 to 10 completed video ads, in the given order.",
)
def merge_video_ads(request: MergeRequest, current_user: CurrentUser, service: Generations):
    job = service.merge(current_user.id, request.job_ids)
    return _accepted(job)


@router.post(
    "/music/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate background music",
    responses=GENERATE_RESPONSES,
)
def generate_music(request: MusicRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.MUSIC, request)


@router.post(
    "/tts/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate voiceover",
    responses=GENERATE_RESPONSES,
)
def generate_tts(request: TtsRequest, current_user: CurrentUser, service: Generations):
    return _generate(service, current_user, AssetType.TTS, request)
