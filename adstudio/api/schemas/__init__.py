from .auth import UserCreate, UserLogin, UserResponse, TokenResponse, RefreshTokenRequest
from .credit import CreditBalanceResponse, CreditHistoryEntry, CreditHistoryResponse
from .generation import (
    AvatarRequest, BackgroundRequest, GenerationResponse, ImageAdRequest, MergeRequest,
    MusicRequest, OutfitRequest, TtsRequest, VideoAdRequest,
)
from .job import JobResponse, JobListResponse, JobStatusResponse, RefundResponse
from .upload import UploadCompleteRequest, UploadRequest, UploadResponse

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "TokenResponse", "RefreshTokenRequest",
    "CreditBalanceResponse", "CreditHistoryEntry", "CreditHistoryResponse",
    "AvatarRequest", "BackgroundRequest", "GenerationResponse", "ImageAdRequest", "MergeRequest",
    "MusicRequest", "OutfitRequest", "TtsRequest", "VideoAdRequest",
    "JobResponse", "JobListResponse", "JobStatusResponse", "RefundResponse",
    "UploadCompleteRequest", "UploadRequest", "UploadResponse",
]
