from .generation import GenerationService
from .ledger import CreditLedger
from .media import FFmpegError, MediaProcessor
from .postprocess import PostProcessError, PostProcessor
from .pricing import credit_cost
from .resolver import JobResolver, ProcessedMedia
from .storage import StorageService
from .sweeper import sweep_stale_jobs
from .uploads import UploadService

__all__ = [
    "GenerationService",
    "CreditLedger",
    "FFmpegError",
    "MediaProcessor",
    "PostProcessError",
    "PostProcessor",
    "credit_cost",
    "JobResolver",
    "ProcessedMedia",
    "StorageService",
    "sweep_stale_jobs",
    "UploadService",
]
