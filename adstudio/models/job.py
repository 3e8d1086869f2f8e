import enum
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow
from .types import GUID, JSONType


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    UPLOADING = "UPLOADING"
    IN_QUEUE = "IN_QUEUE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

_PROGRESS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.UPLOADING: 0,
    JobStatus.IN_QUEUE: 1,
    JobStatus.IN_PROGRESS: 2,
    JobStatus.COMPLETED: 3,
}


def can_advance(current: JobStatus, target: JobStatus) -> bool:
    """Forward-only progression; terminal states absorb everything.

    Manual retry (FAILED -> IN_QUEUE) is not a progression and is handled by
    the generation service on its own.
    """
    if current == target or current.is_terminal:
        return False
    if target in (JobStatus.FAILED, JobStatus.CANCELLED):
        return True
    return _PROGRESS_RANK[target] > _PROGRESS_RANK[current]


class AssetType(str, enum.Enum):
    AVATAR = "AVATAR"
    OUTFIT = "OUTFIT"
    IMAGE_AD = "IMAGE_AD"
    BACKGROUND = "BACKGROUND"
    VIDEO_AD = "VIDEO_AD"
    MUSIC = "MUSIC"
    TTS = "TTS"
    VIDEO_MERGE = "VIDEO_MERGE"
    UPLOAD = "UPLOAD"

    @property
    def media_kind(self) -> str:
        if self in (AssetType.VIDEO_AD, AssetType.VIDEO_MERGE):
            return "video"
        if self in (AssetType.MUSIC, AssetType.TTS):
            return "audio"
        return "image"

    @property
    def folder(self) -> str:
        return _FOLDERS[self]


class ProviderId(str, enum.Enum):
    KIE = "KIE"
    FAL = "FAL"
    BYTEPLUS = "BYTEPLUS"
    WAVESPEED = "WAVESPEED"


_FOLDERS = {
    AssetType.AVATAR: "avatars",
    AssetType.OUTFIT: "outfits",
    AssetType.IMAGE_AD: "image-ads",
    AssetType.BACKGROUND: "backgrounds",
    AssetType.VIDEO_AD: "video-ads",
    AssetType.MUSIC: "music",
    AssetType.TTS: "tts",
    AssetType.VIDEO_MERGE: "video-merges",
    AssetType.UPLOAD: "uploads",
}


@dataclass(frozen=True)
class TaskRef:
    """Which vendor owns a job and under which id; replaces string-prefixed task ids."""

    provider: ProviderId
    task_id: str
    model: str | None = None


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        UniqueConstraint("provider", "provider_task_id", name="uq_jobs_provider_task"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    asset_type: Mapped[AssetType] = mapped_column(Enum(AssetType), nullable=False, index=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus), default=JobStatus.PENDING, nullable=False, index=True
    )

    provider: Mapped[ProviderId | None] = mapped_column(Enum(ProviderId), nullable=True)
    provider_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_model: Mapped[str | None] = mapped_column(String(255), nullable=True)

    input_params: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    provider_output_urls: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    result_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    result_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    credits_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="jobs")
    events: Mapped[list["JobEvent"]] = relationship(
        "JobEvent", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def task_ref(self) -> TaskRef | None:
        if self.provider is None or self.provider_task_id is None:
            return None
        return TaskRef(self.provider, self.provider_task_id, self.provider_model)

    @property
    def awaiting_postprocess(self) -> bool:
        return self.status == JobStatus.IN_PROGRESS and bool(self.provider_output_urls)

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.asset_type.value} {self.status.value}>"


class JobEvent(Base):
    __tablename__ = "job_events"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    old_status: Mapped[JobStatus | None] = mapped_column(Enum(JobStatus), nullable=True)
    new_status: Mapped[JobStatus | None] = mapped_column(Enum(JobStatus), nullable=True)
    event_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    job: Mapped["Job"] = relationship("Job", back_populates="events")


from .user import User  # noqa: E402
