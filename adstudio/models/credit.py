import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow
from .job import AssetType
from .types import GUID


class TransactionType(str, enum.Enum):
    USE = "USE"
    REFUND = "REFUND"
    SIGNUP = "SIGNUP"
    SUBSCRIPTION = "SUBSCRIPTION"
    ADMIN = "ADMIN"


class CreditHistory(Base):
    """Append-only audit projection of ``User.credits``."""

    __tablename__ = "credit_history"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), nullable=False)
    feature_type: Mapped[AssetType | None] = mapped_column(Enum(AssetType), nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    # Not a foreign key: history outlives deleted jobs
    job_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True, index=True)
    reference: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    user: Mapped["User"] = relationship("User", back_populates="credit_history")


from .user import User  # noqa: E402
