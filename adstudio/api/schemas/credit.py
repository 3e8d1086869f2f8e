from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from adstudio.models import AssetType, TransactionType


class CreditBalanceResponse(BaseModel):
    credits: int


class CreditHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    transaction_type: TransactionType
    feature_type: AssetType | None = None
    amount: int
    balance_after: int
    job_id: UUID | None = None
    description: str | None = None
    created_at: datetime


class CreditHistoryResponse(BaseModel):
    entries: list[CreditHistoryEntry]
