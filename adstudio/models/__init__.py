from .base import Base, SessionLocal, create_tables, engine, get_db, utcnow
from .credit import CreditHistory, TransactionType
from .job import (
    TERMINAL_STATUSES,
    AssetType,
    Job,
    JobEvent,
    JobStatus,
    ProviderId,
    TaskRef,
    can_advance,
)
from .user import User

__all__ = [
    "Base",
    "get_db",
    "engine",
    "SessionLocal",
    "create_tables",
    "utcnow",
    "User",
    "Job",
    "JobEvent",
    "JobStatus",
    "AssetType",
    "ProviderId",
    "TaskRef",
    "TERMINAL_STATUSES",
    "can_advance",
    "CreditHistory",
    "TransactionType",
]
