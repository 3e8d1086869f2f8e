"""Credit ledger.

``User.credits`` is the balance of record; ``CreditHistory`` rows are its audit
trail. Every balance change is a single conditional UPDATE so concurrent
requests never observe or produce a negative balance. The ledger never
commits: callers decide the transaction boundary.
"""

import uuid

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from adstudio.core.errors import InsufficientCredits, NotFound
from adstudio.models import AssetType, CreditHistory, Job, TransactionType, User, utcnow

logger = structlog.get_logger()


class CreditLedger:
    def __init__(self, db: Session) -> None:
        self.db = db

    def balance(self, user_id: uuid.UUID) -> int:
        credits = self.db.execute(select(User.credits).where(User.id == user_id)).scalar_one_or_none()
        if credits is None:
            raise NotFound("User not found")
        return credits

    def has_enough_credits(self, user_id: uuid.UUID, amount: int) -> bool:
        return self.balance(user_id) >= amount

    def deduct(
        self,
        user_id: uuid.UUID,
        amount: int,
        feature: AssetType | None = None,
        job_id: uuid.UUID | None = None,
        description: str | None = None,
    ) -> int:
        """Atomically debit ``amount``; raises InsufficientCredits without touching the balance."""
        if amount <= 0:
            return self.balance(user_id)

        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = self.balance(user_id)
            logger.info("credits_insufficient", user_id=str(user_id), required=amount, available=available)
            raise InsufficientCredits(required=amount, available=available)

        balance = self.balance(user_id)
        self._record(
            user_id,
            TransactionType.USE,
            -amount,
            balance,
            feature=feature,
            job_id=job_id,
            description=description or (f"{feature.value} generation" if feature else None),
        )
        logger.info("credits_deducted", user_id=str(user_id), amount=amount, balance=balance)
        return balance

    def refund_job(self, job: Job, reason: str | None = None) -> int:
        """Give back ``job.credits_used`` at most once per job.

        The ``refunded_at IS NULL`` guard is claimed with the same conditional
        UPDATE pattern as debits, so duplicate webhooks racing each other
        refund a single time. Returns the amount refunded (0 on repeats).
        """
        if job.credits_used <= 0:
            return 0

        now = utcnow()
        claimed = self.db.execute(
            update(Job)
            .where(Job.id == job.id, Job.refunded_at.is_(None))
            .values(refunded_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            logger.info("refund_already_applied", job_id=str(job.id))
            return 0
        set_committed_value(job, "refunded_at", now)

        self._increment(job.user_id, job.credits_used)
        balance = self.balance(job.user_id)
        self._record(
            job.user_id,
            TransactionType.REFUND,
            job.credits_used,
            balance,
            feature=job.asset_type,
            job_id=job.id,
            description=reason or "Refund for failed generation",
        )
        logger.info("credits_refunded", job_id=str(job.id), amount=job.credits_used, balance=balance)
        return job.credits_used

    def grant(
        self,
        user_id: uuid.UUID,
        amount: int,
        transaction_type: TransactionType,
        description: str | None = None,
        reference: str | None = None,
    ) -> bool:
        """Add credits from outside the generation flow; idempotent on ``reference``."""
        if reference is not None and self._reference_exists(reference):
            logger.info("credit_grant_duplicate", user_id=str(user_id), reference=reference)
            return False

        self._increment(user_id, amount)
        balance = self.balance(user_id)
        self._record(
            user_id, transaction_type, amount, balance, description=description, reference=reference
        )
        logger.info(
            "credits_granted",
            user_id=str(user_id),
            amount=amount,
            type=transaction_type.value,
            balance=balance,
        )
        return True

    def record_subscription_credit(self, user_id: uuid.UUID, amount: int, reference: str) -> bool:
        return self.grant(
            user_id,
            amount,
            TransactionType.SUBSCRIPTION,
            description="Subscription credits",
            reference=reference,
        )

    def history(self, user_id: uuid.UUID, limit: int = 50, offset: int = 0) -> list[CreditHistory]:
        return list(
            self.db.execute(
                select(CreditHistory)
                .where(CreditHistory.user_id == user_id)
                .order_by(CreditHistory.created_at.desc())
                .offset(offset)
                .limit(limit)
            ).scalars()
        )

    def _increment(self, user_id: uuid.UUID, amount: int) -> None:
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("User not found")

    def _reference_exists(self, reference: str) -> bool:
        return (
            self.db.execute(select(CreditHistory.id).where(CreditHistory.reference == reference)).first()
            is not None
        )

    def _record(
        self,
        user_id: uuid.UUID,
        transaction_type: TransactionType,
        amount: int,
        balance_after: int,
        feature: AssetType | None = None,
        job_id: uuid.UUID | None = None,
        description: str | None = None,
        reference: str | None = None,
    ) -> CreditHistory:
        entry = CreditHistory(
            user_id=user_id,
            transaction_type=transaction_type,
            feature_type=feature,
            amount=amount,
            balance_after=balance_after,
            job_id=job_id,
            reference=reference,
            description=description,
        )
        self.db.add(entry)
        return entry
