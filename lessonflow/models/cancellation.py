# lessonflow/models/cancellation.py
"""
Cancellation ledger and learner credit accounts.

Cancellation records are append-only: one row per successful cancellation,
never updated afterwards. Every refund also writes a CreditTransaction so the
balance on CreditAccount can always be reconciled against the ledger.
"""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func
import ulid

from ..database import Base


class CancellationRecord(Base):
    """Immutable record of a successful lesson cancellation."""

    __tablename__ = "cancellation_records"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    lesson_id = Column(String(26), ForeignKey("lessons.id"), nullable=False, unique=True)
    cancelled_by_id = Column(String(26), nullable=True)
    reason = Column(Text, nullable=False)
    credits_refunded = Column(Integer, nullable=False)
    hours_before_start = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"<CancellationRecord {self.id}: lesson={self.lesson_id}, "
            f"refunded={self.credits_refunded}>"
        )


class CreditAccount(Base):
    """Current credit balance of a learner."""

    __tablename__ = "credit_accounts"

    learner_id = Column(String(26), primary_key=True)
    balance_units = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class CreditTransaction(Base):
    """Ledger entry for every change to a learner's credit balance."""

    __tablename__ = "credit_transactions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    learner_id = Column(String(26), nullable=False, index=True)
    units = Column(Integer, nullable=False)
    reason = Column(String(100), nullable=False)
    lesson_id = Column(String(26), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
