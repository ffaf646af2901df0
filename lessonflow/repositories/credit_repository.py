# lessonflow/repositories/credit_repository.py
"""
Credit Repository.

Balance changes are applied as a single SQL increment (never read-modify-write)
and mirrored by a ledger row in the same transaction.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name
from ..models.cancellation import CreditAccount, CreditTransaction
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditRepository(BaseRepository[CreditAccount]):
    """Repository for learner credit balances and their ledger."""

    def __init__(self, db: Session):
        super().__init__(db, CreditAccount)
        self.logger = logging.getLogger(__name__)
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def get_balance(self, learner_id: str) -> int:
        account = self.get_by_id(learner_id)
        return int(account.balance_units) if account is not None else 0

    def credit(
        self,
        *,
        learner_id: str,
        units: int,
        reason: str,
        lesson_id: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Credit a learner's balance and append the matching ledger entry.

        The account row is created with insert-or-ignore, so concurrent first
        credits for the same learner both land on one row. Does NOT commit.
        """
        try:
            self._ensure_account(learner_id)
            self.db.execute(
                update(CreditAccount)
                .where(CreditAccount.learner_id == learner_id)
                .values(balance_units=CreditAccount.balance_units + units)
                .execution_options(synchronize_session=False)
            )

            entry = CreditTransaction(
                learner_id=learner_id,
                units=units,
                reason=reason,
                lesson_id=lesson_id,
            )
            self.db.add(entry)
            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to credit learner %s: %s", learner_id, str(exc))
            raise RepositoryException("Failed to credit learner") from exc

        # Drop any stale identity-mapped balance
        account = self.db.get(CreditAccount, learner_id)
        if account is not None:
            self.db.refresh(account)
        return entry

    def _ensure_account(self, learner_id: str) -> None:
        values = {"learner_id": learner_id, "balance_units": 0}
        if self._dialect == "postgresql":
            stmt = (
                pg_insert(CreditAccount)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["learner_id"])
            )
        else:
            stmt = insert(CreditAccount).values(**values)
            if self._dialect == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")
        self.db.execute(stmt)

    def list_transactions(self, learner_id: str) -> List[CreditTransaction]:
        try:
            return (
                self.db.query(CreditTransaction)
                .filter(CreditTransaction.learner_id == learner_id)
                .order_by(CreditTransaction.created_at.asc(), CreditTransaction.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list credit transactions: %s", str(exc))
            raise RepositoryException("Failed to list credit transactions") from exc
