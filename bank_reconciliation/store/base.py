"""
Transaction store contract.

The store owns bank transactions and the ledger claim table. Every state
transition is a single conditional write: implementations must check the
precondition and apply the change as one indivisible operation.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from ..models import BankTransaction, MatchMethod, TransactionStatus


class TransactionStore(ABC):
    """Storage boundary for bank transactions and ledger claims."""

    @abstractmethod
    def add_if_absent(self, transaction: BankTransaction) -> bool:
        """
        Insert a transaction unless its dedup key already exists.

        Returns:
            True if inserted, False if it was a duplicate
        """

    @abstractmethod
    def get(self, transaction_id: str) -> Optional[BankTransaction]:
        """Return a snapshot of one transaction, or None."""

    @abstractmethod
    def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
    ) -> List[BankTransaction]:
        """Snapshots ordered by transaction date (newest first), then id."""

    @abstractmethod
    def claims(self) -> Dict[str, str]:
        """Current claims as {ledger_id: transaction_id}."""

    @abstractmethod
    def commit_reconciliation(
        self,
        transaction_id: str,
        ledger_id: str,
        score: float,
        method: MatchMethod,
        actor: Optional[str],
        committed_at: datetime,
    ) -> BankTransaction:
        """
        Claim `ledger_id` for `transaction_id` and mark the transaction reconciled.

        Claim iff the ledger record is unclaimed and the transaction is
        unmatched; nothing is written otherwise.

        Raises:
            NotFoundError: unknown transaction
            StateConflictError: ALREADY_RECONCILED or LEDGER_ALREADY_CLAIMED
        """

    @abstractmethod
    def mark_ignored(self, transaction_id: str, reason: str) -> BankTransaction:
        """
        Move an unmatched transaction to ignored.

        Raises:
            NotFoundError: unknown transaction
            StateConflictError: ALREADY_RESOLVED
        """

    def claim_holder(self, ledger_id: str) -> Optional[str]:
        return self.claims().get(ledger_id)

    def list_unmatched(self) -> List[BankTransaction]:
        """Unmatched transactions in processing order: oldest date first, then id."""
        pending = self.list_transactions(TransactionStatus.UNMATCHED)
        return sorted(pending, key=lambda t: (t.transaction_date, t.id))
