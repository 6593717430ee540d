"""
In-memory transaction store.
Default backend when no database URL is configured, and for tests.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from ..errors import NotFoundError, StateConflictError
from ..models import (
    BankTransaction,
    ConflictCode,
    MatchMethod,
    TransactionStatus,
)
from ..models.transaction import DedupKey
from .base import TransactionStore


class InMemoryTransactionStore(TransactionStore):
    """
    Dict-backed store.

    One lock guards every read-check-write sequence so that the claim
    and the status change of a commit are observed together or not at all.
    Callers always receive copies; stored objects never leave the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._transactions: Dict[str, BankTransaction] = {}
        self._dedup_index: Dict[DedupKey, str] = {}
        self._claims: Dict[str, str] = {}

    def add_if_absent(self, transaction: BankTransaction) -> bool:
        key = transaction.dedup_key
        with self._lock:
            if key in self._dedup_index:
                return False
            self._dedup_index[key] = transaction.id
            self._transactions[transaction.id] = replace(transaction)
            return True

    def get(self, transaction_id: str) -> Optional[BankTransaction]:
        with self._lock:
            stored = self._transactions.get(transaction_id)
            return replace(stored) if stored else None

    def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
    ) -> List[BankTransaction]:
        with self._lock:
            items = [
                replace(t) for t in self._transactions.values()
                if status is None or t.status == status
            ]
        items.sort(key=lambda t: t.id)
        items.sort(key=lambda t: t.transaction_date, reverse=True)
        return items

    def claims(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._claims)

    def commit_reconciliation(
        self,
        transaction_id: str,
        ledger_id: str,
        score: float,
        method: MatchMethod,
        actor: Optional[str],
        committed_at: datetime,
    ) -> BankTransaction:
        with self._lock:
            stored = self._transactions.get(transaction_id)
            if stored is None:
                raise NotFoundError("transaction", transaction_id)
            if stored.status != TransactionStatus.UNMATCHED:
                raise StateConflictError(
                    ConflictCode.ALREADY_RECONCILED,
                    f"Transaction {transaction_id} is already {stored.status.value}",
                )
            holder = self._claims.get(ledger_id)
            if holder is not None:
                raise StateConflictError(
                    ConflictCode.LEDGER_ALREADY_CLAIMED,
                    f"Ledger record {ledger_id} is already claimed",
                    details={"claimed_by": holder},
                )

            self._claims[ledger_id] = transaction_id
            stored.status = TransactionStatus.RECONCILED
            stored.linked_ledger_id = ledger_id
            stored.confidence_score = score
            stored.reconciled_at = committed_at
            stored.reconciled_by = actor if method == MatchMethod.MANUAL else MatchMethod.AUTO.value
            return replace(stored)

    def mark_ignored(self, transaction_id: str, reason: str) -> BankTransaction:
        with self._lock:
            stored = self._transactions.get(transaction_id)
            if stored is None:
                raise NotFoundError("transaction", transaction_id)
            if stored.status != TransactionStatus.UNMATCHED:
                raise StateConflictError(
                    ConflictCode.ALREADY_RESOLVED,
                    f"Transaction {transaction_id} is already {stored.status.value}",
                )
            stored.status = TransactionStatus.IGNORED
            stored.notes = reason
            return replace(stored)
