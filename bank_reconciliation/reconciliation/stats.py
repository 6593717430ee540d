"""Read side: transaction listing and reconciliation statistics."""

from typing import List, Optional

from ..models import BankTransaction, ReconciliationStats, TransactionStatus
from ..store import TransactionStore
from ..utils.text_similarity import normalize_text


class StatsAggregator:
    """Counts and sums over the transaction store. Amounts are absolute values."""

    def __init__(self, store: TransactionStore):
        self.store = store

    def stats(self) -> ReconciliationStats:
        result = ReconciliationStats()
        for transaction in self.store.list_transactions():
            result.total += 1
            if transaction.status == TransactionStatus.RECONCILED:
                result.reconciled_count += 1
                result.reconciled_amount_cents += transaction.absolute_cents
            elif transaction.status == TransactionStatus.IGNORED:
                result.ignored_count += 1
            else:
                result.pending_count += 1
                result.pending_amount_cents += transaction.absolute_cents
        return result

    def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        search_text: Optional[str] = None,
    ) -> List[BankTransaction]:
        """
        Transactions ordered by date (newest first), then id.

        `search_text` matches label, bank reference and notes, ignoring case
        and accents.
        """
        transactions = self.store.list_transactions(status)
        needle = normalize_text(search_text)
        if not needle:
            return transactions

        return [
            t for t in transactions
            if any(
                needle in normalize_text(text)
                for text in (t.label, t.bank_reference, t.notes)
                if text
            )
        ]
