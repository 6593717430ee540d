"""
Candidate generation: the ledger records a bank line could plausibly settle.

Filtering by amount band and date window before scoring keeps the scoring
engine away from comparing every transaction with the full ledger.
"""

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import List, Optional, Set

import structlog

from ..config import Settings, get_settings
from ..ledger import LedgerSource
from ..models import BankTransaction, LedgerRecord
from ..store import TransactionStore

logger = structlog.get_logger()


class AmountIndex:
    """Ledger records sorted by amount, searchable by amount range."""

    def __init__(self, records: List[LedgerRecord]):
        self._records = sorted(records, key=lambda r: (r.amount_cents, r.id))
        self._amounts = [r.amount_cents for r in self._records]

    def between(self, low_cents: int, high_cents: int) -> List[LedgerRecord]:
        """Records with low <= amount <= high."""
        start = bisect_left(self._amounts, low_cents)
        end = bisect_right(self._amounts, high_cents)
        return self._records[start:end]

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class CandidatePool:
    """
    Snapshot of the ledger used for one or many candidate lookups.

    `claimed` merges claims carried by the feed with the store claim table.
    Batch callers add ledger ids to it as they commit.
    """
    index: AmountIndex
    claimed: Set[str] = field(default_factory=set)

    def mark_claimed(self, ledger_id: str) -> None:
        self.claimed.add(ledger_id)


class CandidateGenerator:
    """
    Returns unclaimed ledger records within the amount band and date window
    of a transaction.

    Ordering: smallest amount gap first, then nearest date, then ledger id.
    """

    def __init__(
        self,
        ledger: LedgerSource,
        store: TransactionStore,
        settings: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.store = store
        self.settings = settings or get_settings()
        self.window_days = self.settings.date_window_days

    def prepare(self) -> CandidatePool:
        """Snapshot the ledger and current claims."""
        records = self.ledger.records()
        claimed = {r.id for r in records if r.is_claimed}
        claimed.update(self.store.claims().keys())
        pool = CandidatePool(index=AmountIndex(records), claimed=claimed)
        logger.debug("Candidate pool prepared", records=len(records), claimed=len(claimed))
        return pool

    def candidates(
        self,
        transaction: BankTransaction,
        pool: Optional[CandidatePool] = None,
    ) -> List[LedgerRecord]:
        """
        Candidates for one transaction.

        Args:
            transaction: Bank line to match
            pool: Prepared snapshot; a fresh one is taken when omitted

        Returns:
            Unclaimed records inside both bands, in deterministic order
        """
        if pool is None:
            pool = self.prepare()

        target = transaction.absolute_cents
        band = self.settings.amount_band_cents(target)
        tx_date = transaction.transaction_date

        found = []
        for record in pool.index.between(target - band, target + band):
            if record.id in pool.claimed:
                continue
            days_apart = abs((record.date - tx_date).days)
            if days_apart > self.window_days:
                continue
            found.append((abs(record.amount_cents - target), days_apart, record.id, record))

        found.sort(key=lambda item: item[:3])
        return [item[3] for item in found]
