"""Ledger sources: where outstanding invoices and delivery notes come from."""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from ..models import LedgerRecord


class LedgerSource(ABC):
    """Read-only supplier of receivable records."""

    @abstractmethod
    def records(self) -> List[LedgerRecord]:
        """All known ledger records, claimed or not."""

    def get(self, ledger_id: str) -> Optional[LedgerRecord]:
        for record in self.records():
            if record.id == ledger_id:
                return record
        return None


class StaticLedgerSource(LedgerSource):
    """
    In-process ledger snapshot.

    Used by tests and by the API after a feed fetch. Record ids must be
    unique; a later duplicate replaces the earlier one.
    """

    def __init__(self, records: Iterable[LedgerRecord] = ()):
        self._records: Dict[str, LedgerRecord] = {}
        self.replace(records)

    def replace(self, records: Iterable[LedgerRecord]) -> None:
        self._records = {record.id: record for record in records}

    def records(self) -> List[LedgerRecord]:
        return list(self._records.values())

    def get(self, ledger_id: str) -> Optional[LedgerRecord]:
        return self._records.get(ledger_id)

    def __len__(self) -> int:
        return len(self._records)
