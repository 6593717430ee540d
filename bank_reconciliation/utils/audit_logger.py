"""
Audit logging for committed reconciliations.
"""

import json
import threading
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

from ..models import MatchMethod, ReconciliationRecord

logger = structlog.get_logger()


class AuditLogger:
    """
    Append-only sink for ReconciliationRecords.
    Keeps entries in memory and, when a path is given, appends one JSON line per record.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self.entries: List[ReconciliationRecord] = []
        self._lock = threading.Lock()

    def append(self, record: ReconciliationRecord) -> None:
        """
        Add a committed reconciliation.

        Raises:
            OSError: the audit file could not be written; the record is not
                kept in memory either
        """
        with self._lock:
            # File first: a failed write leaves the in-memory entries untouched
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
            self.entries.append(record)

        logger.info(
            "Reconciliation committed",
            transaction_id=record.transaction_id,
            ledger_id=record.ledger_id,
            score=record.score,
            method=record.method.value,
            committed_by=record.committed_by,
        )

    def get_entries(
        self,
        method_filter: Optional[MatchMethod] = None,
        transaction_id: Optional[str] = None,
    ) -> List[ReconciliationRecord]:
        """Get filtered audit entries."""
        entries = list(self.entries)

        if method_filter:
            entries = [e for e in entries if e.method == method_filter]

        if transaction_id:
            entries = [e for e in entries if e.transaction_id == transaction_id]

        return entries

    def export_to_file(self, output_path: Path) -> Path:
        """Export the audit log to a JSON file."""
        output_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "exported_at": datetime.utcnow().isoformat(),
            "total_entries": len(self.entries),
            "entries": [e.to_dict() for e in self.entries],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info("Audit log exported", path=str(output_path))
        return output_path

    def summary(self) -> dict:
        """Get summary statistics of the audit log."""
        method_counts = Counter(e.method.value for e in self.entries)
        return {
            "total_entries": len(self.entries),
            "method_counts": dict(method_counts),
        }
