"""Reconciliation result models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import LedgerKind, MatchMethod
from .transaction import cents_to_decimal


@dataclass
class ScoreBreakdown:
    """Composite confidence score of one (transaction, ledger record) pair."""
    value: float = 0.0
    reasons: List[str] = field(default_factory=list)

    # Partial contributions, already weighted
    amount_score: float = 0.0
    date_score: float = 0.0
    reference_score: float = 0.0
    client_name_score: float = 0.0

    # Match details
    amount_difference_cents: int = 0
    days_apart: int = 0
    matched_name_tokens: List[str] = field(default_factory=list)


@dataclass
class MatchSuggestion:
    """
    A ranked candidate for one bank transaction.
    Transient: built by the scoring engine and consumed immediately.
    """
    ledger_id: str
    kind: LedgerKind
    client_name: str
    amount_cents: int
    date: date
    score: float
    reasons: List[str] = field(default_factory=list)
    days_apart: int = 0
    amount_difference_cents: int = 0  # Distance between |transaction| and the ledger amount

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ledger_id": self.ledger_id,
            "kind": self.kind.value,
            "client_name": self.client_name,
            "amount": float(self.amount),
            "date": self.date.isoformat(),
            "score": self.score,
            "reasons": list(self.reasons),
            "days_apart": self.days_apart,
            "amount_difference": float(cents_to_decimal(self.amount_difference_cents)),
        }


@dataclass
class ReconciliationRecord:
    """The audit fact emitted when a transaction is linked to a ledger record."""
    transaction_id: str
    ledger_id: str
    score: float
    method: MatchMethod
    committed_at: datetime = field(default_factory=datetime.utcnow)
    committed_by: Optional[str] = None  # None for auto commits
    id: str = field(default_factory=lambda: str(uuid4()))

    # Amounts (in cents)
    transaction_amount_cents: int = 0
    ledger_amount_cents: int = 0

    @property
    def amount_gap_cents(self) -> int:
        """Difference between what was paid and what was owed."""
        return abs(self.transaction_amount_cents) - self.ledger_amount_cents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "ledger_id": self.ledger_id,
            "score": self.score,
            "method": self.method.value,
            "committed_at": self.committed_at.isoformat(),
            "committed_by": self.committed_by,
            "transaction_amount_cents": self.transaction_amount_cents,
            "ledger_amount_cents": self.ledger_amount_cents,
            "amount_gap_cents": self.amount_gap_cents,
        }


@dataclass
class AutoReconcileReport:
    """Summary of one auto-reconciliation batch."""
    threshold: float
    examined: int = 0
    reconciled: int = 0
    failed: int = 0
    records: List[ReconciliationRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "examined": self.examined,
            "reconciled": self.reconciled,
            "failed": self.failed,
            "records": [r.to_dict() for r in self.records],
            "errors": list(self.errors),
        }


@dataclass
class ReconciliationStats:
    """Counts and sums over the transaction store."""
    total: int = 0
    reconciled_count: int = 0
    pending_count: int = 0
    ignored_count: int = 0

    # Amounts (in cents)
    pending_amount_cents: int = 0
    reconciled_amount_cents: int = 0

    @property
    def pending_amount(self) -> Decimal:
        return cents_to_decimal(self.pending_amount_cents)

    @property
    def reconciled_amount(self) -> Decimal:
        return cents_to_decimal(self.reconciled_amount_cents)

    @property
    def reconciliation_rate(self) -> float:
        """Percentage of transactions reconciled."""
        if self.total == 0:
            return 0.0
        return (self.reconciled_count / self.total) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "reconciled_count": self.reconciled_count,
            "pending_count": self.pending_count,
            "ignored_count": self.ignored_count,
            "pending_amount": float(self.pending_amount),
            "reconciled_amount": float(self.reconciled_amount),
            "reconciliation_rate": round(self.reconciliation_rate, 2),
        }
