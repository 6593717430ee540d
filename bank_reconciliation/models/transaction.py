"""Bank transaction models for the reconciliation system."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple
from uuid import uuid4

from .enums import Direction, TransactionStatus


DedupKey = Tuple[date, int, str, str]


def cents_to_decimal(amount_cents: int) -> Decimal:
    """Convert integer cents to a two-decimal Decimal."""
    return (Decimal(amount_cents) / 100).quantize(Decimal("0.01"))


@dataclass
class BankTransaction:
    """
    One imported bank-statement line.
    All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
    The amount is signed: credits are positive, debits negative.
    """
    # Identity
    id: str = field(default_factory=lambda: str(uuid4()))

    # Temporal
    transaction_date: Optional[date] = None
    value_date: Optional[date] = None

    # Description
    label: str = ""
    bank_reference: Optional[str] = None

    # Financial data (cents)
    amount_cents: int = 0
    currency: str = "MAD"
    direction: Direction = Direction.CREDIT

    # Reconciliation state
    status: TransactionStatus = TransactionStatus.UNMATCHED
    confidence_score: Optional[float] = None
    linked_ledger_id: Optional[str] = None
    notes: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    reconciled_by: Optional[str] = None

    # Audit
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def amount(self) -> Decimal:
        """Return the signed amount in currency units."""
        return cents_to_decimal(self.amount_cents)

    @property
    def absolute_cents(self) -> int:
        return abs(self.amount_cents)

    @property
    def is_unmatched(self) -> bool:
        return self.status == TransactionStatus.UNMATCHED

    @property
    def dedup_key(self) -> DedupKey:
        """Identity of a statement line across repeated imports."""
        return (
            self.transaction_date,
            self.amount_cents,
            self.label,
            self.bank_reference or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "transaction_date": self.transaction_date.isoformat() if self.transaction_date else None,
            "value_date": self.value_date.isoformat() if self.value_date else None,
            "label": self.label,
            "bank_reference": self.bank_reference,
            "amount_cents": self.amount_cents,
            "amount": float(self.amount),
            "currency": self.currency,
            "direction": self.direction.value,
            "status": self.status.value,
            "confidence_score": self.confidence_score,
            "linked_ledger_id": self.linked_ledger_id,
            "notes": self.notes,
            "reconciled_at": self.reconciled_at.isoformat() if self.reconciled_at else None,
            "reconciled_by": self.reconciled_by,
        }


@dataclass
class RowRejection:
    """A raw import row that failed validation."""
    row_number: int  # 1-based position in the submitted batch
    reason: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ImportSummary:
    """Outcome of one import batch."""
    imported: int = 0
    skipped_duplicates: int = 0
    rejected: int = 0
    rejections: List[RowRejection] = field(default_factory=list)
    transaction_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return self.imported + self.skipped_duplicates + self.rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped_duplicates": self.skipped_duplicates,
            "rejected": self.rejected,
            "rejections": [
                {"row_number": r.row_number, "reason": r.reason}
                for r in self.rejections
            ],
            "transaction_ids": list(self.transaction_ids),
            "warnings": list(self.warnings),
        }
