"""Receivable records supplied by the ledger source."""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Optional, Dict, Any

from .enums import LedgerKind
from .transaction import cents_to_decimal


@dataclass(frozen=True)
class LedgerRecord:
    """
    An outstanding invoice or delivery note eligible for settlement.

    Invoices and delivery notes share every field; `kind` tells them apart.
    Records are read-only to the reconciliation core.
    """
    id: str
    kind: LedgerKind
    client_name: str
    reference_code: str
    date: date  # Due date for invoices, issue date for delivery notes
    amount_cents: int
    claimed_by: Optional[str] = None  # Transaction id holding the claim

    @property
    def amount(self) -> Decimal:
        return cents_to_decimal(self.amount_cents)

    @property
    def is_claimed(self) -> bool:
        return self.claimed_by is not None

    def with_claim(self, transaction_id: Optional[str]) -> "LedgerRecord":
        """Copy of this record with the claim field overlaid."""
        return replace(self, claimed_by=transaction_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "client_name": self.client_name,
            "reference_code": self.reference_code,
            "date": self.date.isoformat(),
            "amount_cents": self.amount_cents,
            "amount": float(self.amount),
            "claimed_by": self.claimed_by,
        }
