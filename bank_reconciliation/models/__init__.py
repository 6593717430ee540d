"""Data models for the bank reconciliation system."""

from .enums import (
    TransactionStatus,
    Direction,
    LedgerKind,
    MatchMethod,
    ConflictCode,
    MatchReason,
)
from .transaction import (
    BankTransaction,
    ImportSummary,
    RowRejection,
    cents_to_decimal,
)
from .ledger import LedgerRecord
from .reconciliation import (
    ScoreBreakdown,
    MatchSuggestion,
    ReconciliationRecord,
    AutoReconcileReport,
    ReconciliationStats,
)

__all__ = [
    # Enums
    "TransactionStatus",
    "Direction",
    "LedgerKind",
    "MatchMethod",
    "ConflictCode",
    "MatchReason",
    # Transactions
    "BankTransaction",
    "ImportSummary",
    "RowRejection",
    "cents_to_decimal",
    # Ledger
    "LedgerRecord",
    # Reconciliation
    "ScoreBreakdown",
    "MatchSuggestion",
    "ReconciliationRecord",
    "AutoReconcileReport",
    "ReconciliationStats",
]
