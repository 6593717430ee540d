"""Enumerations for the bank reconciliation system."""

from enum import Enum


class TransactionStatus(str, Enum):
    """
    Reconciliation status of an imported bank line.

    UNMATCHED: Imported, waiting for a ledger record
    RECONCILED: Linked to exactly one ledger record (terminal)
    IGNORED: Set aside by an operator, never linked (terminal)
    """
    UNMATCHED = "unmatched"
    RECONCILED = "reconciled"
    IGNORED = "ignored"


class Direction(str, Enum):
    """Direction of the money movement on the bank account."""
    CREDIT = "credit"      # Money in (customer payment)
    DEBIT = "debit"        # Money out


class LedgerKind(str, Enum):
    """Kind of receivable a bank line can settle."""
    INVOICE = "invoice"
    DELIVERY = "delivery"  # Delivery note billed without an invoice


class MatchMethod(str, Enum):
    """How a reconciliation was committed."""
    MANUAL = "manual"
    AUTO = "auto"


class ConflictCode(str, Enum):
    """State conflicts reported to callers of the workflow."""
    ALREADY_RECONCILED = "ALREADY_RECONCILED"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    LEDGER_ALREADY_CLAIMED = "LEDGER_ALREADY_CLAIMED"


class MatchReason(str, Enum):
    """Reason tags attached to a score."""
    EXACT_AMOUNT = "exact_amount"
    AMOUNT_WITHIN_TOLERANCE = "amount_within_tolerance"
    SAME_DAY = "same_day"
    DATE_PROXIMITY = "date_proximity"
    REFERENCE_MATCH = "reference_match"
    CLIENT_NAME_MATCH = "client_name_match"
