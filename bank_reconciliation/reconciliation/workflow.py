"""
Reconciliation workflow: confirm and ignore.

Both operations are single state transitions on the transaction store.
A ledger record is linked to at most one transaction and a transaction to
at most one ledger record.
"""

from datetime import datetime
from typing import Optional

import structlog

from ..errors import NotFoundError, StateConflictError
from ..ledger import LedgerSource
from ..models import (
    ConflictCode,
    MatchMethod,
    ReconciliationRecord,
    TransactionStatus,
)
from ..store import TransactionStore
from ..utils.audit_logger import AuditLogger

logger = structlog.get_logger()

DEFAULT_IGNORE_NOTE = "Ignored manually"


class ReconciliationWorkflow:
    """Commits links between bank transactions and ledger records."""

    def __init__(
        self,
        store: TransactionStore,
        ledger: LedgerSource,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.audit_logger = audit_logger or AuditLogger()

    def confirm(
        self,
        transaction_id: str,
        ledger_id: str,
        method: MatchMethod = MatchMethod.MANUAL,
        actor: Optional[str] = None,
        score: Optional[float] = None,
    ) -> ReconciliationRecord:
        """
        Link a transaction to a ledger record.

        Args:
            transaction_id: Unmatched bank transaction
            ledger_id: Unclaimed ledger record
            method: manual or auto
            actor: Operator committing a manual link
            score: Score of the suggestion being confirmed, 0.0 for an override

        Returns:
            The ReconciliationRecord sent to the audit sink

        Raises:
            NotFoundError: unknown transaction or ledger record
            StateConflictError: ALREADY_RECONCILED or LEDGER_ALREADY_CLAIMED
        """
        if score is None:
            score = 0.0
        if not 0.0 <= score <= 1.0:
            raise ValueError(f"score must be within [0, 1], got {score}")

        transaction = self.store.get(transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)

        record = self.ledger.get(ledger_id)
        if record is None:
            raise NotFoundError("ledger record", ledger_id)

        if transaction.status != TransactionStatus.UNMATCHED:
            raise StateConflictError(
                ConflictCode.ALREADY_RECONCILED,
                f"Transaction {transaction_id} is already {transaction.status.value}",
            )
        # Claims made outside this service arrive through the feed
        if record.claimed_by is not None and record.claimed_by != transaction_id:
            raise StateConflictError(
                ConflictCode.LEDGER_ALREADY_CLAIMED,
                f"Ledger record {ledger_id} is already claimed",
                details={"claimed_by": record.claimed_by},
            )

        committed_by = actor if method == MatchMethod.MANUAL else None
        committed_at = datetime.utcnow()
        updated = self.store.commit_reconciliation(
            transaction_id=transaction_id,
            ledger_id=ledger_id,
            score=score,
            method=method,
            actor=committed_by,
            committed_at=committed_at,
        )

        reconciliation = ReconciliationRecord(
            transaction_id=transaction_id,
            ledger_id=ledger_id,
            score=score,
            method=method,
            committed_at=committed_at,
            committed_by=committed_by,
            transaction_amount_cents=updated.amount_cents,
            ledger_amount_cents=record.amount_cents,
        )
        try:
            self.audit_logger.append(reconciliation)
        except OSError:
            # The link is already committed in the store
            logger.exception(
                "Audit sink write failed",
                transaction_id=transaction_id,
                ledger_id=ledger_id,
                record=reconciliation.to_dict(),
            )

        if reconciliation.amount_gap_cents != 0:
            logger.info(
                "Reconciled with amount gap",
                transaction_id=transaction_id,
                ledger_id=ledger_id,
                gap_cents=reconciliation.amount_gap_cents,
            )
        return reconciliation

    def ignore(self, transaction_id: str, reason: Optional[str] = None):
        """
        Set an unmatched transaction aside.

        Raises:
            NotFoundError: unknown transaction
            StateConflictError: ALREADY_RESOLVED
        """
        note = (reason or "").strip() or DEFAULT_IGNORE_NOTE
        transaction = self.store.mark_ignored(transaction_id, note)
        logger.info("Transaction ignored", transaction_id=transaction_id, reason=note)
        return transaction
