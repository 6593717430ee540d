"""
Auto-Reconciler - batch confirmation above a confidence threshold.

Greedy: transactions are examined oldest first and each takes its best
still-available suggestion. An earlier transaction can therefore take a
record a later one would have scored higher on.
"""

from datetime import datetime
from typing import Optional

import structlog

from ..config import Settings, get_settings
from ..errors import StateConflictError
from ..models import AutoReconcileReport, ConflictCode, MatchMethod
from ..store import TransactionStore
from .candidates import CandidateGenerator
from .scoring import ScoringEngine
from .workflow import ReconciliationWorkflow

logger = structlog.get_logger()


class AutoReconciler:
    """
    Runs one auto-reconciliation batch.

    A failure on one transaction is logged and counted; it never stops
    the batch. Re-running a batch is safe since reconciled transactions
    are no longer unmatched.
    """

    def __init__(
        self,
        store: TransactionStore,
        generator: CandidateGenerator,
        scoring: ScoringEngine,
        workflow: ReconciliationWorkflow,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.generator = generator
        self.scoring = scoring
        self.workflow = workflow
        self.settings = settings or get_settings()

    def run(self, threshold: Optional[float] = None) -> AutoReconcileReport:
        """
        Reconcile every unmatched transaction whose best available
        suggestion scores at least `threshold`.

        Raises:
            ValueError: threshold outside [0, 1]
        """
        if threshold is None:
            threshold = self.settings.auto_reconcile_threshold
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")

        report = AutoReconcileReport(threshold=threshold)
        pending = self.store.list_unmatched()
        pool = self.generator.prepare()

        logger.info("Starting auto-reconciliation", pending=len(pending), threshold=threshold)

        for transaction in pending:
            report.examined += 1
            try:
                suggestions = self.scoring.rank(
                    transaction, self.generator.candidates(transaction, pool)
                )
                for suggestion in suggestions:
                    if suggestion.score < threshold:
                        break
                    try:
                        record = self.workflow.confirm(
                            transaction.id,
                            suggestion.ledger_id,
                            method=MatchMethod.AUTO,
                            score=suggestion.score,
                        )
                    except StateConflictError as e:
                        if e.code == ConflictCode.LEDGER_ALREADY_CLAIMED:
                            pool.mark_claimed(suggestion.ledger_id)
                            continue
                        # The transaction itself moved on; nothing left to do for it
                        logger.info(
                            "Transaction no longer unmatched",
                            transaction_id=transaction.id,
                            code=e.code.value,
                        )
                        break

                    pool.mark_claimed(suggestion.ledger_id)
                    report.reconciled += 1
                    report.records.append(record)
                    break

            except Exception as e:
                report.failed += 1
                report.errors.append(f"{transaction.id}: {e}")
                logger.exception("Auto-reconciliation failed for transaction", transaction_id=transaction.id)

        report.completed_at = datetime.utcnow()
        logger.info(
            "Auto-reconciliation complete",
            examined=report.examined,
            reconciled=report.reconciled,
            failed=report.failed,
        )
        return report
