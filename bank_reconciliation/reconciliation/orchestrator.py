"""
Reconciliation Orchestrator - service facade.

Wires the pipeline together:
1. Ledger snapshot (static records or the HTTP feed)
2. Import of bank lines with deduplication
3. Candidate generation + scoring (suggestions)
4. Manual confirm / ignore
5. Batch auto-reconciliation
6. Statistics and audit trail
"""

from typing import Any, Iterable, List, Mapping, Optional

import structlog

from ..config import Settings, get_settings
from ..errors import NotFoundError
from ..ingestion import ColumnMapping, TransactionImporter
from ..ledger import LedgerFeedClient, StaticLedgerSource
from ..models import (
    AutoReconcileReport,
    BankTransaction,
    ImportSummary,
    LedgerRecord,
    MatchMethod,
    MatchSuggestion,
    ReconciliationRecord,
    ReconciliationStats,
    TransactionStatus,
)
from ..store import TransactionStore, create_store
from ..utils.audit_logger import AuditLogger
from .auto import AutoReconciler
from .candidates import CandidateGenerator
from .scoring import ScoringEngine
from .stats import StatsAggregator
from .workflow import ReconciliationWorkflow

logger = structlog.get_logger()


class ReconciliationOrchestrator:
    """
    Single entry point used by the API.

    All methods are synchronous; the ledger feed refresh is the only
    network call and is async.
    """

    def __init__(
        self,
        store: Optional[TransactionStore] = None,
        ledger: Optional[StaticLedgerSource] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or create_store(self.settings)
        self.ledger = ledger if ledger is not None else StaticLedgerSource()
        self.audit_logger = audit_logger or AuditLogger(self.settings.audit_log_path)

        self.importer = TransactionImporter(self.store, self.settings)
        self.generator = CandidateGenerator(self.ledger, self.store, self.settings)
        self.scoring = ScoringEngine(self.settings)
        self.workflow = ReconciliationWorkflow(self.store, self.ledger, self.audit_logger)
        self.auto_reconciler = AutoReconciler(
            self.store, self.generator, self.scoring, self.workflow, self.settings
        )
        self.stats_aggregator = StatsAggregator(self.store)

    # Ledger

    def load_ledger(self, records: Iterable[LedgerRecord]) -> int:
        """Replace the ledger snapshot. Returns the number of records held."""
        self.ledger.replace(records)
        logger.info("Ledger snapshot loaded", records=len(self.ledger))
        return len(self.ledger)

    async def refresh_ledger(self, client: Optional[LedgerFeedClient] = None) -> int:
        """Fetch the ledger feed and replace the snapshot with it."""
        owns_client = client is None
        client = client or LedgerFeedClient(settings=self.settings)
        try:
            records = await client.fetch_records()
        finally:
            if owns_client:
                await client.close()
        return self.load_ledger(records)

    def ledger_records(self) -> List[LedgerRecord]:
        """Ledger records with the store's claims overlaid."""
        claims = self.store.claims()
        return [
            record if record.is_claimed else record.with_claim(claims.get(record.id))
            for record in sorted(self.ledger.records(), key=lambda r: r.id)
        ]

    # Import

    def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> ImportSummary:
        return self.importer.import_rows(rows)

    def import_csv(self, text: str, mapping: Optional[ColumnMapping] = None) -> ImportSummary:
        return self.importer.import_csv(text, mapping)

    # Matching

    def suggestions(self, transaction_id: str, limit: Optional[int] = None) -> List[MatchSuggestion]:
        """Ranked suggestions for one transaction. Empty once it is resolved."""
        transaction = self.store.get(transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        if not transaction.is_unmatched:
            return []
        return self.scoring.rank(transaction, self.generator.candidates(transaction), limit=limit)

    def confirm(
        self,
        transaction_id: str,
        ledger_id: str,
        actor: Optional[str] = None,
        score: Optional[float] = None,
    ) -> ReconciliationRecord:
        return self.workflow.confirm(
            transaction_id, ledger_id, method=MatchMethod.MANUAL, actor=actor, score=score
        )

    def ignore(self, transaction_id: str, reason: Optional[str] = None) -> BankTransaction:
        return self.workflow.ignore(transaction_id, reason)

    def auto_reconcile(self, threshold: Optional[float] = None) -> AutoReconcileReport:
        return self.auto_reconciler.run(threshold)

    # Queries

    def get_transaction(self, transaction_id: str) -> BankTransaction:
        transaction = self.store.get(transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        return transaction

    def list_transactions(
        self,
        status: Optional[TransactionStatus] = None,
        search_text: Optional[str] = None,
    ) -> List[BankTransaction]:
        return self.stats_aggregator.list_transactions(status, search_text)

    def stats(self) -> ReconciliationStats:
        return self.stats_aggregator.stats()
