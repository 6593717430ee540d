"""
Tests for the Auto-Reconciler.
"""

import pytest
from datetime import date

from bank_reconciliation.config import Settings
from bank_reconciliation.ledger import StaticLedgerSource
from bank_reconciliation.models import (
    BankTransaction,
    LedgerKind,
    LedgerRecord,
    MatchMethod,
    TransactionStatus,
)
from bank_reconciliation.reconciliation import ReconciliationOrchestrator
from bank_reconciliation.store import InMemoryTransactionStore
from bank_reconciliation.utils.audit_logger import AuditLogger


def invoice(ledger_id, amount_cents, record_date, client_name="Ciments du Maroc", reference_code=None):
    return LedgerRecord(
        id=ledger_id,
        kind=LedgerKind.INVOICE,
        client_name=client_name,
        reference_code=reference_code or ledger_id.upper(),
        date=record_date,
        amount_cents=amount_cents,
    )


def transaction(tx_id, amount_cents, tx_date, label):
    return BankTransaction(id=tx_id, transaction_date=tx_date, label=label, amount_cents=amount_cents)


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryTransactionStore()


@pytest.fixture
def service(settings, store):
    return ReconciliationOrchestrator(store=store, ledger=StaticLedgerSource(), settings=settings)


class TestAutoReconciler:
    """Test suite for batch auto-reconciliation."""

    def test_earlier_transaction_wins_contested_record(self, service, store):
        """Two transactions score >= 0.95 on one record: the earlier-dated one gets it."""
        service.load_ledger([invoice("fac0042", 1_500_000, date(2024, 3, 10))])
        store.add_if_absent(transaction("late", 1_500_000, date(2024, 3, 11), "VIR CIMENTS DU MAROC FAC0042"))
        store.add_if_absent(transaction("early", 1_500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC FAC0042"))

        scores = [s.score for s in service.suggestions("late")] + [s.score for s in service.suggestions("early")]
        assert all(score >= 0.95 for score in scores)

        report = service.auto_reconcile(0.9)

        assert report.examined == 2
        assert report.reconciled == 1
        assert store.get("early").status == TransactionStatus.RECONCILED
        assert store.get("late").status == TransactionStatus.UNMATCHED

    def test_loser_falls_through_to_second_best(self, service, store):
        service.load_ledger([
            invoice("fac0042", 1_500_000, date(2024, 3, 10)),
            invoice("fac0043", 1_500_000, date(2024, 3, 14)),
        ])
        store.add_if_absent(transaction("early", 1_500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC"))
        store.add_if_absent(transaction("late", 1_500_000, date(2024, 3, 11), "VIR CIMENTS DU MAROC"))

        report = service.auto_reconcile(0.85)

        assert report.reconciled == 2
        assert store.get("early").linked_ledger_id == "fac0042"
        assert store.get("late").linked_ledger_id == "fac0043"

    def test_threshold_respected(self, service, store):
        service.load_ledger([invoice("fac1", 1_500_000, date(2024, 3, 10), client_name="Autre Client")])
        store.add_if_absent(transaction("tx1", 1_500_000, date(2024, 3, 10), "VIREMENT RECU"))

        best = service.suggestions("tx1")[0].score
        report = service.auto_reconcile(best + 0.01)

        assert report.reconciled == 0
        assert store.get("tx1").is_unmatched

        report = service.auto_reconcile(best)
        assert report.reconciled == 1

    def test_default_threshold_from_settings(self, service, settings):
        report = service.auto_reconcile()

        assert report.threshold == settings.auto_reconcile_threshold

    @pytest.mark.parametrize("threshold", [-0.1, 1.01])
    def test_invalid_threshold(self, service, threshold):
        with pytest.raises(ValueError):
            service.auto_reconcile(threshold)

    def test_records_are_auto_and_audited(self, service, store):
        service.load_ledger([invoice("fac1", 500_000, date(2024, 3, 10))])
        store.add_if_absent(transaction("tx1", 500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC"))

        report = service.auto_reconcile(0.8)

        assert len(report.records) == 1
        record = report.records[0]
        assert record.method == MatchMethod.AUTO
        assert record.committed_by is None
        assert service.audit_logger.entries == report.records
        assert store.get("tx1").reconciled_by == "auto"

    def test_failure_does_not_stop_batch(self, service, store, monkeypatch):
        service.load_ledger([
            invoice("fac1", 500_000, date(2024, 3, 10)),
            invoice("fac2", 700_000, date(2024, 3, 12)),
        ])
        store.add_if_absent(transaction("tx1", 500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC"))
        store.add_if_absent(transaction("tx2", 700_000, date(2024, 3, 12), "VIR CIMENTS DU MAROC"))

        original = service.scoring.rank

        def flaky_rank(tx, records, limit=None):
            if tx.id == "tx1":
                raise RuntimeError("scoring backend down")
            return original(tx, records, limit)

        monkeypatch.setattr(service.scoring, "rank", flaky_rank)

        report = service.auto_reconcile(0.8)

        assert report.examined == 2
        assert report.failed == 1
        assert report.reconciled == 1
        assert "scoring backend down" in report.errors[0]
        assert store.get("tx2").status == TransactionStatus.RECONCILED

    def test_rerun_is_idempotent(self, service, store):
        service.load_ledger([invoice("fac1", 500_000, date(2024, 3, 10))])
        store.add_if_absent(transaction("tx1", 500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC"))

        first = service.auto_reconcile(0.8)
        second = service.auto_reconcile(0.8)

        assert first.reconciled == 1
        assert second.examined == 0
        assert second.reconciled == 0

    def test_ignored_transactions_skipped(self, service, store):
        service.load_ledger([invoice("fac1", 500_000, date(2024, 3, 10))])
        store.add_if_absent(transaction("tx1", 500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC"))
        service.ignore("tx1", "Doublon")

        report = service.auto_reconcile(0.5)

        assert report.examined == 0
        assert store.claim_holder("fac1") is None

    def test_audit_failure_still_counts_as_reconciled(self, settings, store, tmp_path):
        service = ReconciliationOrchestrator(
            store=store,
            ledger=StaticLedgerSource(),
            audit_logger=AuditLogger(tmp_path),
            settings=settings,
        )
        service.load_ledger([invoice("fac1", 500_000, date(2024, 3, 10))])
        store.add_if_absent(transaction("tx1", 500_000, date(2024, 3, 10), "VIR CIMENTS DU MAROC"))

        report = service.auto_reconcile(0.5)

        assert report.reconciled == 1
        assert report.failed == 0
        assert report.errors == []
        assert store.get("tx1").status == TransactionStatus.RECONCILED
        assert store.claims() == {"fac1": "tx1"}
