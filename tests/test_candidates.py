"""
Tests for the Candidate Generator.
"""

import pytest
from datetime import date, datetime, timedelta

from bank_reconciliation.config import Settings
from bank_reconciliation.ledger import StaticLedgerSource
from bank_reconciliation.models import BankTransaction, LedgerKind, LedgerRecord, MatchMethod
from bank_reconciliation.reconciliation.candidates import AmountIndex, CandidateGenerator
from bank_reconciliation.store import InMemoryTransactionStore


TX_DATE = date(2024, 3, 10)


def record(ledger_id, amount_cents, days_offset=0, claimed_by=None):
    return LedgerRecord(
        id=ledger_id,
        kind=LedgerKind.INVOICE,
        client_name="Ciments du Maroc",
        reference_code=f"REF-{ledger_id}",
        date=TX_DATE + timedelta(days=days_offset),
        amount_cents=amount_cents,
        claimed_by=claimed_by,
    )


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryTransactionStore()


@pytest.fixture
def transaction(store):
    tx = BankTransaction(
        id="tx1",
        transaction_date=TX_DATE,
        label="VIR CIMENTS DU MAROC",
        amount_cents=1_500_000,
    )
    store.add_if_absent(tx)
    return tx


class TestCandidateGenerator:
    """Test suite for candidate filtering."""

    def test_amount_outside_tolerance_excluded(self, settings, store, transaction):
        """14 000.00 is more than 2% away from 15 000.00."""
        ledger = StaticLedgerSource([record("exact", 1_500_000), record("far", 1_400_000)])
        generator = CandidateGenerator(ledger, store, settings)

        ids = [r.id for r in generator.candidates(transaction)]

        assert ids == ["exact"]

    def test_tolerance_band_is_inclusive(self, settings, store, transaction):
        ledger = StaticLedgerSource([
            record("low_edge", 1_470_000),
            record("high_edge", 1_530_000),
            record("just_out", 1_469_999),
        ])
        generator = CandidateGenerator(ledger, store, settings)

        ids = {r.id for r in generator.candidates(transaction)}

        assert ids == {"low_edge", "high_edge"}

    def test_date_window(self, settings, store, transaction):
        ledger = StaticLedgerSource([
            record("inside", 1_500_000, days_offset=-45),
            record("outside", 1_500_000, days_offset=46),
        ])
        generator = CandidateGenerator(ledger, store, settings)

        ids = [r.id for r in generator.candidates(transaction)]

        assert ids == ["inside"]

    def test_claimed_records_excluded(self, settings, store, transaction):
        other = BankTransaction(id="tx0", transaction_date=TX_DATE, label="VIR", amount_cents=900)
        store.add_if_absent(other)
        store.commit_reconciliation("tx0", "store_claim", 0.5, MatchMethod.MANUAL, "ops", datetime.utcnow())

        ledger = StaticLedgerSource([
            record("feed_claim", 1_500_000, claimed_by="elsewhere"),
            record("store_claim", 1_500_000),
            record("free", 1_500_000),
        ])
        generator = CandidateGenerator(ledger, store, settings)

        ids = [r.id for r in generator.candidates(transaction)]

        assert ids == ["free"]

    def test_ordering(self, settings, store, transaction):
        ledger = StaticLedgerSource([
            record("c", 1_500_500, days_offset=1),
            record("b", 1_500_000, days_offset=5),
            record("a2", 1_500_000, days_offset=-2),
            record("a1", 1_500_000, days_offset=2),
        ])
        generator = CandidateGenerator(ledger, store, settings)

        ids = [r.id for r in generator.candidates(transaction)]

        assert ids == ["a1", "a2", "b", "c"]

    def test_deterministic(self, settings, store, transaction):
        ledger = StaticLedgerSource([record(f"inv{i}", 1_500_000 + i * 100, days_offset=i % 7) for i in range(30)])
        generator = CandidateGenerator(ledger, store, settings)

        assert generator.candidates(transaction) == generator.candidates(transaction)

    def test_pool_marks_claims(self, settings, store, transaction):
        ledger = StaticLedgerSource([record("a", 1_500_000), record("b", 1_500_000)])
        generator = CandidateGenerator(ledger, store, settings)
        pool = generator.prepare()

        pool.mark_claimed("a")

        assert [r.id for r in generator.candidates(transaction, pool)] == ["b"]


class TestAmountIndex:

    def test_between_inclusive(self):
        index = AmountIndex([record("a", 100), record("b", 200), record("c", 300)])

        assert [r.id for r in index.between(100, 200)] == ["a", "b"]
        assert index.between(301, 400) == []
        assert len(index) == 3
