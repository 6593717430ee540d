"""
Tests for statement import: row schema, CSV reading and deduplication.
"""

import pytest
from datetime import date

from bank_reconciliation.config import Settings
from bank_reconciliation.ingestion import (
    ColumnMapping,
    RawTransactionRow,
    StatementCSVReader,
    TransactionImporter,
    parse_amount,
    parse_date,
)
from bank_reconciliation.models import Direction, TransactionStatus
from bank_reconciliation.store import InMemoryTransactionStore


@pytest.fixture
def store():
    return InMemoryTransactionStore()


@pytest.fixture
def importer(store):
    return TransactionImporter(store, Settings(_env_file=None))


ROWS = [
    {"date": "2024-03-10", "label": "VIR CIMENTS DU MAROC", "amount": "15 000,00"},
    {"date": "11/03/2024", "label": "PRLV ONEE", "amount": "-1.234,56", "bank_reference": "PR-778"},
    {"date": "12-03-2024", "label": "VIR BETONS ATLAS", "amount": 8200.5},
]


class TestParsing:
    """Amount and date parsing."""

    @pytest.mark.parametrize("raw, expected", [
        ("15 000,00", (1_500_000, False)),
        ("1.234,56", (123_456, False)),
        ("1,234.56", (123_456, False)),
        ("-250.00", (25_000, True)),
        ("(250,00)", (25_000, True)),
        ("250,00-", (25_000, True)),
        ("1 200,50 MAD", (120_050, False)),
        ("1.234.567", (123_456_700, False)),
        ("1,234,567", (123_456_700, False)),
        ("1 234", (123_400, False)),
        ("12.5", (1_250, False)),
        ("12,5", (1_250, False)),
        (8200.5, (820_050, False)),
        (-12, (1_200, True)),
    ])
    def test_parse_amount(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "abc", "12,3,4.5.6", True, "1.234", "1,234", "-1.234"])
    def test_parse_amount_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)

    @pytest.mark.parametrize("raw, expected", [
        ("2024-03-10", date(2024, 3, 10)),
        ("10/03/2024", date(2024, 3, 10)),
        ("10-03-2024", date(2024, 3, 10)),
        ("10.03.2024", date(2024, 3, 10)),
        ("10/03/24", date(2024, 3, 10)),
        ("10/03/98", date(1998, 3, 10)),
        ("2024-03-10T08:15:00", date(2024, 3, 10)),
    ])
    def test_parse_date(self, raw, expected):
        assert parse_date(raw) == expected

    @pytest.mark.parametrize("raw", ["", "31/02/2024", "March 10", "2024/13/01"])
    def test_parse_date_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_date(raw)

    def test_direction_overrides_sign(self):
        row = RawTransactionRow.model_validate({"date": "2024-03-10", "label": "X", "amount": "100", "direction": "D"})

        assert row.signed_cents == -10_000
        assert row.resolved_direction == Direction.DEBIT

    def test_sign_gives_direction(self):
        row = RawTransactionRow.model_validate({"date": "2024-03-10", "label": "X", "amount": "-100"})

        assert row.resolved_direction == Direction.DEBIT


class TestTransactionImporter:
    """Validation and deduplication."""

    def test_import_rows(self, importer, store):
        summary = importer.import_rows(ROWS)

        assert summary.imported == 3
        assert summary.skipped_duplicates == 0
        assert summary.rejected == 0

        transactions = store.list_transactions()
        assert [t.transaction_date for t in transactions] == [
            date(2024, 3, 12), date(2024, 3, 11), date(2024, 3, 10),
        ]
        assert all(t.status == TransactionStatus.UNMATCHED for t in transactions)
        prlv = next(t for t in transactions if t.label == "PRLV ONEE")
        assert prlv.amount_cents == -123_456
        assert prlv.direction == Direction.DEBIT
        assert prlv.currency == "MAD"

    def test_reimport_is_idempotent(self, importer, store):
        importer.import_rows(ROWS)
        summary = importer.import_rows(ROWS)

        assert summary.imported == 0
        assert summary.skipped_duplicates == 3
        assert len(store.list_transactions()) == 3

    def test_duplicates_within_batch(self, importer):
        summary = importer.import_rows([ROWS[0], dict(ROWS[0])])

        assert summary.imported == 1
        assert summary.skipped_duplicates == 1

    def test_reference_is_part_of_key(self, importer):
        first = dict(ROWS[0], bank_reference="A1")
        second = dict(ROWS[0], bank_reference="A2")

        assert importer.import_rows([first, second]).imported == 2

    def test_bad_rows_rejected_not_fatal(self, importer):
        rows = [
            {"date": "2024-03-10", "label": "OK", "amount": "10"},
            {"date": "2024-03-10", "label": "NO AMOUNT", "amount": "abc"},
            {"date": "2024-03-10", "amount": "10"},
            {"label": "NO DATE", "amount": "10"},
            {"date": "32/01/2024", "label": "BAD DATE", "amount": "10"},
            "not a row",
        ]

        summary = importer.import_rows(rows)

        assert summary.imported == 1
        assert summary.rejected == 5
        assert [r.row_number for r in summary.rejections] == [2, 3, 4, 5, 6]
        assert "amount" in summary.rejections[0].reason
        assert "label" in summary.rejections[1].reason
        assert "date" in summary.rejections[2].reason
        assert summary.total_rows == 6

    def test_import_csv(self, importer, store):
        text = (
            "Date opération;Libellé;Référence;Débit;Crédit\n"
            "10/03/2024;VIR CIMENTS DU MAROC;;;15 000,00\n"
            "11/03/2024;PRLV ONEE;PR-778;1 234,56;\n"
        )

        summary = importer.import_csv(text)

        assert summary.imported == 2
        by_label = {t.label: t for t in store.list_transactions()}
        assert by_label["VIR CIMENTS DU MAROC"].amount_cents == 1_500_000
        assert by_label["PRLV ONEE"].amount_cents == -123_456
        assert by_label["PRLV ONEE"].bank_reference == "PR-778"

    def test_import_csv_with_operation_type_column(self, importer, store):
        text = (
            "Date;Libellé;Type;Montant\n"
            "10/03/2024;VIR CIMENTS DU MAROC;Virement;15000,00\n"
            "11/03/2024;PRLV ONEE;Prélèvement;-1234,56\n"
        )

        summary = importer.import_csv(text)

        assert summary.imported == 2
        assert summary.rejected == 0
        assert summary.warnings
        by_label = {t.label: t for t in store.list_transactions()}
        assert by_label["VIR CIMENTS DU MAROC"].direction == Direction.CREDIT
        assert by_label["PRLV ONEE"].amount_cents == -123_456
        assert by_label["PRLV ONEE"].direction == Direction.DEBIT

    def test_summary_lists_imported_ids(self, importer, store):
        summary = importer.import_rows(ROWS[:2])

        data = summary.to_dict()
        assert sorted(data["transaction_ids"]) == sorted(t.id for t in store.list_transactions())
        assert data["warnings"] == []


class TestStatementCSVReader:
    """Column detection and delimiter handling."""

    def test_detect_delimiter(self):
        reader = StatementCSVReader()

        assert reader.detect_delimiter("Date;Libelle;Montant") == ";"
        assert reader.detect_delimiter("Date\tLibelle\tMontant") == "\t"
        assert reader.detect_delimiter("Date,Libelle,Montant") == ","

    def test_detect_mapping_french(self):
        mapping = StatementCSVReader().detect_mapping(
            ["Date opération", "Date valeur", "Libellé", "Montant", "Sens", "Référence"]
        )

        assert mapping.date_col == "Date opération"
        assert mapping.value_date_col == "Date valeur"
        assert mapping.label_col == "Libellé"
        assert mapping.amount_col == "Montant"
        assert mapping.direction_col == "Sens"
        assert mapping.reference_col == "Référence"
        assert mapping.is_complete

    def test_detect_mapping_english(self):
        mapping = StatementCSVReader().detect_mapping(["Booking Date", "Description", "Amount"])

        assert mapping.date_col == "Booking Date"
        assert mapping.label_col == "Description"
        assert mapping.amount_col == "Amount"

    def test_read_with_bom_and_blank_lines(self):
        text = "\ufeffDate,Description,Amount\n\n2024-03-10,VIR X,\"1,500.00\"\n"

        statement = StatementCSVReader().read(text)

        assert statement.delimiter == ","
        assert statement.rows == [{
            "date": "2024-03-10",
            "label": "VIR X",
            "bank_reference": None,
            "value_date": None,
            "amount": "1,500.00",
        }]

    def test_direction_column_kept_when_values_are_directions(self):
        text = "Date;Libellé;Sens;Montant\n10/03/2024;PRLV ONEE;D;1234,56\n"

        statement = StatementCSVReader().read(text)

        assert statement.mapping.direction_col == "Sens"
        assert statement.rows[0]["direction"] == "D"
        assert statement.warnings == []

    def test_type_column_of_operation_kinds_is_not_a_direction(self):
        text = "Date;Libellé;Type;Montant\n10/03/2024;VIR X;Virement;100,00\n"

        statement = StatementCSVReader().read(text)

        assert statement.mapping.direction_col is None
        assert "direction" not in statement.rows[0]
        assert len(statement.warnings) == 1

    def test_explicit_mapping(self):
        text = "d;t;v\n2024-03-10;VIR X;100\n"
        mapping = ColumnMapping(date_col="d", label_col="t", amount_col="v")

        statement = StatementCSVReader().read(text, mapping)

        assert statement.rows[0]["amount"] == "100"
        assert statement.warnings == []

    def test_incomplete_mapping_warns(self):
        statement = StatementCSVReader().read("foo;bar\n1;2\n")

        assert statement.warnings

    def test_empty_file(self):
        statement = StatementCSVReader().read("")

        assert statement.rows == []
        assert statement.warnings == ["Empty file"]
