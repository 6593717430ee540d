"""
Transaction importer: validation and deduplication of statement rows.
"""

from typing import Any, Iterable, Mapping, Optional

import structlog
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..models import ImportSummary, RowRejection
from ..store import TransactionStore
from .row_schema import RawTransactionRow, describe_validation_error
from .statement_csv import ColumnMapping, StatementCSVReader

logger = structlog.get_logger()


class TransactionImporter:
    """
    Appends bank lines to the transaction store.

    Rows failing schema validation are rejected and counted; rows whose
    (date, amount, label, reference) already exist are skipped. Importing the
    same export twice therefore imports nothing the second time.
    """

    def __init__(self, store: TransactionStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.csv_reader = StatementCSVReader()

    def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> ImportSummary:
        summary = ImportSummary()

        for row_number, raw in enumerate(rows, start=1):
            if not isinstance(raw, Mapping):
                self._reject(summary, row_number, "row is not a mapping", {})
                continue

            try:
                row = RawTransactionRow.model_validate(dict(raw))
            except ValidationError as e:
                self._reject(summary, row_number, describe_validation_error(e), dict(raw))
                continue

            transaction = row.to_transaction(self.settings.currency)
            if self.store.add_if_absent(transaction):
                summary.imported += 1
                summary.transaction_ids.append(transaction.id)
            else:
                summary.skipped_duplicates += 1
                logger.debug(
                    "Duplicate statement line skipped",
                    row_number=row_number,
                    transaction_date=transaction.transaction_date.isoformat(),
                    amount_cents=transaction.amount_cents,
                )

        logger.info(
            "Import complete",
            imported=summary.imported,
            skipped_duplicates=summary.skipped_duplicates,
            rejected=summary.rejected,
        )
        return summary

    def import_csv(self, text: str, mapping: Optional[ColumnMapping] = None) -> ImportSummary:
        """Read a CSV statement export and import its rows."""
        statement = self.csv_reader.read(text, mapping)
        for warning in statement.warnings:
            logger.warning("Statement CSV warning", warning=warning)
        summary = self.import_rows(statement.rows)
        summary.warnings.extend(statement.warnings)
        return summary

    def _reject(
        self,
        summary: ImportSummary,
        row_number: int,
        reason: str,
        raw: dict,
    ) -> None:
        summary.rejected += 1
        summary.rejections.append(RowRejection(row_number=row_number, reason=reason, raw=raw))
        logger.warning("Import row rejected", row_number=row_number, reason=reason)
