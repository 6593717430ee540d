"""Ingestion module for bank statement rows."""

from .row_schema import RawTransactionRow, parse_amount, parse_date
from .statement_csv import StatementCSVReader, ColumnMapping, StatementFile
from .importer import TransactionImporter

__all__ = [
    "RawTransactionRow",
    "parse_amount",
    "parse_date",
    "StatementCSVReader",
    "ColumnMapping",
    "StatementFile",
    "TransactionImporter",
]
