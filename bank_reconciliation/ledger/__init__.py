"""Ledger record sources."""

from .source import LedgerSource, StaticLedgerSource
from .feed_client import LedgerFeedClient, parse_ledger_record, delivery_amount_cents

__all__ = [
    "LedgerSource",
    "StaticLedgerSource",
    "LedgerFeedClient",
    "parse_ledger_record",
    "delivery_amount_cents",
]
