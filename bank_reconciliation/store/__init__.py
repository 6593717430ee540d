"""Transaction store backends."""

from typing import Optional

from ..config import Settings, get_settings
from .base import TransactionStore
from .memory import InMemoryTransactionStore
from .sql import SqlTransactionStore


def create_store(settings: Optional[Settings] = None) -> TransactionStore:
    """Build the store configured by DATABASE_URL (in-memory when unset)."""
    settings = settings or get_settings()
    if settings.database_url:
        return SqlTransactionStore(settings.database_url, echo=settings.app_debug)
    return InMemoryTransactionStore()


__all__ = [
    "TransactionStore",
    "InMemoryTransactionStore",
    "SqlTransactionStore",
    "create_store",
]
