"""Exceptions raised by the reconciliation core."""

from typing import Any, Optional

from .models import ConflictCode


class ReconciliationError(Exception):
    """Base class for reconciliation errors."""


class StateConflictError(ReconciliationError):
    """
    The requested transition no longer applies to the current state.
    Recoverable: refresh state or retry with another candidate.
    """
    def __init__(self, code: ConflictCode, message: str, details: Any = None):
        super().__init__(message)
        self.code = code
        self.details = details


class NotFoundError(ReconciliationError):
    """Unknown transaction or ledger id."""
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class LedgerFeedError(ReconciliationError):
    """Custom exception for ledger feed errors."""
    def __init__(self, message: str, status_code: int = 0, details: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details
