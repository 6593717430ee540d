"""Reconciliation engine components."""

from .candidates import CandidateGenerator, CandidatePool, AmountIndex
from .scoring import ScoringEngine
from .workflow import ReconciliationWorkflow, DEFAULT_IGNORE_NOTE
from .auto import AutoReconciler
from .stats import StatsAggregator
from .orchestrator import ReconciliationOrchestrator

__all__ = [
    "CandidateGenerator",
    "CandidatePool",
    "AmountIndex",
    "ScoringEngine",
    "ReconciliationWorkflow",
    "DEFAULT_IGNORE_NOTE",
    "AutoReconciler",
    "StatsAggregator",
    "ReconciliationOrchestrator",
]
