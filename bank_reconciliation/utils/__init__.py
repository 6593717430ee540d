"""Utility modules."""

from .text_similarity import TokenOverlapMatcher, normalize_text, contains_reference
from .audit_logger import AuditLogger

__all__ = ["TokenOverlapMatcher", "normalize_text", "contains_reference", "AuditLogger"]
