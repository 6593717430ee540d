"""Bank transaction reconciliation against open invoices and delivery notes."""

__version__ = "1.0.0"
