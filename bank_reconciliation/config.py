"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Persistent config path shared with utils.config_utils
APP_BASE_PATH = Path(os.environ.get(
    "RECONCILIATION_BASE_PATH",
    os.environ.get("APP_BASE_PATH", Path.cwd())
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Storage. Empty database_url keeps everything in memory.
    database_url: str = Field(default="")
    audit_log_path: Optional[Path] = Field(default=None)

    # Ledger feed (open invoices and delivery notes)
    ledger_feed_url: str = Field(default="")
    ledger_feed_token: str = Field(default="")
    ledger_feed_timeout_seconds: float = Field(default=30.0)

    # Money
    currency: str = Field(default="MAD")
    vat_rate: float = Field(default=0.20, ge=0.0)

    # Candidate generation
    amount_tolerance: float = Field(default=0.02, ge=0.0, lt=1.0)
    amount_epsilon_cents: int = Field(default=1, ge=0)
    date_window_days: int = Field(default=45, gt=0)
    close_date_days: int = Field(default=7, ge=0)

    # Scoring weights, must sum to 1.0
    weight_amount: float = Field(default=0.45, ge=0.0)
    weight_client_name: float = Field(default=0.35, ge=0.0)
    weight_date: float = Field(default=0.12, ge=0.0)
    weight_reference: float = Field(default=0.08, ge=0.0)

    # Text matching
    min_name_token_length: int = Field(default=3, ge=1)
    name_token_similarity: float = Field(default=90.0, ge=0.0, le=100.0)
    min_reference_length: int = Field(default=4, ge=1)

    # Auto-reconciliation
    auto_reconcile_threshold: float = Field(default=0.75, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_weights(self) -> "Settings":
        total = (
            self.weight_amount
            + self.weight_client_name
            + self.weight_date
            + self.weight_reference
        )
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.4f}")
        return self

    def amount_band_cents(self, amount_cents: int) -> int:
        """
        Maximum allowed distance between a bank amount and a ledger amount.
        Returns: max(epsilon, |amount| * tolerance)
        """
        relative_limit = int(abs(amount_cents) * self.amount_tolerance)
        return max(self.amount_epsilon_cents, relative_limit)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
