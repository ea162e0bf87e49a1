"""Configuration for the ledger functions."""

from pathlib import Path

from pydantic import BaseModel, Field


class LedgerLimits(BaseModel):
    """Limits applied by the request and award ledgers."""

    daily_request_limit: int = Field(default=3, gt=0)
    max_request_minutes: int = Field(default=120, gt=0)
    max_daily_budget_minutes: int = Field(default=240, gt=0)
    default_bonus_minutes: int = Field(default=15, gt=0)
    max_bonus_minutes: int = Field(default=120, gt=0)
    invite_expiry_days: int = Field(default=7, gt=0)


class FunctionsConfig(BaseModel):
    """Deployment configuration for the functions runtime."""

    firebase_credentials_path: Path | None = None
    limits: LedgerLimits = Field(default_factory=LedgerLimits)
    award_poll_interval_seconds: int = Field(default=30, gt=0)
    transaction_max_attempts: int = Field(default=5, gt=0)


def load_config(path: Path) -> FunctionsConfig:
    """Load configuration from a JSON file."""
    return FunctionsConfig.model_validate_json(path.read_text())
