from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Overtime Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://overtime:overtime@db:5432/overtime_ledger"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Overtime submission rules.
    overtime_max_entries: int = 5
    overtime_min_hours: float = 0.5
    overtime_max_hours: float = 12
    overtime_submission_window_days: int = 7

    # Monthly recap.
    payable_cap_hours: int = 72
    toil_hour_ratio: int = 8
    toil_expiry_months: int = 3
    default_overtime_rate: int = 300_000
    fixed_rate_access_tier: int = 5
    fixed_tier_daily_rate: int = 150_000
    bulk_recap_concurrency: int = 4

    # Leave.
    annual_quota_days: int = 14
    annual_quota_days_first_year: int = 10
    max_leave_days_per_request: int = 5
    unpaid_leave_max_days_per_year: int = 14
    unpaid_leave_max_consecutive_days: int = 10
    maternity_leave_days: int = 90


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
