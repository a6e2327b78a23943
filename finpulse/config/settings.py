"""
Configuration Management for FinPulse

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every window length, threshold and weight used by the rule engines lives
in AnalysisSettings, so tuning a rule never means editing engine code.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisSettings(BaseSettings):
    """
    Windows, thresholds and weights for the financial intelligence engines.

    All percentages are expressed on a 0-100 scale.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINPULSE_",
        extra="ignore"
    )

    # Health score
    health_recent_window_days: int = Field(
        default=30,
        ge=1,
        description="Window for savings rate and expense volatility"
    )
    health_trend_window_days: int = Field(
        default=90,
        ge=1,
        description="Window for income stability"
    )
    weight_savings_rate: float = Field(default=0.25, ge=0.0, le=1.0)
    weight_budget_adherence: float = Field(default=0.25, ge=0.0, le=1.0)
    weight_income_stability: float = Field(default=0.20, ge=0.0, le=1.0)
    weight_expense_volatility: float = Field(default=0.15, ge=0.0, le=1.0)
    weight_goal_progress: float = Field(default=0.15, ge=0.0, le=1.0)
    trend_change_threshold: int = Field(
        default=5,
        ge=0,
        description="Score delta above which the trend is improving/declining"
    )

    # Trend analysis
    trend_daily_days: int = Field(default=30, ge=1)
    trend_weekly_weeks: int = Field(default=12, ge=1)
    trend_monthly_months: int = Field(default=12, ge=1)

    # Signal detection
    signal_current_window_days: int = Field(default=30, ge=1)
    signal_comparison_window_days: int = Field(default=90, ge=1)
    signal_historical_window_days: int = Field(default=180, ge=1)
    signal_dedup_days: int = Field(
        default=7,
        ge=0,
        description="Lookback during which an active insight suppresses a new one"
    )
    spending_spike_threshold: float = Field(default=30.0)
    savings_drop_threshold: float = Field(default=20.0)
    budget_leakage_threshold: float = Field(default=50.0)
    income_dip_threshold: float = Field(default=20.0)
    debt_growth_threshold: float = Field(default=15.0)
    transaction_silence_days: int = Field(default=7, ge=1)
    debt_payment_threshold: float = Field(
        default=100.0,
        description="Expenses larger than this are treated as debt-like payments"
    )

    # Early warning
    alert_dedup_days: int = Field(
        default=3,
        ge=0,
        description="Dedup lookback for early-warning alerts"
    )
    savings_forecast_months: int = Field(default=3, ge=1)
    stagnation_window_months: int = Field(default=6, ge=2)
    stagnation_payment_threshold: float = Field(
        default=50.0,
        description="Expenses larger than this count as payments for stagnation"
    )
    principal_reduction_ratio: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Share of a debt-like payment assumed to reduce principal"
    )

    @model_validator(mode='after')
    def validate_weights(self) -> 'AnalysisSettings':
        """Health score weights must sum to 1 so the score stays within 0-100."""
        total = (
            self.weight_savings_rate
            + self.weight_budget_adherence
            + self.weight_income_stability
            + self.weight_expense_volatility
            + self.weight_goal_progress
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Health score weights must sum to 1.0, got {total:.3f}")
        return self


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Worksheet names within the spreadsheet
    categories_sheet_name: str = Field(default="Categories")
    ledger_sheet_name: str = Field(default="Ledger")
    budgets_sheet_name: str = Field(default="Budgets")
    goals_sheet_name: str = Field(default="Goals")
    health_scores_sheet_name: str = Field(default="HealthScores")
    trends_sheet_name: str = Field(default="TrendAnalysis")
    insights_sheet_name: str = Field(default="Insights")
    tasks_sheet_name: str = Field(default="Tasks")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    debug_mode: bool = Field(
        default=False,
        description="Log finpulse diagnostics at DEBUG level"
    )
    job_history_hours: int = Field(
        default=24,
        ge=1,
        description="Window for recent background job history"
    )
    job_retention_days: int = Field(
        default=7,
        ge=1,
        description="Background job statuses older than this are evicted"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def analysis(self) -> AnalysisSettings:
        return AnalysisSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("analysis", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
