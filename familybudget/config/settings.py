"""
Configuration Management for Family Budget

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what the ledger core depends on and
ensures all configuration is validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """SQLite ledger database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FAMILYBUDGET_DB_",
        extra="ignore"
    )

    path: str = Field(
        default="data/familybudget.db",
        description="Path to the SQLite database file"
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        le=600000,
        description="How long a writer waits for the database lock"
    )
    journal_mode: str = Field(
        default="WAL",
        description="SQLite journal mode"
    )

    @field_validator('journal_mode')
    @classmethod
    def validate_journal_mode(cls, v: str) -> str:
        """Only allow journal modes SQLite understands."""
        allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
        mode = v.strip().upper()
        if mode not in allowed:
            raise ValueError(f"Unsupported journal mode: {v}. Allowed: {sorted(allowed)}")
        return mode


class LedgerSettings(BaseSettings):
    """Ledger behaviour configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FAMILYBUDGET_LEDGER_",
        extra="ignore"
    )

    default_currency: str = Field(
        default="RUB",
        min_length=3,
        max_length=3,
        description="Currency used when an account request omits one"
    )
    supported_currencies: str = Field(
        default="RUB,USD,EUR,KZT,BYN,UAH,GBP",
        description="Comma-separated list of supported currency codes"
    )
    max_catch_up_iterations: int = Field(
        default=10000,
        ge=1,
        description="Upper bound on recurrence periods skipped in one completion"
    )
    storage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a write that hit a transient storage error"
    )
    storage_retry_max_wait_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Upper bound on the exponential wait between attempts"
    )

    @field_validator('default_currency')
    @classmethod
    def normalize_default_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def supported_currencies_list(self) -> list[str]:
        """Get supported currencies as a list."""
        return [
            code.strip().upper()
            for code in self.supported_currencies.split(",")
            if code.strip()
        ]


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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus `<name>_error`
    entries for the sections that failed. Useful for startup checks.
    """
    results: dict = {}

    settings = get_settings()

    for name in ("database", "ledger", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
