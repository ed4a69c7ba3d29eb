"""
Configuration Management for Kakeibo Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what the engine depends on and
ensures all configuration is validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Embedded entity store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KAKEIBO_DB_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///kakeibo.db",
        description="SQLAlchemy URL of the local database"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to try opening the store before giving up"
    )

    @property
    def is_in_memory(self) -> bool:
        """True for SQLite URLs that do not point at a file."""
        return self.url in ("sqlite://", "sqlite:///:memory:", "sqlite+pysqlite:///:memory:")


class LedgerSettings(BaseSettings):
    """Ledger engine behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="KAKEIBO_LEDGER_",
        extra="ignore"
    )

    enforce_goal_funds: bool = Field(
        default=True,
        description="Reject any mutation that would drive a goal's current amount below zero"
    )
    auto_complete_goals: bool = Field(
        default=True,
        description="Mark goals completed when they reach their target"
    )
    default_alert_thresholds: str = Field(
        default="50,80,100",
        description="Comma-separated budget alert percentages for new budgets"
    )

    @field_validator('default_alert_thresholds')
    @classmethod
    def validate_thresholds(cls, v: str) -> str:
        """Thresholds must be non-negative integers."""
        for part in v.split(","):
            part = part.strip()
            if part and (not part.isdigit()):
                raise ValueError(f"Invalid alert threshold: {part!r}")
        return v

    @property
    def alert_thresholds_list(self) -> list[int]:
        """Get alert thresholds as an ascending list."""
        return sorted(
            int(part.strip())
            for part in self.default_alert_thresholds.split(",")
            if part.strip()
        )


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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
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

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for every section that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("database", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
