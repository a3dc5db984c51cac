"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which storage backends are in play and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Expense store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSES_STORE_",
        extra="ignore"
    )

    database_url: str = Field(
        default="",
        description="SQLAlchemy async URL (e.g. sqlite+aiosqlite:///expenses.db). Empty = in-memory"
    )
    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )

    @property
    def is_in_memory(self) -> bool:
        return not self.database_url


class SessionSettings(BaseSettings):
    """Session settings store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSES_SESSION_",
        extra="ignore"
    )

    settings_path: str = Field(
        default=".expenses_session.json",
        description="Path of the JSON file holding the userID/name session keys"
    )

    @field_validator('settings_path')
    @classmethod
    def validate_settings_path(cls, v: str) -> str:
        """Warn if the parent directory doesn't exist (but don't fail - might be created later)."""
        parent = Path(v).expanduser().parent
        if not parent.exists():
            import warnings
            warnings.warn(
                f"Session settings directory not found at {parent}. "
                "It will be created on first sign-in."
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
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level for the stdlib logger behind structlog"
    )

    # Money
    currency_code: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 code used when rendering amounts"
    )
    max_expense_amount_cents: int = Field(
        default=100_000_000_00,
        ge=0,
        description="Maximum reasonable expense amount in cents (for sanity checking)"
    )

    # First launch
    seed_default_categories: bool = Field(
        default=True,
        description="Insert the default categories when none exist"
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
    def store(self) -> StoreSettings:
        return StoreSettings()

    @property
    def session(self) -> SessionSettings:
        return SessionSettings()

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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("store", "session", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
