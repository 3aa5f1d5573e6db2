"""Configuration management for Split Ledger."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPLIT_LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database path
    database_path: Path = Path.home() / ".split_ledger" / "split_ledger.db"

    # Seconds to wait on a locked database before reporting a conflict
    busy_timeout: float = 5.0

    # Currency recorded on new expenses (never converted)
    default_currency: str = "USD"

    # Number of rows shown by "recent expenses" views
    recent_expense_limit: int = 20

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your SPLIT_LEDGER_* environment "
            f"variables or .env file.\n"
            f"Error: {e}"
        ) from e
