"""Site visit agent configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the site visit capture agent.

    Settings are loaded from environment variables with the SITEVISIT_ prefix.
    For example, SITEVISIT_SUBMIT_TIMEOUT=15 sets submit_timeout to 15.
    """

    model_config = SettingsConfigDict(
        env_prefix="SITEVISIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    server_url: str = "http://localhost:8000"
    submit_timeout: float = 20.0  # seconds per capture submission
    connectivity_poll_interval: float = 10.0  # seconds between server reachability checks

    # Device identity (shown in logs, not sent as an idempotency key)
    device_id: str | None = None

    # File paths
    data_dir: Path = Path("~/.local/share/sitevisit")
    queue_filename: str = "pending_captures.db"

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("submit_timeout")
    @classmethod
    def validate_submit_timeout(cls, v: float) -> float:
        """Keep the per-submission timeout bounded."""
        if v < 10 or v > 30:
            raise ValueError("submit_timeout must be between 10 and 30 seconds")
        return v

    @field_validator("connectivity_poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        """Ensure poll interval is positive."""
        if v <= 0:
            raise ValueError("connectivity_poll_interval must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def queue_path(self) -> Path:
        """Return the pending capture database path."""
        return self.data_path / self.queue_filename
