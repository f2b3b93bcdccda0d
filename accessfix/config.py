"""Configuration management for AccessFix."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """AccessFix configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="dev", description="Environment: dev, prod")

    # Database Configuration
    db_path: Path = Field(
        default=Path.home() / ".accessfix" / "db.sqlite",
        description="SQLite database path"
    )

    # Artifact storage
    storage_dir: Path = Field(
        default=Path.home() / ".accessfix" / "artifacts",
        description="Root directory for original and remediated documents"
    )

    # Audit engine
    audit_command: Optional[str] = Field(
        default=None,
        description="Command that audits a file and prints a JSON issue report"
    )
    audit_timeout: int = Field(
        default=600,
        description="Audit command timeout in seconds"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="json",
        description="Log format: json, console"
    )

    # Concurrency
    max_concurrent_jobs: int = Field(
        default=4,
        description="Maximum jobs remediated in parallel by one process"
    )
    max_concurrent_jobs_per_tenant: int = Field(
        default=2,
        description="Maximum queued or processing analysis jobs per tenant"
    )
    stuck_job_max_age_seconds: int = Field(
        default=1800,
        description="Age after which an active job is swept to failed"
    )
    update_retry_attempts: int = Field(
        default=5,
        description="Attempts for a task update that lost an optimistic-concurrency race"
    )

    # Planning
    task_id_length: int = Field(
        default=8,
        ge=6,
        le=32,
        description="Hex characters kept from the task id digest"
    )
    default_language: str = Field(
        default="en",
        description="Language tag applied when a document declares none"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure database directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (for testing)."""
    global _settings
    _settings = None
