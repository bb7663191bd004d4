"""Configuration management for Gmail Exporter.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

GMAIL_READONLY_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"
GMAIL_MODIFY_SCOPE = "https://www.googleapis.com/auth/gmail.modify"
GMAIL_INSERT_SCOPE = "https://www.googleapis.com/auth/gmail.insert"


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the GMAIL_EXPORTER_ prefix (e.g., GMAIL_EXPORTER_OUTPUT_DIR).
    """

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_EXPORTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API OAuth client secrets file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_scopes: list[str] = Field(
        default_factory=lambda: [GMAIL_READONLY_SCOPE, GMAIL_MODIFY_SCOPE, GMAIL_INSERT_SCOPE],
        description=(
            "OAuth scopes requested for Gmail access. Export only needs gmail.readonly; "
            "cleanup needs gmail.modify and import needs gmail.insert."
        ),
    )
    import_credentials_path: Path | None = Field(
        default=None,
        description="Client secrets for the destination account of an import (defaults to gmail_credentials_path)",
    )
    import_token_path: Path | None = Field(
        default=None,
        description="Token file for the destination account of an import (defaults to gmail_token_path)",
    )
    page_size: int = Field(
        default=500,
        description="Number of message ids requested per users.messages.list page",
    )

    # Export Configuration
    output_dir: Path = Field(
        default=Path("./exports"),
        description="Directory exported messages are written to",
    )
    export_format: str = Field(
        default="eml",
        description="Default export format (eml, json, mbox)",
    )
    organize_by_labels: bool = Field(
        default=False,
        description="Write exports into one subdirectory per (first) label",
    )
    parallel_workers: int = Field(
        default=3,
        description="Number of concurrent workers used by export, import and cleanup",
    )

    # Default Filters
    exclude_chats: bool = Field(
        default=True,
        description="Exclude chat messages from searches",
    )
    search_scope: str = Field(
        default="all_mail",
        description="Default search scope (all_mail, inbox, sent, drafts, spam, trash)",
    )

    # Metrics
    metrics_enabled: bool = Field(
        default=True,
        description="Write a JSON metrics report after every operation",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional file receiving log output instead of stderr",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for transient Gmail API failures",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
