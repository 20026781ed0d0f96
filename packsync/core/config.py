"""Configuration management for packsync."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from packsync.core.types import HashFormat, Side

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "packsync" / "config.json"


class HttpConfig(BaseModel):
    """HTTP transport configuration."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    user_agent: str = Field(
        default="packsync/0.1.0",
        description="User-Agent header sent with every request"
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class SyncConfig(BaseModel):
    """Synchronization run configuration."""

    pack_folder: Path = Field(default=Path("."), description="Local pack root")
    manifest_file: str = Field(
        default="packsync.json",
        description="Cache store file name, relative to the pack folder"
    )
    side: Side = Field(default=Side.CLIENT, description="Side to install files for")
    max_workers: int = Field(default=10, description="Concurrent fetch units")
    max_retries: int = Field(default=3, description="Attempts per fetch unit")
    base_backoff: float = Field(
        default=0.5,
        description="Base delay in seconds for exponential retry backoff"
    )
    pack_hash_format: HashFormat = Field(
        default=HashFormat.SHA256,
        description="Digest used to fingerprint the pack descriptor"
    )

    @property
    def manifest_path(self) -> Path:
        """Absolute location of the cache store file."""
        return self.pack_folder / self.manifest_file

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        """Validate worker count."""
        if v < 1:
            raise ValueError("At least one worker is required")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate retry count."""
        if v < 1:
            raise ValueError("Max retries must be at least 1")
        return v

    @field_validator("base_backoff")
    @classmethod
    def validate_base_backoff(cls, v: float) -> float:
        """Validate backoff value."""
        if v < 0:
            raise ValueError("Backoff must be non-negative")
        return v

    @field_validator("manifest_file")
    @classmethod
    def validate_manifest_file(cls, v: str) -> str:
        """Validate manifest file name."""
        if not v or Path(v).is_absolute():
            raise ValueError("Manifest file must be a relative path")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    http: HttpConfig = Field(default_factory=HttpConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="WARNING",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = DEFAULT_CONFIG_FILE

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
