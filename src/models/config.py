"""
Configuration Models

Pydantic models for system configuration validation.
"""

import json
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


class ContentServiceConfig(BaseModel):
    """Text-generation service endpoint and request constants."""

    endpoint_url: str = Field(default="https://api.anthropic.com/v1/messages")
    model: str = Field(default="claude-3-5-sonnet-20240620")
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    api_version: str = Field(default="2023-06-01")

    @field_validator("endpoint_url")
    @classmethod
    def validate_endpoint_url(cls, v: str) -> str:
        """Validate endpoint is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("endpoint_url must start with http:// or https://")
        return v


class Timeouts(BaseModel):
    """Timeout configuration in seconds."""

    content_service: int = Field(default=60, gt=0)


class RetryConfig(BaseModel):
    """Retry policy for connection-level failures."""

    max_attempts: int = Field(default=3, gt=0, le=10)


class RateLimits(BaseModel):
    """Rate limiting configuration (requests per minute)."""

    content_service_per_minute: int = Field(default=30, gt=0)


class CacheConfig(BaseModel):
    """Lifetimes of the time-limited cache namespaces."""

    analysis_ttl_days: float = Field(default=7, gt=0)
    content_ttl_days: float = Field(default=3, gt=0)


class AutosaveConfig(BaseModel):
    """Trailing-edge autosave debounce."""

    debounce_ms: int = Field(default=2000, gt=0)


class SystemParams(BaseModel):
    """System parameters configuration model."""

    content_service: ContentServiceConfig = Field(
        default_factory=ContentServiceConfig
    )
    timeouts: Timeouts = Field(default_factory=Timeouts)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limits: RateLimits = Field(default_factory=RateLimits)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    autosave: AutosaveConfig = Field(default_factory=AutosaveConfig)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> "SystemParams":
        """Load system parameters from config file.

        Args:
            config_path: Path to system_params.json (defaults to config/system_params.json)

        Returns:
            SystemParams: Validated configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config validation fails
        """
        if config_path is None:
            config_path = Path("config/system_params.json")
        else:
            config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}. "
                f"Copy {config_path.stem}.example.json to {config_path.name}"
            )

        with open(config_path, "r", encoding="utf-8") as f:
            config_data = json.load(f)

        return cls(**config_data)


def load_api_key(env_file: Path = Path(".env")) -> Optional[str]:
    """Read the content-service API key from the environment.

    Loads ``env_file`` first (if present) without overriding variables that
    are already set. ``CONTENT_SERVICE_API_KEY`` wins over ``ANTHROPIC_API_KEY``.

    Returns:
        The key, or None when neither variable is set
    """
    if env_file.exists():
        load_dotenv(env_file)

    return os.getenv("CONTENT_SERVICE_API_KEY") or os.getenv("ANTHROPIC_API_KEY")
