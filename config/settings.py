"""
Configuration management for the session store.

This module provides centralized configuration loading and validation using
Pydantic settings. Values are loaded from environment variables or .env
files, with an environment-specific file layered on top of the base one.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEVELOPMENT_REDIS_URL = "redis://localhost:6379/0"


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    Files are loaded in order, with later files overriding earlier ones.
    The base .env file is loaded first, then the environment-specific file.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }

    env_specific_file = env_file_map.get(environment, ".env.development")

    return (".env", env_specific_file)


class Settings(BaseSettings):
    """
    Session store settings loaded from environment variables.

    The ENVIRONMENT variable determines which environment-specific .env
    file is layered over the base .env file. Outside development a
    redis_url must be configured explicitly.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Redis Connection Configuration
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for session storage"
    )
    redis_max_connections: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum number of pooled Redis connections"
    )
    redis_pool_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Seconds to wait for a free pooled connection"
    )

    # Session Store Configuration
    session_key_prefix: str = Field(
        default="sessions",
        description="Namespace prepended to every session and user index key"
    )
    eager_index_cleanup: bool = Field(
        default=False,
        description="Remove stale user index members while fetching by user key"
    )

    # Retry Configuration
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made by RetryingSessionStore for retryable failures"
    )
    retry_initial_delay_seconds: float = Field(
        default=0.05,
        ge=0,
        le=10,
        description="Delay before the first retry in seconds"
    )
    retry_max_delay_seconds: Optional[float] = Field(
        default=1.0,
        gt=0,
        description="Upper bound on the delay between retries in seconds"
    )

    # Health Check Configuration
    health_check_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Timeout for the session store readiness check"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that redis_url uses a Redis URL scheme."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("redis_url must start with redis://, rediss:// or unix://")
        return v

    @field_validator("session_key_prefix")
    @classmethod
    def validate_session_key_prefix(cls, v: str) -> str:
        """Strip surrounding whitespace; an empty prefix is allowed."""
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_redis_config(self) -> "Settings":
        """Require redis_url outside development; default it locally."""
        if not self.redis_url:
            if self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    "redis_url is required in non-development environments"
                )
            self.redis_url = DEVELOPMENT_REDIS_URL
        if (
            self.retry_max_delay_seconds is not None
            and self.retry_max_delay_seconds < self.retry_initial_delay_seconds
        ):
            raise ValueError(
                "retry_max_delay_seconds must not be smaller than "
                "retry_initial_delay_seconds"
            )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    This function detects the environment from the ENVIRONMENT variable (if not provided)
    and loads the appropriate environment-specific .env file.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()] or list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings(environment=environment)
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, 'errors'):
            for error in e.errors():
                field_name = '.'.join(str(loc) for loc in error.get('loc', [])) or "settings"
                error_type = error.get('type', '')
                error_msg = error.get('msg', str(error))

                if error_type == 'missing':
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded once and cached for subsequent calls.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    This is primarily useful for testing to allow reloading settings
    with different environment variables.
    """
    global _settings_cache
    _settings_cache = None


def validate_startup() -> None:
    """
    Validate settings at startup, before the store accepts requests.

    Raises:
        ConfigurationError: If any settings are missing or invalid.
    """
    settings = get_settings()

    validation_errors = {}

    if settings.environment == Environment.PRODUCTION:
        if settings.redis_url and settings.redis_url.startswith("redis://localhost"):
            validation_errors["redis_url"] = (
                "Production environment requires a non-localhost Redis endpoint."
            )
        if not settings.session_key_prefix:
            validation_errors["session_key_prefix"] = (
                "Production environment requires a non-empty key prefix."
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )


def get_environment_info() -> dict:
    """
    Get information about the current environment configuration.

    Returns:
        dict: Information about the detected environment and loaded config files.
    """
    environment = _detect_environment()
    env_files = _get_env_files(environment)

    existing_files = [f for f in env_files if Path(f).exists()]

    return {
        "environment": environment.value,
        "env_files_checked": list(env_files),
        "env_files_loaded": existing_files,
    }
