"""Application configuration using Pydantic Settings.

Configuration is loaded from environment variables. Point `ENV_FILE` at a
local env file to load one during development; nothing is read from disk
unless it is set.
"""

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolbridge.domain.enums import UnknownKeys

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Application settings with type validation.

    The schema settings seed the compiler: `schema_unknown_keys` is the
    strictness context handed to every root schema that does not declare its
    own, and `schema_compile_fail_fast` selects the isolation policy.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "toolbridge"
    app_log_level: str = "INFO"

    # Observability
    observability_structured_logs: bool = True
    metrics_enabled: bool = True

    # Schema compiler
    schema_unknown_keys: UnknownKeys = UnknownKeys.PASSTHROUGH
    # False: a broken field is recorded and skipped, the rest still compiles.
    # True: the first broken field aborts the whole schema.
    schema_compile_fail_fast: bool = False

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("app_log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level and reject names logging does not know."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"app_log_level must be one of {list(_LOG_LEVELS)}, got '{v}'")
        return level

    @field_validator("schema_unknown_keys", mode="before")
    @classmethod
    def parse_schema_unknown_keys(cls, v: str | UnknownKeys) -> UnknownKeys:
        """Accept the enum, its value, or the rule-language spellings true/remove."""
        if isinstance(v, UnknownKeys):
            return v
        value = str(v).strip().lower()
        if value in ("true", "strict"):
            return UnknownKeys.REJECT
        if value in ("false", ""):
            return UnknownKeys.PASSTHROUGH
        return UnknownKeys(value)

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Production must log in a machine-readable format."""
        if self.app_env == AppEnvironment.PROD and not self.observability_structured_logs:
            raise ValueError("OBSERVABILITY_STRUCTURED_LOGS must be enabled in production")
        return self


settings = Settings()
