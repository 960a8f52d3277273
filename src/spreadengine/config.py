"""Engine settings.

Settings are read from the environment once, at process entry (CLI or
service bootstrap), and passed explicitly into builders and the authority.
Nothing in the computation core reads the environment.

Environment Variables:
    SPREADENGINE_ENV: Deployment environment (default: development)
    SPREADENGINE_DATABASE_URL: Snapshot/rendering store (default: in-memory stores)
    SPREADENGINE_EVENT_LOG_PATH: JSONL engine event log (default: in-memory sink)
    SPREADENGINE_FACTS_BASE_URL: Fact service base URL
    SPREADENGINE_LEGACY_BASE_URL: Legacy rendering service base URL
    SPREADENGINE_LOAD_TIMEOUT_SECONDS: Load timeout (default: 10)
    SPREADENGINE_MIN_FACT_YEAR: Earliest modeled period year (default: 1990)
    SPREADENGINE_MIN_FACT_CONFIDENCE: Skip facts below this confidence (default: unset)

Mode selection variables are parsed by authority.mode.ModeConfig.from_env.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from decimal import Decimal

from pydantic import BaseModel, Field, ValidationError

from spreadengine.authority.mode import ModeConfig
from spreadengine.builder.model_builder import ModelBuilderConfig

ENV_PREFIX = "SPREADENGINE_"


class ConfigError(Exception):
    """Raised when an environment variable holds an invalid value."""

    pass


class EngineSettings(BaseModel):
    """Process-level engine settings."""

    environment: str = Field(default="development", description="Deployment environment")
    database_url: str | None = Field(default=None, description="SQLAlchemy URL")
    event_log_path: str | None = Field(default=None, description="JSONL event log path")
    facts_base_url: str | None = Field(default=None, description="Fact service base URL")
    legacy_base_url: str | None = Field(default=None, description="Legacy service base URL")
    load_timeout_seconds: float = Field(default=10.0, gt=0)
    min_fact_year: int = Field(default=1990, ge=1)
    min_fact_confidence: Decimal | None = Field(default=None, ge=0, le=1)

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        """Build settings from SPREADENGINE_* variables.

        Unset or empty variables keep their defaults.

        Raises:
            ConfigError: If a variable does not validate.
        """
        env = os.environ if environ is None else environ
        names = {
            "environment": "ENV",
            "database_url": "DATABASE_URL",
            "event_log_path": "EVENT_LOG_PATH",
            "facts_base_url": "FACTS_BASE_URL",
            "legacy_base_url": "LEGACY_BASE_URL",
            "load_timeout_seconds": "LOAD_TIMEOUT_SECONDS",
            "min_fact_year": "MIN_FACT_YEAR",
            "min_fact_confidence": "MIN_FACT_CONFIDENCE",
        }
        values = {
            field: env[ENV_PREFIX + suffix].strip()
            for field, suffix in names.items()
            if env.get(ENV_PREFIX + suffix, "").strip()
        }
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid {ENV_PREFIX}* configuration: {e}") from e

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def builder_config(self) -> ModelBuilderConfig:
        """ModelBuilderConfig derived from these settings."""
        return ModelBuilderConfig(
            environment=self.environment,
            min_year=self.min_fact_year,
            min_confidence=self.min_fact_confidence,
        )


def load_mode_config(environ: Mapping[str, str] | None = None) -> ModeConfig:
    """ModeConfig from the environment; see authority.mode."""
    return ModeConfig.from_env(environ)
