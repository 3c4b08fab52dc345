"""Application configuration and settings utilities."""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from ai_observer.core.pricing import PricingMode, parse_pricing_mode

_ENV_PREFIX = "AI_OBSERVER_"
_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class Settings(BaseModel):
    """Central configuration for the AI Observer receiver and importer."""

    otlp_port: int = Field(default=4318, ge=1, le=65535)
    api_port: int = Field(default=8080, ge=1, le=65535)
    database_path: Path = Field(default=Path("./data/ai-observer.db"))
    log_level: str = Field(default="info")
    max_payload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    pricing_mode: PricingMode = Field(default=PricingMode.AUTO)

    @field_validator("log_level", mode="before")
    @classmethod
    def _parse_log_level(cls, value: str) -> str:
        normalized = str(value).strip().lower()
        if normalized == "warn":
            normalized = "warning"
        if normalized not in _LOG_LEVELS:
            raise ValueError(f"invalid log level: {value!r}")
        return normalized

    @field_validator("pricing_mode", mode="before")
    @classmethod
    def _parse_pricing_mode(cls, value: str | PricingMode | None) -> PricingMode:
        if isinstance(value, PricingMode):
            return value
        return parse_pricing_mode(value)

    @classmethod
    def from_environment(cls) -> "Settings":
        """Construct settings from AI_OBSERVER_* environment variables."""
        env = os.environ
        data = {
            name: env[_ENV_PREFIX + name.upper()]
            for name in cls.model_fields
            if _ENV_PREFIX + name.upper() in env
        }
        return cls.model_validate(data)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings.from_environment()


__all__ = ["Settings", "get_settings"]
