"""Tests for settings and logging configuration."""

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from ai_observer.config import Settings, get_settings
from ai_observer.core.pricing import PricingMode
from ai_observer.logging_config import configure_logging

pytestmark = [pytest.mark.core, pytest.mark.tier(0)]


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.otlp_port == 4318
        assert settings.api_port == 8080
        assert settings.database_path == Path("./data/ai-observer.db")
        assert settings.log_level == "info"
        assert settings.max_payload_bytes == 10 * 1024 * 1024
        assert settings.pricing_mode is PricingMode.AUTO

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_OBSERVER_OTLP_PORT", "5000")
        monkeypatch.setenv("AI_OBSERVER_DATABASE_PATH", "/tmp/x.db")
        monkeypatch.setenv("AI_OBSERVER_LOG_LEVEL", "WARN")
        monkeypatch.setenv("AI_OBSERVER_PRICING_MODE", "Display")

        settings = Settings.from_environment()

        assert settings.otlp_port == 5000
        assert settings.database_path == Path("/tmp/x.db")
        assert settings.log_level == "warning"
        assert settings.pricing_mode is PricingMode.DISPLAY

    @pytest.mark.parametrize(
        "overrides",
        [
            {"otlp_port": 0},
            {"api_port": 70000},
            {"log_level": "loud"},
            {"max_payload_bytes": 0},
            {"pricing_mode": "free"},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            Settings.model_validate(overrides)

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLogging:
    def test_configure_logging_sets_package_level(self) -> None:
        logger = configure_logging(Settings(log_level="debug"))

        assert logger.name == "ai_observer"
        assert logger.level == logging.DEBUG
