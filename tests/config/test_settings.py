# tests/config/test_settings.py
from __future__ import annotations

import pytest
from pydantic import ValidationError

from esg_engine.config.settings import Environment, Settings, get_settings


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Defaults apply when nothing is configured."""
    for key in (
        "ENVIRONMENT",
        "LOG_LEVEL",
        "ESG_ENGINE_MAX_WORKERS",
        "ESG_ENGINE_PARALLEL_THRESHOLD",
        "ESG_ENGINE_LOCK_TIMEOUT_S",
        "ESG_ENGINE_METRICS_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)

    s = Settings(_env_file=None)  # type: ignore[call-arg]

    assert s.environment == Environment.DEVELOPMENT
    assert s.log_level == "INFO"
    assert s.max_workers == 4
    assert s.parallel_threshold == 8
    assert s.lock_timeout_s == 30.0
    assert s.metrics_enabled is True


def test_settings_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Settings should hydrate deterministically from environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("ESG_ENGINE_MAX_WORKERS", "8")
    monkeypatch.setenv("ESG_ENGINE_PARALLEL_THRESHOLD", "0")
    monkeypatch.setenv("ESG_ENGINE_LOCK_TIMEOUT_S", "2.5")
    monkeypatch.setenv("ESG_ENGINE_METRICS_ENABLED", "false")

    s = Settings(_env_file=None)  # type: ignore[call-arg]

    assert s.environment == Environment.TEST
    assert s.log_level == "DEBUG"
    assert s.max_workers == 8
    assert s.parallel_threshold == 0
    assert s.lock_timeout_s == 2.5
    assert s.metrics_enabled is False


def test_settings_reject_out_of_range_workers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Worker count is bounded."""
    monkeypatch.setenv("ESG_ENGINE_MAX_WORKERS", "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)  # type: ignore[call-arg]


def test_settings_forbid_extra_fields() -> None:
    """Model should reject unexpected fields (extra='forbid')."""
    with pytest.raises((ValidationError, TypeError)):
        Settings.model_validate({"environment": "test", "unexpected_field": "boom"})


def test_get_settings_is_cached_and_wraps_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    """get_settings returns a singleton and converts validation errors."""
    monkeypatch.delenv("ESG_ENGINE_MAX_WORKERS", raising=False)
    assert get_settings() is get_settings()

    get_settings.cache_clear()
    monkeypatch.setenv("ESG_ENGINE_LOCK_TIMEOUT_S", "-1")
    with pytest.raises(RuntimeError):
        get_settings()
