"""Unit tests for core/config.py -- Settings defaults, env overrides, validation."""

import pytest

from core.config import Settings, get_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SESSION_VALIDITY_DAYS", "CONFIRM_VALIDITY_DAYS", "RESET_PASSWORD_VALIDITY_DAYS"):
        monkeypatch.delenv(name, raising=False)
    s = Settings(_env_file=None)
    assert s.session_validity_days == 60
    assert s.confirm_validity_days == 7
    assert s.reset_password_validity_days == 1
    assert s.change_email_validity_days == 7
    assert s.database_url.startswith("sqlite:///")


def test_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SESSION_VALIDITY_DAYS", "30")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    s = Settings(_env_file=None)
    assert s.session_validity_days == 30
    assert s.database_url == "sqlite:///:memory:"


@pytest.mark.parametrize("field", ["session_validity_days", "confirm_validity_days", "reset_password_validity_days"])
def test_non_positive_window_rejected(field: str) -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, **{field: 0})


def test_get_settings_is_cached() -> None:
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()
