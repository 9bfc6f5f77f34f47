from __future__ import annotations

import pytest
from pydantic import ValidationError

from labquote_api.core.settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, DATABASE_URL="sqlite+aiosqlite:///test.db", **overrides)


def test_settings_defaults(monkeypatch):
    for name in ("TIMEZONE", "CURRENCY", "PAGE_SIZE_DEFAULT", "PAGE_SIZE_MAX", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = _settings()

    assert settings.timezone == "Africa/Casablanca"
    assert settings.currency == "MAD"
    assert settings.page_size_default == 20
    assert settings.page_size_max == 100
    assert settings.log_level == "INFO"


def test_settings_normalizes_values():
    settings = _settings(
        CURRENCY=" eur ",
        LOG_LEVEL="debug",
        CORS_ORIGINS="https://b.example/, https://a.example ,https://b.example",
    )

    assert settings.currency == "EUR"
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_settings_rejects_non_positive_page_size():
    with pytest.raises(ValidationError):
        _settings(PAGE_SIZE_MAX=0)


def test_settings_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)  # type: ignore[call-arg]
