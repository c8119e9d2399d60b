"""
tests/test_config.py -- Settings validation rules in core/config.py.

Explicit keyword arguments override whatever conftest.py put in the
environment; _env_file=None keeps a developer's .env out of the picture.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

KEY = "k" * 32


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_debug_generates_secret_key() -> None:
    settings = _settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_missing_secret_key_outside_debug() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is not set"):
        _settings(debug=False, secret_key="")


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        _settings(debug=True, secret_key="too-short")


def test_supabase_backend_needs_url_and_key() -> None:
    with pytest.raises(ValidationError, match="SUPABASE_URL"):
        _settings(secret_key=KEY, backend="supabase", supabase_url="https://x.supabase.co", supabase_anon_key="")
    settings = _settings(
        secret_key=KEY, backend="supabase", supabase_url="https://x.supabase.co", supabase_anon_key="anon"
    )
    assert settings.backend == "supabase"


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ValidationError):
        _settings(secret_key=KEY, backend="firebase")


def test_list_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("ALLOWED_HOSTS", '["skillink.example", "localhost"]')
    assert _settings(secret_key=KEY).allowed_hosts == ["skillink.example", "localhost"]
