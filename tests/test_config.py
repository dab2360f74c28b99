"""
tests/test_config.py -- SECRET_KEY policy and defaults in core.config.Settings.
"""

from __future__ import annotations

import pytest

from core.config import Settings


def test_debug_mode_generates_secret_key():
    settings = Settings(_env_file=None, debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key():
    with pytest.raises(ValueError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False, secret_key="")


def test_short_secret_key_rejected():
    with pytest.raises(ValueError, match="at least 32 characters"):
        Settings(_env_file=None, debug=True, secret_key="too-short")


def test_defaults():
    settings = Settings(_env_file=None, debug=False, secret_key="x" * 32)
    assert settings.session_expire_seconds == 7200
    assert settings.anonymous_session_expire_seconds == 300
    assert settings.access_token_expire_seconds == 30 * 24 * 60 * 60
    assert settings.github_enabled is False


def test_github_enabled_needs_id_and_secret():
    base = {"_env_file": None, "debug": True}
    assert not Settings(**base, github_client_id="id").github_enabled
    assert Settings(**base, github_client_id="id", github_client_secret="shh").github_enabled
