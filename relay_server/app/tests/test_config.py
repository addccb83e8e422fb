"""
Configuration Tests
"""

import pytest
from pydantic import ValidationError

from relay_server.app.config import HeaderMode, Settings, validate_configuration


def test_defaults(monkeypatch):
    for name in ("PORT", "TARGET_URL", "HEADER_MODE", "API_KEY_HEADER"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.PORT == 3000
    assert settings.TARGET_URL is None
    assert settings.HEADER_MODE is HeaderMode.SYNTHETIC
    assert settings.API_KEY_HEADER == "X-MBX-APIKEY"
    assert settings.UPSTREAM_TIMEOUT_SECONDS == 30.0
    assert settings.MAX_REDIRECTS == 5


def test_loaded_from_environment(monkeypatch):
    monkeypatch.setenv("PORT", "3001")
    monkeypatch.setenv("TARGET_URL", "https://www.tokocrypto.com/")
    monkeypatch.setenv("HEADER_MODE", "transparent")

    settings = Settings(_env_file=None)

    assert settings.PORT == 3001
    assert settings.TARGET_URL == "https://www.tokocrypto.com"
    assert settings.HEADER_MODE is HeaderMode.TRANSPARENT


def test_blank_target_url_is_unset():
    assert Settings(_env_file=None, TARGET_URL="   ").TARGET_URL is None


def test_target_url_requires_http_scheme():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, TARGET_URL="ftp://files.example.com")


def test_api_key_header_cannot_reveal_identity():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, API_KEY_HEADER="X-Forwarded-For")


def test_unknown_header_mode_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, HEADER_MODE="stealth")


def test_validate_configuration_flags_missing_target():
    status = validate_configuration(Settings(_env_file=None, TARGET_URL=None))

    assert status["valid"] is False
    assert any("TARGET_URL" in error for error in status["errors"])


def test_validate_configuration_ok():
    status = validate_configuration(
        Settings(_env_file=None, TARGET_URL="https://api.example.com")
    )

    assert status["valid"] is True
    assert status["header_mode"] == "synthetic"
