"""Tests for Settings validation."""

import pytest
from portal_messaging.core.config import Settings, get_settings, reset_settings
from pydantic import ValidationError


def test_urls_are_normalized():
    settings = Settings(
        EMPLOYMENT_API_URL="employment.internal:8089/",
        EMPLOYMENT_WS_URL="wss://employment.internal/",
    )

    assert settings.EMPLOYMENT_API_URL == "http://employment.internal:8089"
    assert settings.EMPLOYMENT_WS_URL == "wss://employment.internal"


def test_messages_ws_url():
    settings = Settings(EMPLOYMENT_WS_URL="ws://employment.test")

    assert (
        settings.messages_ws_url("abc")
        == "ws://employment.test/ws/messages?userId=abc"
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"EMPLOYMENT_API_URL": "ftp://employment.test"},
        {"EMPLOYMENT_WS_URL": "http://employment.test"},
        {"HTTP_TIMEOUT_SECONDS": 0},
        {"WS_RECONNECT_INITIAL_DELAY": 5.0, "WS_RECONNECT_MAX_DELAY": 1.0},
        {"MAX_MESSAGE_LENGTH": 0},
        {"MAX_ACTIVE_VIEWERS": 0},
        {"VIEWER_IDLE_TTL_SECONDS": 0},
        {"LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_cors_origins_parsed_from_comma_separated_string():
    settings = Settings(CORS_ORIGINS="http://a.test, http://b.test,")

    assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]


def test_wildcard_cors_rejected_in_production():
    with pytest.raises(ValidationError):
        Settings(ENVIRONMENT="production", CORS_ORIGINS="*")


def test_log_level_is_upper_cased():
    assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


def test_get_settings_is_cached_until_reset(monkeypatch):
    reset_settings()
    monkeypatch.setenv("MAX_MESSAGE_LENGTH", "123")
    try:
        first = get_settings()
        assert first is get_settings()
        assert first.MAX_MESSAGE_LENGTH == 123

        monkeypatch.setenv("MAX_MESSAGE_LENGTH", "456")
        reset_settings()
        assert get_settings().MAX_MESSAGE_LENGTH == 456
    finally:
        reset_settings()
