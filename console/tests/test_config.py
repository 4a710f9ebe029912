"""
Unit Tests for Settings and Logging Setup
"""

import logging

import pytest

from console.config import Settings, SettingsError, load_settings
from console.logging_utils import setup_logging


class TestLoadSettings:
    """Tests for reading settings from the environment."""

    def test_defaults(self):
        """An empty environment gives the default settings."""
        settings = load_settings({})

        assert settings == Settings()
        assert settings.backend == "memory"
        assert settings.max_append_attempts == 3
        assert not settings.allow_self_deactivation

    def test_overrides(self):
        """Every variable is read and normalized."""
        settings = load_settings({
            "TOKEN_CONSOLE_BACKEND": "HTTP",
            "TOKEN_CONSOLE_API_BASE": "https://data.example.com/api/",
            "TOKEN_CONSOLE_HTTP_TIMEOUT": "2.5",
            "TOKEN_CONSOLE_ALLOW_SELF_DEACTIVATION": "yes",
            "TOKEN_CONSOLE_MAX_APPEND_ATTEMPTS": "5",
            "TOKEN_CONSOLE_LOG_LEVEL": "debug",
            "TOKEN_CONSOLE_CORS_ORIGINS": "https://admin.example.com, https://ops.example.com",
        })

        assert settings.backend == "http"
        assert settings.api_base == "https://data.example.com/api"
        assert settings.http_timeout == 2.5
        assert settings.allow_self_deactivation
        assert settings.max_append_attempts == 5
        assert settings.log_level == "DEBUG"
        assert settings.cors_origins == ("https://admin.example.com", "https://ops.example.com")

    @pytest.mark.parametrize("environ", [
        {"TOKEN_CONSOLE_BACKEND": "redis"},
        {"TOKEN_CONSOLE_BACKEND": "http"},
        {"TOKEN_CONSOLE_HTTP_TIMEOUT": "soon"},
        {"TOKEN_CONSOLE_MAX_APPEND_ATTEMPTS": "0"},
        {"TOKEN_CONSOLE_MAX_PAGE_SIZE": "ten"},
        {"TOKEN_CONSOLE_DEFAULT_PAGE_SIZE": "50", "TOKEN_CONSOLE_MAX_PAGE_SIZE": "20"},
    ])
    def test_invalid_values_rejected(self, environ):
        """Bad values fail loudly instead of falling back."""
        with pytest.raises(SettingsError):
            load_settings(environ)

    def test_blank_values_fall_back(self):
        """Blank variables count as unset."""
        settings = load_settings({"TOKEN_CONSOLE_OUTBOX_GRACE_SECONDS": ""})

        assert settings.outbox_grace_seconds == 300


class TestSetupLogging:
    """Tests for logging setup."""

    def test_idempotent(self):
        """Calling setup twice keeps one handler and applies the new level."""
        root = setup_logging("INFO")
        count = len(root.handlers)

        setup_logging("DEBUG")

        assert len(root.handlers) == count
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
