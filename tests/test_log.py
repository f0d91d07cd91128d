"""Tests for logging configuration."""

import logging

from webnovel_translator.log import redact_secrets, resolve_level


def test_resolve_level():
    """Flags override the configured level name."""
    assert resolve_level(1, "WARNING") == logging.DEBUG
    assert resolve_level(-1, "DEBUG") == logging.WARNING
    assert resolve_level(0, "warning") == logging.WARNING
    assert resolve_level(0, "NOPE") == logging.INFO


class TestRedactSecrets:
    """Credentials never reach the log output in full."""

    def test_secret_fields_masked(self):
        """Fields named like credentials keep a short prefix."""
        event = redact_secrets(None, "info", {"event": "client_created", "api_key": "supersecretkey123"})
        assert event["api_key"] == "supersec..."

    def test_already_masked_untouched(self):
        """Values masked upstream are left alone."""
        event = redact_secrets(None, "info", {"event": "x", "api_key": "abcdefgh..."})
        assert event["api_key"] == "abcdefgh..."

    def test_key_in_error_text(self):
        """Keys echoed in SDK error messages are masked."""
        key = "AIza" + "B" * 35
        event = redact_secrets(None, "error", {"event": "request_failed", "error": f"invalid key {key}"})
        assert key not in event["error"]
        assert "AIzaBBBB..." in event["error"]
