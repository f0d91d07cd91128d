"""Tests for configuration loading."""

from io import StringIO

import pytest
from pydantic import ValidationError
from rich.console import Console

from webnovel_translator.config import (
    AppConfig,
    GlossaryConfig,
    LLMConfig,
    TranslationConfig,
    mask_api_key,
    print_config_summary,
)


class TestEnvironment:
    """Settings come from prefixed environment variables."""

    def test_llm_api_key_aliases(self, monkeypatch):
        """GEMINI_API_KEY is accepted when LLM_API_KEY is unset."""
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-secret")
        assert LLMConfig().api_key == "gemini-secret"

    def test_llm_provider(self, monkeypatch):
        """The provider and model are read from LLM_ variables."""
        monkeypatch.setenv("LLM_PROVIDER", "openai")
        monkeypatch.setenv("LLM_MODEL", "gpt-4o")
        config = LLMConfig()
        assert config.provider == "openai"
        assert config.model == "gpt-4o"

    def test_translation_prefix(self, monkeypatch):
        """Translation settings use the TRANSLATION_ prefix."""
        monkeypatch.setenv("TRANSLATION_MAX_RETRIES", "5")
        assert TranslationConfig().max_retries == 5

    def test_glossary_defaults(self, monkeypatch):
        """Glossary pacing defaults match the provider's free tier limits."""
        for name in ("GLOSSARY_SEGMENT_SIZE", "GLOSSARY_SEGMENT_DELAY_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        config = GlossaryConfig()
        assert config.segment_size == 10
        assert config.segment_delay_seconds == 8
        assert config.strict_segment_delay_seconds == 35
        assert config.context_character_limit == 30


def test_mask_api_key():
    """Keys are shortened for display."""
    assert mask_api_key("abcdefghijklmnop") == "abcdefgh..."
    assert mask_api_key("short") == "***"
    assert mask_api_key("") == "(not set)"


def test_print_config_summary_masks_key():
    """The summary never shows the full key."""
    buffer = StringIO()
    config = AppConfig(llm=LLMConfig(api_key="supersecretkey123"))
    print_config_summary(config, Console(file=buffer, width=120))
    output = buffer.getvalue()
    assert "supersec..." in output
    assert "supersecretkey123" not in output


@pytest.mark.parametrize(
    "name,value",
    [
        ("TRANSLATION_MAX_RETRIES", "0"),
        ("GLOSSARY_SEGMENT_SIZE", "0"),
        ("GLOSSARY_RATE_LIMIT_RETRIES", "-1"),
    ],
)
def test_out_of_range_limits_rejected(monkeypatch, name, value):
    """Limits that would stop any work from happening fail at load."""
    monkeypatch.setenv(name, value)
    config_cls = TranslationConfig if name.startswith("TRANSLATION_") else GlossaryConfig
    with pytest.raises(ValidationError):
        config_cls()
