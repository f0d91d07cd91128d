"""Configuration management with environment variables and CLI overrides."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.table import Table

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class LLMConfig(BaseSettings):
    """Completion provider configuration."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    provider: Literal["gemini", "openai"] = Field(
        default="gemini", description="Completion backend (gemini or openai)"
    )
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LLM_API_KEY", "GEMINI_API_KEY", "api_key"),
        description="API key for the selected provider",
    )
    model: str = Field(default="gemini-2.5-flash", description="Model identifier")
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="API base URL (OpenAI-compatible provider only)",
    )
    temperature: Optional[float] = Field(
        default=None, description="Sampling temperature (provider default if unset)"
    )


class TranslationConfig(BaseSettings):
    """Chapter translation configuration."""

    model_config = SettingsConfigDict(env_prefix="TRANSLATION_")

    max_retries: int = Field(default=3, ge=1, description="Max attempts per chapter")
    retry_delay_seconds: float = Field(
        default=1.0, description="Pause before retrying a chapter with a fresh session"
    )
    chapter_delay_seconds: float = Field(
        default=3.0, description="Pause between chapters (rate limiting)"
    )
    min_chapter_like_length: int = Field(
        default=100,
        description="Marker-less replies longer than this are offered for manual review",
    )


class GlossaryConfig(BaseSettings):
    """Segmented glossary generation configuration."""

    model_config = SettingsConfigDict(env_prefix="GLOSSARY_")

    segment_size: int = Field(default=10, ge=1, description="Chapters per glossary segment")
    context_character_limit: int = Field(
        default=30, description="Max previous characters sent as context"
    )
    rate_limit_retries: int = Field(
        default=3, ge=0, description="Retries for a segment that hit a rate limit"
    )
    backoff_base_seconds: float = Field(
        default=15.0, description="First rate-limit backoff, doubled per retry"
    )
    backoff_max_seconds: float = Field(default=60.0, description="Backoff ceiling")
    segment_delay_seconds: float = Field(
        default=8.0, description="Pause between segments"
    )
    strict_segment_delay_seconds: float = Field(
        default=35.0, description="Pause between segments for strict-rate models"
    )
    strict_rate_models: list[str] = Field(
        default_factory=lambda: ["gemini-2.5-pro"],
        description="Model name fragments that get the longer pause",
    )
    max_characters: int = Field(default=15, description="Max characters per segment")
    major_description_words: int = Field(
        default=15, description="Word limit for major character descriptions"
    )
    minor_description_words: int = Field(
        default=8, description="Word limit for minor character descriptions"
    )


class CrawlerConfig(BaseSettings):
    """HTTP settings for fetching chapter pages (OpenAI URL-context emulation)."""

    model_config = SettingsConfigDict(env_prefix="CRAWLER_")

    delay_ms: int = Field(default=1000, description="Delay between HTTP retries in ms")
    max_retries: int = Field(default=2, description="Max retry attempts")
    timeout_seconds: int = Field(default=30, description="Request timeout in seconds")
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        description="User agent string",
    )
    max_page_chars: int = Field(
        default=40000, description="Max characters of page text forwarded to the model"
    )


class ExportConfig(BaseSettings):
    """EPUB export configuration."""

    model_config = SettingsConfigDict(env_prefix="EXPORT_")

    author: str = Field(default="Web Novel Translator", description="EPUB author")
    publisher: str = Field(
        default="Web Novel Translator App", description="EPUB publisher"
    )
    language: str = Field(default="en", description="EPUB language code")
    output_dir: Path = Field(default=Path("output"), description="EPUB output directory")


# ---------------------------------------------------------------------------
# Main AppConfig
# ---------------------------------------------------------------------------


class AppConfig(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", description="Logging level")
    state_file: Path = Field(
        default=Path("webnovel_state.json"), description="Persistent state file"
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    translation: TranslationConfig = Field(default_factory=TranslationConfig)
    glossary: GlossaryConfig = Field(default_factory=GlossaryConfig)
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> "AppConfig":
        """Load configuration from environment and .env file."""
        from dotenv import load_dotenv

        if env_file and env_file.exists():
            load_dotenv(env_file)
        else:
            load_dotenv()

        return cls(
            llm=LLMConfig(),
            translation=TranslationConfig(),
            glossary=GlossaryConfig(),
            crawler=CrawlerConfig(),
            export=ExportConfig(),
        )


# ---------------------------------------------------------------------------
# Global config singleton
# ---------------------------------------------------------------------------

_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.load()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def mask_api_key(api_key: str) -> str:
    """Mask an API key for display, keeping a short prefix."""
    if len(api_key) > 8:
        return api_key[:8] + "..."
    return "***" if api_key else "(not set)"


def print_config_summary(config: Optional[AppConfig] = None, console: Optional[Console] = None) -> None:
    """Print the effective configuration as a table.

    The API key is masked.
    """
    config = config or get_config()
    console = console or Console()

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Section", style="cyan", width=12)
    table.add_column("Setting", style="green")
    table.add_column("Value", style="yellow")

    table.add_row("LLM", "provider", config.llm.provider)
    table.add_row("", "model", config.llm.model)
    table.add_row("", "api_key", mask_api_key(config.llm.api_key))
    if config.llm.provider == "openai":
        table.add_row("", "base_url", config.llm.base_url)

    table.add_row("Translation", "max_retries", str(config.translation.max_retries))
    table.add_row("", "chapter_delay", f"{config.translation.chapter_delay_seconds}s")

    table.add_row("Glossary", "segment_size", str(config.glossary.segment_size))
    table.add_row("", "segment_delay", f"{config.glossary.segment_delay_seconds}s")
    table.add_row("", "strict_delay", f"{config.glossary.strict_segment_delay_seconds}s")

    table.add_row("Export", "output_dir", str(config.export.output_dir))
    table.add_row("State", "state_file", str(config.state_file))

    console.print("\n[bold blue]=== Configuration ===[/bold blue]")
    console.print(table)
    console.print()
