"""Structured logging for translation and glossary runs.

structlog renders through stdlib logging so that SDK loggers (httpx, openai,
google-genai) share the same handlers. Console output goes to stderr; an
optional JSON-lines file keeps debug detail such as raw response previews.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional

import structlog

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "google_genai", "google.genai")

VERBOSITY_LEVELS = {-1: logging.WARNING, 1: logging.DEBUG}

# Event keys whose values are credentials
_SECRET_KEYS = frozenset({"api_key", "key", "authorization", "token"})

# Bare keys that leak into SDK error messages
_KEY_PATTERN = re.compile(r"\b(AIza[0-9A-Za-z_\-]{20,}|sk-[0-9A-Za-z_\-]{16,})")


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    """Mask credentials in event fields and in error text."""
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if key in _SECRET_KEYS and len(value) > 8 and not value.endswith("..."):
            event_dict[key] = value[:8] + "..."
        elif key in ("event", "error", "detail"):
            event_dict[key] = _KEY_PATTERN.sub(lambda m: m.group(0)[:8] + "...", value)
    return event_dict


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def resolve_level(verbosity: int, default_level: str = "INFO") -> int:
    """--verbose / --quiet win over the configured level name."""
    if verbosity in VERBOSITY_LEVELS:
        return VERBOSITY_LEVELS[verbosity]
    level = logging.getLevelName((default_level or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    verbosity: int = 0,
    log_file: Optional[Path] = None,
    default_level: str = "INFO",
) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        verbosity: -1=quiet (WARNING), 0=configured level, 1=verbose (DEBUG)
        log_file: Optional path to write JSON log lines
        default_level: Level name used when verbosity is 0 (AppConfig.log_level)
    """
    level = resolve_level(verbosity, default_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())))
    root.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
        # The file wants debug lines even when the console is quieter
        root.setLevel(logging.DEBUG)
        console_handler.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_run_context(**values: object) -> None:
    """Attach values (run id, chapter, segment) to every log line of the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context() -> None:
    """Drop values bound with bind_run_context."""
    structlog.contextvars.clear_contextvars()
