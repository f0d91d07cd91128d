"""Translation module: completion adapters, marker contract, retry."""

from webnovel_translator.translator.chapter import ChapterTranslator, TranslationOptions
from webnovel_translator.translator.llm import (
    CompletionClient,
    CompletionRequest,
    create_completion_client,
)
from webnovel_translator.translator.outcome import (
    AmbiguousSuccess,
    CompletionError,
    FaultKind,
    RecoverableFailure,
    Success,
    TerminalFailure,
)
from webnovel_translator.translator.retry import RetryController

__all__ = [
    "AmbiguousSuccess",
    "ChapterTranslator",
    "CompletionClient",
    "CompletionError",
    "CompletionRequest",
    "FaultKind",
    "RecoverableFailure",
    "RetryController",
    "Success",
    "TerminalFailure",
    "TranslationOptions",
    "create_completion_client",
]
