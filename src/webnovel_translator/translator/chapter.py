"""Single-chapter translation with an isolated completion session per call."""

from dataclasses import dataclass
from typing import Optional

import structlog

from webnovel_translator.translator.llm import CompletionClient, CompletionRequest
from webnovel_translator.translator.markers import extract_translation
from webnovel_translator.translator.outcome import (
    CompletionError,
    FaultKind,
    RecoverableFailure,
    Success,
    TerminalFailure,
    TranslationOutcome,
    classify_exception,
)
from webnovel_translator.translator.prompts import build_fallback_prompt, build_translation_prompt

logger = structlog.get_logger()


@dataclass(frozen=True)
class TranslationOptions:
    """Per-run translation options."""

    model: str
    series_name: Optional[str] = None
    glossary_context: Optional[str] = None


def failure_from_error(error: CompletionError) -> TranslationOutcome:
    """Outcome for a provider error, terminal when its fault kind is."""
    kind = classify_exception(error)
    if kind.is_terminal:
        return TerminalFailure(str(error), kind)
    return RecoverableFailure(str(error), kind)


class ChapterTranslator:
    """Translate one chapter per call.

    Each call goes through CompletionClient.complete, which opens and closes
    its own session, so no state is shared between chapters or attempts.
    """

    def __init__(self, client: CompletionClient, min_chapter_like_length: int = 100):
        self.client = client
        self.min_chapter_like_length = min_chapter_like_length

    async def translate_url(self, url: str, options: TranslationOptions) -> TranslationOutcome:
        """Translate the chapter at a URL (URL-context mode).

        Args:
            url: Chapter URL
            options: Model, series name and glossary context

        Returns:
            Outcome of this single attempt
        """
        request = CompletionRequest(
            model=options.model,
            system_instruction=build_translation_prompt(
                options.series_name, options.glossary_context
            ),
            user_message=url,
            use_url_context=True,
        )

        logger.debug("chapter_request", url=url, model=options.model)
        try:
            text = await self.client.complete(request)
        except CompletionError as e:
            logger.warning("chapter_request_failed", url=url, error=str(e), fault=e.kind.value)
            return failure_from_error(e)

        if not text.strip():
            return TerminalFailure(
                "Translation returned empty content. "
                "The chapter might be blocked or inaccessible.",
                FaultKind.EMPTY_CONTENT,
            )

        logger.debug("chapter_response", url=url, length=len(text))
        return extract_translation(text, min_length=self.min_chapter_like_length)

    async def translate_text(
        self,
        source_text: str,
        chapter_number: int,
        options: TranslationOptions,
    ) -> TranslationOutcome:
        """Translate pasted source-language text (direct-text fallback).

        Lenient about markers: a non-empty reply without them is accepted whole.
        """
        request = CompletionRequest(
            model=options.model,
            system_instruction=build_fallback_prompt(
                options.series_name, chapter_number, options.glossary_context
            ),
            user_message=source_text,
        )

        try:
            text = await self.client.complete(request)
        except CompletionError as e:
            logger.warning(
                "fallback_request_failed", chapter=chapter_number, error=str(e)
            )
            return failure_from_error(e)

        outcome = extract_translation(text, min_length=self.min_chapter_like_length)
        if isinstance(outcome, Success):
            return outcome
        if text.strip():
            logger.info("fallback_accepted_without_markers", chapter=chapter_number)
            return Success(text.strip())
        return TerminalFailure("Translation returned empty content", FaultKind.EMPTY_CONTENT)
