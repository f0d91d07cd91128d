"""Bounded retry around single-chapter translation."""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from webnovel_translator.config import TranslationConfig, get_config
from webnovel_translator.translator.chapter import ChapterTranslator, TranslationOptions
from webnovel_translator.translator.outcome import (
    AmbiguousSuccess,
    FaultKind,
    RecoverableFailure,
    Success,
    TerminalFailure,
    TranslationOutcome,
    classify_exception,
)

logger = structlog.get_logger()

Attempt = Callable[[], Awaitable[TranslationOutcome]]


class RetryController:
    """Retry transient failures, stop at the first terminal one.

    Every attempt is a brand-new call, nothing is reused from a failed attempt.
    """

    def __init__(
        self,
        max_retries: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        config: Optional[TranslationConfig] = None,
    ):
        config = config or get_config().translation
        self.max_retries = max_retries if max_retries is not None else config.max_retries
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        self.retry_delay_seconds = (
            retry_delay_seconds
            if retry_delay_seconds is not None
            else config.retry_delay_seconds
        )

    async def run(self, attempt: Attempt, label: str = "") -> TranslationOutcome:
        """Run attempt until it succeeds, fails terminally, or attempts run out.

        Args:
            attempt: Zero-argument coroutine factory, called once per attempt
            label: What is being attempted, for logs

        Returns:
            Success, AmbiguousSuccess or TerminalFailure
        """
        last_reason = "no attempts made"
        last_fault = FaultKind.UNKNOWN

        for attempt_number in range(1, self.max_retries + 1):
            try:
                outcome = await attempt()
            except Exception as e:
                logger.warning(
                    "attempt_raised", target=label, attempt=attempt_number, error=str(e)
                )
                outcome = RecoverableFailure(str(e), classify_exception(e))

            if isinstance(outcome, (Success, AmbiguousSuccess, TerminalFailure)):
                return outcome

            last_reason, last_fault = outcome.reason, outcome.fault
            if outcome.fault.is_terminal:
                logger.warning(
                    "non_retryable_failure",
                    target=label,
                    attempt=attempt_number,
                    reason=outcome.reason,
                    fault=outcome.fault.value,
                )
                return TerminalFailure(f"{outcome.reason} (non-retryable error)", outcome.fault)

            logger.warning(
                "attempt_failed",
                target=label,
                attempt=attempt_number,
                max_attempts=self.max_retries,
                reason=outcome.reason,
            )
            if attempt_number < self.max_retries:
                await asyncio.sleep(self.retry_delay_seconds)

        return TerminalFailure(
            f"exhausted retries after {self.max_retries} attempts: {last_reason}",
            last_fault,
        )

    async def translate_url(
        self,
        translator: ChapterTranslator,
        url: str,
        options: TranslationOptions,
    ) -> TranslationOutcome:
        """Translate a chapter URL with retries."""
        return await self.run(lambda: translator.translate_url(url, options), label=url)
