"""Sequential multi-chapter translation run."""

import asyncio
import uuid
from typing import Callable, Optional, Sequence

import structlog
from pydantic import BaseModel

from webnovel_translator.config import TranslationConfig, get_config
from webnovel_translator.log import bind_run_context, clear_run_context
from webnovel_translator.services.events import EventBus, EventType, RunEvent
from webnovel_translator.sites import build_chapter_url, series_identifier
from webnovel_translator.state import AppState
from webnovel_translator.translator.chapter import ChapterTranslator, TranslationOptions
from webnovel_translator.translator.outcome import AmbiguousSuccess, Success
from webnovel_translator.translator.retry import RetryController

logger = structlog.get_logger()


class ChapterRunResult(BaseModel):
    """Result of a chapter translation run."""

    requested: list[int] = []
    completed: list[int] = []
    failed_chapter: Optional[int] = None
    failure_reason: Optional[str] = None
    failure_fault: Optional[str] = None
    ambiguous_text: Optional[str] = None  # Marker-less reply kept for manual review
    cancelled: bool = False

    @property
    def halted(self) -> bool:
        return self.failed_chapter is not None

    @property
    def all_done(self) -> bool:
        return not self.halted and not self.cancelled and len(self.completed) == len(self.requested)

    def status_message(self) -> str:
        """One human-readable status line."""
        if self.failed_chapter is not None:
            if self.ambiguous_text is not None:
                return (
                    f"Chapter {self.failed_chapter} was translated without markers and needs review. "
                    f"{len(self.completed)} chapters completed before it."
                )
            return (
                f"Error translating chapter {self.failed_chapter}: {self.failure_reason}. "
                f"{len(self.completed)} chapters completed before it."
            )
        if self.cancelled:
            return f"Translation stopped. {len(self.completed)} of {len(self.requested)} chapters completed."
        return f"All {len(self.completed)} chapters translated. Ready to export EPUB."


class ChapterPipeline:
    """Translate chapters one at a time, halting at the first chapter that cannot be completed.

    Chapters are never skipped. A failed chapter stops the run and is reported
    with its number so it can be supplied manually.
    """

    def __init__(
        self,
        translator: ChapterTranslator,
        retry: Optional[RetryController] = None,
        config: Optional[TranslationConfig] = None,
        event_bus: Optional[EventBus] = None,
        on_chapter_saved: Optional[Callable[[AppState], None]] = None,
    ):
        """Initialize the pipeline.

        Args:
            translator: Single-chapter translator
            retry: Retry controller, built from config if None
            config: Translation configuration, uses global config if None
            event_bus: Receives run events
            on_chapter_saved: Called with the state after each completed chapter
        """
        self.config = config or get_config().translation
        self.translator = translator
        self.retry = retry or RetryController(config=self.config)
        self.event_bus = event_bus or EventBus()
        self.on_chapter_saved = on_chapter_saved
        self._stop_requested = False
        self._run_id: Optional[str] = None

    def request_stop(self) -> None:
        """Stop before the next chapter. The chapter in flight completes."""
        self._stop_requested = True
        logger.info("stop_requested")

    def _emit(self, event_type: EventType, **data) -> None:
        self.event_bus.emit(RunEvent(type=event_type, data=data, run_id=self._run_id))

    async def run(
        self,
        state: AppState,
        chapter_numbers: Optional[Sequence[int]] = None,
    ) -> ChapterRunResult:
        """Translate chapters into state.

        Args:
            state: Application state, receives completed chapters
            chapter_numbers: Chapters to translate, defaults to the state's range

        Returns:
            ChapterRunResult with completed chapters and the failure point if any
        """
        if chapter_numbers is None:
            chapter_numbers = range(state.start_chapter, state.start_chapter + state.num_chapters)
        numbers = list(chapter_numbers)
        # Unsupported sites fail before any request is made
        urls = {number: build_chapter_url(state.site, state.series_url, number) for number in numbers}

        options = TranslationOptions(
            model=state.selected_model,
            series_name=state.series_name or None,
            glossary_context=(
                state.glossary_collection.to_prompt_context()
                if state.glossary_collection
                else None
            ),
        )

        self._stop_requested = False
        self._run_id = uuid.uuid4().hex[:8]
        result = ChapterRunResult(requested=numbers)
        series = series_identifier(state.series_url)

        logger.info("chapter_run_started", series=series, chapters=len(numbers), model=state.selected_model)
        self._emit(EventType.RUN_STARTED, series=series, chapters=numbers)

        try:
            for index, number in enumerate(numbers):
                if index > 0 and self.config.chapter_delay_seconds > 0:
                    await asyncio.sleep(self.config.chapter_delay_seconds)

                if self._stop_requested:
                    result.cancelled = True
                    logger.info("chapter_run_cancelled", completed=len(result.completed))
                    self._emit(EventType.RUN_CANCELLED, completed=list(result.completed))
                    break

                bind_run_context(run_id=self._run_id, chapter=number)
                self._emit(
                    EventType.CHAPTER_STARTED,
                    chapter=number,
                    position=index + 1,
                    total=len(numbers),
                    url=urls[number],
                )

                outcome = await self.retry.translate_url(self.translator, urls[number], options)

                if isinstance(outcome, Success):
                    state.upsert_chapter(number, outcome.text)
                    if self.on_chapter_saved:
                        self.on_chapter_saved(state)
                    result.completed.append(number)
                    logger.info("chapter_translated", chapter=number, length=len(outcome.text))
                    self._emit(
                        EventType.CHAPTER_TRANSLATED,
                        chapter=number,
                        completed=len(result.completed),
                        total=len(numbers),
                        preview=outcome.text[:200],
                    )
                    continue

                result.failed_chapter = number
                if isinstance(outcome, AmbiguousSuccess):
                    result.ambiguous_text = outcome.raw_text
                    result.failure_reason = outcome.reason
                else:
                    result.failure_reason = outcome.reason
                    result.failure_fault = outcome.fault.value

                logger.error(
                    "chapter_failed",
                    chapter=number,
                    reason=result.failure_reason,
                    completed=len(result.completed),
                )
                self._emit(
                    EventType.CHAPTER_FAILED,
                    chapter=number,
                    reason=result.failure_reason,
                    needs_review=result.ambiguous_text is not None,
                )
                self._emit(
                    EventType.RUN_HALTED,
                    chapter=number,
                    completed=list(result.completed),
                )
                break
        finally:
            clear_run_context()

        if result.all_done:
            logger.info("chapter_run_completed", completed=len(result.completed))
            self._emit(EventType.RUN_COMPLETED, completed=list(result.completed))

        return result
