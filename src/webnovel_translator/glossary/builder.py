"""Segmented character glossary generation.

Chapters are split into fixed-size segments that are generated strictly in
order. Each segment's request carries the characters of every earlier segment
as context so English names stay stable as the story progresses.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import structlog

from webnovel_translator.config import GlossaryConfig, get_config
from webnovel_translator.glossary.models import (
    ChapterRange,
    GlossaryCollection,
    GlossarySegment,
)
from webnovel_translator.glossary.parser import parse_glossary_response
from webnovel_translator.translator.llm import CompletionClient, CompletionRequest
from webnovel_translator.translator.outcome import FaultKind, classify_exception
from webnovel_translator.translator.prompts import build_segment_prompt, build_segment_user_message

logger = structlog.get_logger()


@dataclass
class SegmentPlan:
    """One slice of the requested chapter range."""

    segment_number: int
    start: int
    end: int
    urls: list[str]


@dataclass
class GlossaryBuildResult:
    """Outcome of a glossary run."""

    success: bool
    collection: Optional[GlossaryCollection] = None
    error: Optional[str] = None
    generated_segments: list[int] = field(default_factory=list)
    skipped_segments: list[int] = field(default_factory=list)
    stopped: bool = False


def plan_segments(
    chapter_urls: Sequence[str],
    start_chapter: int,
    segment_size: int,
    first_segment_number: int = 1,
) -> list[SegmentPlan]:
    """Partition chapter URLs into consecutive segments.

    Args:
        chapter_urls: URLs in chapter order, the first one is start_chapter
        start_chapter: Chapter number of the first URL
        segment_size: Chapters per segment, the last segment may be shorter
        first_segment_number: Number given to the first planned segment

    Returns:
        Segment plans in order
    """
    if segment_size < 1:
        raise ValueError("segment_size must be at least 1")

    total = math.ceil(len(chapter_urls) / segment_size)
    plans = []
    for index in range(total):
        urls = list(chapter_urls[index * segment_size:(index + 1) * segment_size])
        start = start_chapter + index * segment_size
        plans.append(
            SegmentPlan(
                segment_number=first_segment_number + index,
                start=start,
                end=start + len(urls) - 1,
                urls=urls,
            )
        )
    return plans


def build_context(segments: Sequence[GlossarySegment], limit: int = 30) -> list[dict]:
    """Character context from earlier segments, capped at limit entries."""
    context = [
        {
            "japaneseName": char.japanese_name,
            "englishName": char.english_name,
            "importance": char.importance.value,
            "description": char.description,
            "segmentLastSeen": segment.segment_number,
        }
        for segment in segments
        for char in segment.characters
    ]
    return context[:limit]


class GlossarySegmentBuilder:
    """Build glossary segments sequentially with accumulating context."""

    def __init__(
        self,
        client: CompletionClient,
        config: Optional[GlossaryConfig] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        """Initialize the builder.

        Args:
            client: Completion client, one fresh session per segment request
            config: Glossary configuration, uses global config if None
            should_stop: Checked before each segment, True ends the run early
        """
        self.client = client
        self.config = config or get_config().glossary
        self.should_stop = should_stop

    def segment_delay_for(self, model: str) -> float:
        """Pause between segments, longer for strict-rate models."""
        if any(name in model for name in self.config.strict_rate_models):
            return self.config.strict_segment_delay_seconds
        return self.config.segment_delay_seconds

    def backoff_for(self, retry_number: int) -> float:
        """Capped exponential backoff for the n-th rate-limit retry (1-based)."""
        delay = self.config.backoff_base_seconds * (2 ** (retry_number - 1))
        return min(self.config.backoff_max_seconds, delay)

    async def _request_segment(self, request: CompletionRequest, segment_number: int) -> Optional[str]:
        """Run one segment request, retrying only rate limits.

        Returns:
            Response text, or None when the segment should be skipped
        """
        retries = 0
        while True:
            try:
                return await self.client.complete(request)
            except Exception as e:
                kind = classify_exception(e)
                if kind == FaultKind.RATE_LIMIT and retries < self.config.rate_limit_retries:
                    retries += 1
                    delay = self.backoff_for(retries)
                    logger.warning(
                        "segment_rate_limited",
                        segment=segment_number,
                        retry=retries,
                        max_retries=self.config.rate_limit_retries,
                        delay_seconds=delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.warning(
                    "segment_request_failed",
                    segment=segment_number,
                    error=str(e),
                    fault=kind.value,
                )
                return None

    def last_processed_chapter(self, start_chapter: int, end_chapter: int, successful: int) -> int:
        """Coverage claimed by a run: successful segments times segment size."""
        covered = start_chapter + successful * self.config.segment_size - 1
        return min(end_chapter, covered)

    async def build(
        self,
        series_name: str,
        chapter_urls: Sequence[str],
        start_chapter: int,
        model: str,
        existing: Optional[GlossaryCollection] = None,
        on_segment: Optional[Callable[[GlossarySegment], None]] = None,
    ) -> GlossaryBuildResult:
        """Generate glossary segments for a chapter range.

        Args:
            series_name: Series name used in prompts
            chapter_urls: Chapter URLs in order
            start_chapter: Chapter number of the first URL
            model: Model identifier
            existing: Collection to extend, its segments become context
            on_segment: Called with each segment as soon as it is generated

        Returns:
            GlossaryBuildResult, successful when at least one segment was generated
        """
        if not chapter_urls:
            return GlossaryBuildResult(success=False, collection=existing, error="No chapters to analyze")

        end_chapter = start_chapter + len(chapter_urls) - 1
        prior_segments = list(existing.segments) if existing else []
        first_number = existing.next_segment_number if existing else 1
        plans = plan_segments(chapter_urls, start_chapter, self.config.segment_size, first_number)
        delay = self.segment_delay_for(model)

        logger.info(
            "glossary_build_started",
            series=series_name,
            chapters=f"{start_chapter}-{end_chapter}",
            segments=len(plans),
            resume_from=first_number if existing else None,
        )

        result = GlossaryBuildResult(success=False)
        new_segments: list[GlossarySegment] = []

        for index, plan in enumerate(plans):
            if self.should_stop and self.should_stop():
                logger.info("glossary_build_stopped", before_segment=plan.segment_number)
                result.stopped = True
                break

            context = build_context(prior_segments + new_segments, self.config.context_character_limit)
            request = CompletionRequest(
                model=model,
                system_instruction=build_segment_prompt(
                    series_name,
                    plan.start,
                    plan.end,
                    plan.segment_number,
                    context,
                    max_characters=self.config.max_characters,
                    major_words=self.config.major_description_words,
                    minor_words=self.config.minor_description_words,
                ),
                user_message=build_segment_user_message(plan.start, plan.urls),
                use_url_context=True,
            )

            logger.info(
                "segment_started",
                segment=plan.segment_number,
                chapters=f"{plan.start}-{plan.end}",
                context_characters=len(context),
            )
            text = await self._request_segment(request, plan.segment_number)

            characters = None
            if text is not None and not text.strip():
                logger.warning("segment_empty_response", segment=plan.segment_number)
            elif text is not None:
                characters = parse_glossary_response(text, plan.start)
                if characters is None:
                    logger.warning("segment_unparseable", segment=plan.segment_number)

            if characters is None:
                result.skipped_segments.append(plan.segment_number)
                logger.warning("segment_skipped", segment=plan.segment_number)
            else:
                segment = GlossarySegment(
                    characters=characters,
                    series_name=series_name,
                    chapter_range=ChapterRange(start=plan.start, end=plan.end),
                    segment_number=plan.segment_number,
                )
                new_segments.append(segment)
                result.generated_segments.append(plan.segment_number)
                logger.info(
                    "segment_generated",
                    segment=plan.segment_number,
                    characters=len(characters),
                )
                if on_segment:
                    on_segment(segment)

            if index < len(plans) - 1:
                logger.debug("segment_delay", seconds=delay)
                await asyncio.sleep(delay)

        if not new_segments:
            result.collection = existing
            result.error = "No segments were successfully generated"
            logger.error("glossary_build_failed", skipped=result.skipped_segments)
            return result

        covered = self.last_processed_chapter(start_chapter, end_chapter, len(new_segments))
        if existing:
            collection = existing.model_copy(deep=True)
            collection.segments.extend(new_segments)
            collection.total_chapter_range = ChapterRange(
                start=min(existing.total_chapter_range.start, start_chapter),
                end=max(existing.total_chapter_range.end, end_chapter),
            )
            collection.last_processed_chapter = max(existing.last_processed_chapter or 0, covered)
            collection.touch()
        else:
            collection = GlossaryCollection(
                series_name=series_name,
                segments=new_segments,
                total_chapter_range=ChapterRange(start=start_chapter, end=end_chapter),
                last_processed_chapter=covered,
            )

        result.success = True
        result.collection = collection
        logger.info(
            "glossary_build_completed",
            generated=len(new_segments),
            planned=len(plans),
            last_processed_chapter=covered,
        )
        return result
