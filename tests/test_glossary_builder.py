"""Tests for segmented glossary generation."""

import json

import pytest

from webnovel_translator.config import GlossaryConfig
from webnovel_translator.glossary.builder import (
    GlossarySegmentBuilder,
    build_context,
    plan_segments,
)
from webnovel_translator.glossary.models import ChapterRange, Character, GlossaryCollection, GlossarySegment
from webnovel_translator.translator.outcome import CompletionError, FaultKind

from conftest import SERIES_URL, ScriptedCompletionClient


def chapter_urls(start: int, count: int) -> list[str]:
    return [f"{SERIES_URL}/{n}/" for n in range(start, start + count)]


def glossary_reply(*names: str) -> str:
    characters = [
        {
            "japaneseName": f"{name}の名",
            "englishName": name,
            "description": f"{name} appears in this segment",
            "importance": "major",
        }
        for name in names
    ]
    return "```json\n" + json.dumps({"characters": characters}, ensure_ascii=False) + "\n```"


class TestPlanSegments:
    """Tests for plan_segments."""

    def test_partition(self):
        """25 chapters of size 10 make three segments, the last one shorter."""
        plans = plan_segments(chapter_urls(1, 25), 1, 10)
        assert [(p.segment_number, p.start, p.end) for p in plans] == [
            (1, 1, 10),
            (2, 11, 20),
            (3, 21, 25),
        ]
        assert len(plans[2].urls) == 5

    def test_numbering_offset(self):
        """Numbering can continue from an existing collection."""
        plans = plan_segments(chapter_urls(11, 10), 11, 10, first_segment_number=4)
        assert plans[0].segment_number == 4
        assert plans[0].start == 11

    def test_invalid_size(self):
        """Segment size must be positive."""
        with pytest.raises(ValueError):
            plan_segments(chapter_urls(1, 3), 1, 0)


class TestBuildContext:
    """Tests for build_context."""

    def test_cap_and_shape(self):
        """Context entries carry the segment they were last seen in, capped at limit."""
        segment = GlossarySegment(
            characters=[Character(english_name=f"C{i}", japanese_name=f"J{i}") for i in range(5)],
            series_name="S",
            chapter_range=ChapterRange(start=1, end=10),
            segment_number=2,
        )
        context = build_context([segment], limit=3)
        assert len(context) == 3
        assert context[0] == {
            "japaneseName": "J0",
            "englishName": "C0",
            "importance": "minor",
            "description": "",
            "segmentLastSeen": 2,
        }


class TestGlossarySegmentBuilder:
    """Tests for GlossarySegmentBuilder.build."""

    @pytest.mark.asyncio
    async def test_three_segments_with_accumulating_context(self, fast_config):
        """Each request carries every character from earlier segments."""
        client = ScriptedCompletionClient(
            [glossary_reply("Aria"), glossary_reply("Leo"), glossary_reply("Mira")]
        )
        builder = GlossarySegmentBuilder(client, fast_config.glossary)

        result = await builder.build("Test Series", chapter_urls(1, 25), 1, "gemini-2.5-flash")

        assert result.success
        assert result.generated_segments == [1, 2, 3]
        collection = result.collection
        assert [s.segment_number for s in collection.segments] == [1, 2, 3]
        assert [str(s.chapter_range) for s in collection.segments] == ["1-10", "11-20", "21-25"]
        assert collection.total_chapter_range == ChapterRange(start=1, end=25)
        assert collection.last_processed_chapter == 25

        first, second, third = client.requests
        assert all(r.use_url_context for r in client.requests)
        assert "PREVIOUS SEGMENTS CONTEXT" not in first.system_instruction
        assert '"Aria"' in second.system_instruction
        assert '"Aria"' in third.system_instruction
        assert '"Leo"' in third.system_instruction
        assert f"Chapter 21: {SERIES_URL}/21/" in third.user_message
        assert client.sessions_opened == 3

    @pytest.mark.asyncio
    async def test_unparseable_segment_skipped(self, fast_config):
        """A segment that cannot be parsed is skipped, the run continues."""
        client = ScriptedCompletionClient(
            [glossary_reply("Aria"), "Sorry, I cannot do that.", glossary_reply("Mira")]
        )
        builder = GlossarySegmentBuilder(client, fast_config.glossary)

        result = await builder.build("Test Series", chapter_urls(1, 25), 1, "gemini-2.5-flash")

        assert result.success
        assert result.skipped_segments == [2]
        assert [s.segment_number for s in result.collection.segments] == [1, 3]
        assert result.collection.last_processed_chapter == 20

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, fast_config):
        """Rate-limited segments are retried with backoff."""
        client = ScriptedCompletionClient(
            [CompletionError("quota", FaultKind.RATE_LIMIT, 429), glossary_reply("Aria")]
        )
        builder = GlossarySegmentBuilder(client, fast_config.glossary)

        result = await builder.build("Test Series", chapter_urls(1, 5), 1, "gemini-2.5-flash")

        assert result.success
        assert len(client.requests) == 2
        assert result.collection.all_characters()[0].english_name == "Aria"

    @pytest.mark.asyncio
    async def test_other_errors_skip_segment(self, fast_config):
        """Non rate-limit errors skip the segment without retrying."""
        client = ScriptedCompletionClient([CompletionError("forbidden", FaultKind.ACCESS_DENIED)])
        builder = GlossarySegmentBuilder(client, fast_config.glossary)

        result = await builder.build("Test Series", chapter_urls(1, 5), 1, "gemini-2.5-flash")

        assert not result.success
        assert result.error == "No segments were successfully generated"
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_resume_extends_copy(self, fast_config):
        """Resuming appends new segments to a copy of the existing collection."""
        existing = GlossaryCollection(
            series_name="Test Series",
            segments=[
                GlossarySegment(
                    characters=[Character(english_name="Aria", japanese_name="アリア")],
                    series_name="Test Series",
                    chapter_range=ChapterRange(start=1, end=10),
                    segment_number=1,
                )
            ],
            total_chapter_range=ChapterRange(start=1, end=10),
            last_processed_chapter=10,
        )
        client = ScriptedCompletionClient([glossary_reply("Leo")])
        builder = GlossarySegmentBuilder(client, fast_config.glossary)

        result = await builder.build(
            "Test Series", chapter_urls(11, 10), 11, "gemini-2.5-flash", existing=existing
        )

        assert [s.segment_number for s in result.collection.segments] == [1, 2]
        assert result.collection.total_chapter_range == ChapterRange(start=1, end=20)
        assert result.collection.last_processed_chapter == 20
        assert '"Aria"' in client.requests[0].system_instruction
        assert len(existing.segments) == 1

    @pytest.mark.asyncio
    async def test_stop_before_first_segment(self, fast_config):
        """A stop request ends the run before any request is sent."""
        client = ScriptedCompletionClient([])
        builder = GlossarySegmentBuilder(client, fast_config.glossary, should_stop=lambda: True)

        result = await builder.build("Test Series", chapter_urls(1, 5), 1, "gemini-2.5-flash")

        assert result.stopped
        assert not result.success
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_segment_callback(self, fast_config):
        """Each generated segment is reported as soon as it exists."""
        client = ScriptedCompletionClient([glossary_reply("Aria"), glossary_reply("Leo")])
        builder = GlossarySegmentBuilder(client, fast_config.glossary)
        seen = []

        await builder.build(
            "Test Series", chapter_urls(1, 20), 1, "gemini-2.5-flash", on_segment=seen.append
        )

        assert [s.segment_number for s in seen] == [1, 2]


class TestPacing:
    """Tests for delays and backoff."""

    def test_strict_model_delay(self):
        """Strict-rate models get the longer pause."""
        builder = GlossarySegmentBuilder(ScriptedCompletionClient(), GlossaryConfig())
        assert builder.segment_delay_for("gemini-2.5-pro") == 35
        assert builder.segment_delay_for("gemini-2.5-flash") == 8

    def test_backoff_capped(self):
        """Backoff doubles from the base up to the ceiling."""
        builder = GlossarySegmentBuilder(ScriptedCompletionClient(), GlossaryConfig())
        assert [builder.backoff_for(n) for n in (1, 2, 3, 4)] == [15, 30, 60, 60]
