"""Tests for single-chapter translation."""

import pytest

from webnovel_translator.translator.chapter import ChapterTranslator, TranslationOptions
from webnovel_translator.translator.outcome import (
    CompletionError,
    FaultKind,
    RecoverableFailure,
    Success,
    TerminalFailure,
)
from webnovel_translator.translator.retry import RetryController

from conftest import ScriptedCompletionClient, chapter_reply, wrap_translation

URL = "https://ncode.syosetu.com/n5547eo/1/"


@pytest.fixture
def options():
    return TranslationOptions(
        model="gemini-2.5-flash",
        series_name="The Villainess Returns",
        glossary_context="Character Reference:\n主人公 (Aria): Exiled noble",
    )


class TestTranslateUrl:
    """Tests for URL-context translation."""

    @pytest.mark.asyncio
    async def test_success(self, options):
        """A marked reply yields the payload and one isolated session."""
        client = ScriptedCompletionClient([chapter_reply(1)])
        translator = ChapterTranslator(client)

        outcome = await translator.translate_url(URL, options)

        assert isinstance(outcome, Success)
        assert outcome.text.startswith("The Journey Begins [chapter: 1]")
        request = client.requests[0]
        assert request.use_url_context
        assert request.user_message == URL
        assert request.model == "gemini-2.5-flash"
        assert "The Villainess Returns" in request.system_instruction
        assert "主人公 (Aria): Exiled noble" in request.system_instruction
        assert client.sessions_opened == 1
        assert client.sessions_closed == 1

    @pytest.mark.asyncio
    async def test_empty_reply_is_terminal(self, options):
        """An empty reply means the page could not be read."""
        client = ScriptedCompletionClient(["   "])
        outcome = await ChapterTranslator(client).translate_url(URL, options)

        assert isinstance(outcome, TerminalFailure)
        assert outcome.fault == FaultKind.EMPTY_CONTENT
        assert "might be blocked or inaccessible" in outcome.reason

    @pytest.mark.asyncio
    async def test_rate_limit_is_recoverable(self, options):
        """Rate limits are reported as recoverable."""
        client = ScriptedCompletionClient([CompletionError("slow down", FaultKind.RATE_LIMIT, 429)])
        outcome = await ChapterTranslator(client).translate_url(URL, options)

        assert isinstance(outcome, RecoverableFailure)
        assert outcome.fault == FaultKind.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_access_denied_is_terminal(self, options):
        """Access errors are terminal."""
        client = ScriptedCompletionClient([CompletionError("Request blocked")])
        outcome = await ChapterTranslator(client).translate_url(URL, options)

        assert isinstance(outcome, TerminalFailure)
        assert outcome.fault == FaultKind.ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_session_per_call(self, options):
        """Every call opens and closes its own session."""
        client = ScriptedCompletionClient([chapter_reply(1), chapter_reply(2)])
        translator = ChapterTranslator(client)

        await translator.translate_url(URL, options)
        await translator.translate_url(URL.replace("/1/", "/2/"), options)

        assert client.sessions_opened == 2
        assert client.sessions_closed == 2

    @pytest.mark.asyncio
    async def test_retry_uses_fresh_session(self, options):
        """A retried chapter gets a new session for the second attempt."""
        client = ScriptedCompletionClient(
            [CompletionError("connection reset", FaultKind.NETWORK), chapter_reply(1)]
        )
        translator = ChapterTranslator(client)
        retry = RetryController(max_retries=3, retry_delay_seconds=0)

        outcome = await retry.translate_url(translator, URL, options)

        assert isinstance(outcome, Success)
        assert client.sessions_opened == 2
        assert client.sessions_closed == 2


class TestTranslateText:
    """Tests for the direct-text fallback."""

    @pytest.mark.asyncio
    async def test_marked_reply(self, options):
        """Markers are honored when present."""
        client = ScriptedCompletionClient([wrap_translation("Chapter Title [chapter: 4]\nBody")])
        outcome = await ChapterTranslator(client).translate_text("本文", 4, options)

        assert outcome == Success("Chapter Title [chapter: 4]\nBody")
        request = client.requests[0]
        assert not request.use_url_context
        assert request.user_message == "本文"
        assert "[chapter: 4]" in request.system_instruction

    @pytest.mark.asyncio
    async def test_lenient_without_markers(self, options):
        """A marker-less reply is accepted whole."""
        client = ScriptedCompletionClient(["  Just the translated text.  "])
        outcome = await ChapterTranslator(client).translate_text("本文", 4, options)

        assert outcome == Success("Just the translated text.")

    @pytest.mark.asyncio
    async def test_empty_reply(self, options):
        """An empty reply fails."""
        client = ScriptedCompletionClient([""])
        outcome = await ChapterTranslator(client).translate_text("本文", 4, options)

        assert isinstance(outcome, TerminalFailure)
