"""Pytest configuration and fixtures."""

from typing import Callable, Optional, Union

import pytest

from webnovel_translator.config import (
    AppConfig,
    CrawlerConfig,
    ExportConfig,
    GlossaryConfig,
    LLMConfig,
    TranslationConfig,
)
from webnovel_translator.translator.llm import (
    CompletionClient,
    CompletionRequest,
    CompletionSession,
)
from webnovel_translator.translator.prompts import TRANSLATION_END, TRANSLATION_START

Reply = Union[str, BaseException]


def wrap_translation(text: str) -> str:
    """A well-formed model reply around text."""
    return f"{TRANSLATION_START}\n{text}\n{TRANSLATION_END}"


class ScriptedSession(CompletionSession):
    def __init__(self, owner: "ScriptedCompletionClient"):
        self.owner = owner

    async def open(self) -> None:
        self.owner.sessions_opened += 1

    async def stream_text(self, request: CompletionRequest):
        self.owner.requests.append(request)
        reply = self.owner.next_reply(request)
        if isinstance(reply, BaseException):
            raise reply
        yield reply

    async def close(self) -> None:
        self.owner.sessions_closed += 1


class ScriptedCompletionClient(CompletionClient):
    """Completion client that answers from a script and records every request.

    Replies are consumed in order. An exception in the script is raised
    from the session instead of returning text.
    """

    def __init__(
        self,
        replies: Optional[list[Reply]] = None,
        responder: Optional[Callable[[CompletionRequest], Reply]] = None,
    ):
        self.replies = list(replies or [])
        self.responder = responder
        self.requests: list[CompletionRequest] = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    def next_reply(self, request: CompletionRequest) -> Reply:
        if self.responder is not None:
            return self.responder(request)
        if not self.replies:
            raise AssertionError(f"Unexpected completion request: {request.user_message[:80]}")
        return self.replies.pop(0)

    def open_session(self) -> ScriptedSession:
        return ScriptedSession(self)


@pytest.fixture
def scripted_client():
    """Factory for scripted completion clients."""
    return ScriptedCompletionClient


@pytest.fixture
def fast_config(tmp_path):
    """Application config with every delay set to zero and state under tmp_path."""
    return AppConfig(
        state_file=tmp_path / "state.json",
        llm=LLMConfig(api_key="test-key", model="gemini-2.5-flash"),
        translation=TranslationConfig(
            max_retries=3,
            retry_delay_seconds=0,
            chapter_delay_seconds=0,
        ),
        glossary=GlossaryConfig(
            segment_size=10,
            backoff_base_seconds=0,
            backoff_max_seconds=0,
            segment_delay_seconds=0,
            strict_segment_delay_seconds=0,
        ),
        crawler=CrawlerConfig(delay_ms=0),
        export=ExportConfig(output_dir=tmp_path / "output"),
    )


SERIES_URL = "https://ncode.syosetu.com/n5547eo"


def chapter_reply(number: int, body: str = "The wind howled across the plain.") -> str:
    """A marked translation of a numbered chapter."""
    return wrap_translation(
        f"The Journey Begins [chapter: {number}]\n\n{body}\n\n{SERIES_URL}/{number}/"
    )
