"""Completion provider adapters.

Every call runs in its own session: a fresh SDK client is created when the
session opens and released when it closes, so nothing carries over between
chapters, segments or retry attempts.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
import structlog

from webnovel_translator.config import CrawlerConfig, LLMConfig, get_config, mask_api_key
from webnovel_translator.translator.outcome import CompletionError, FaultKind
from webnovel_translator.translator.schema import parse_gemini_chunk, parse_openai_chunk

logger = structlog.get_logger()

_URL_PATTERN = re.compile(r"https?://\S+")


@dataclass(frozen=True)
class CompletionRequest:
    """A single-turn completion request."""

    model: str
    system_instruction: str
    user_message: str
    use_url_context: bool = False


def fault_for_status(status_code: Optional[int]) -> FaultKind:
    """Map an HTTP status code to a fault kind."""
    if status_code == 429:
        return FaultKind.RATE_LIMIT
    if status_code in (401, 403):
        return FaultKind.ACCESS_DENIED
    if status_code in (404, 410):
        return FaultKind.INACCESSIBLE
    if status_code is not None and status_code >= 500:
        return FaultKind.NETWORK
    return FaultKind.UNKNOWN


class CompletionSession(ABC):
    """One isolated completion conversation. Use as an async context manager."""

    async def __aenter__(self) -> "CompletionSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @abstractmethod
    async def open(self) -> None:
        ...

    @abstractmethod
    def stream_text(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Yield response text chunks in order."""

    @abstractmethod
    async def close(self) -> None:
        ...


class CompletionClient(ABC):
    """Factory for isolated completion sessions."""

    @abstractmethod
    def open_session(self) -> CompletionSession:
        """Create a brand-new session with no shared state."""

    async def complete(self, request: CompletionRequest) -> str:
        """Run one request in a fresh session and return the concatenated text.

        Args:
            request: Completion request

        Returns:
            Full response text (may be empty)

        Raises:
            CompletionError: Provider failure, tagged with its fault kind
        """
        chunks: list[str] = []
        async with self.open_session() as session:
            async for text in session.stream_text(request):
                chunks.append(text)
        return "".join(chunks)


# ---------------------------------------------------------------------------
# Gemini (google-genai)
# ---------------------------------------------------------------------------


class GeminiSession(CompletionSession):
    """Session backed by its own google-genai client."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self._client = None
        self._stream = None

    async def open(self) -> None:
        from google import genai

        if not self.config.api_key:
            raise CompletionError("API key is not configured", FaultKind.ACCESS_DENIED)
        self._client = genai.Client(api_key=self.config.api_key)

    def _build_config(self, request: CompletionRequest):
        from google.genai import types

        tools = None
        if request.use_url_context:
            tools = [types.Tool(url_context=types.UrlContext())]
        return types.GenerateContentConfig(
            system_instruction=request.system_instruction,
            tools=tools,
            temperature=self.config.temperature,
        )

    async def stream_text(self, request: CompletionRequest) -> AsyncIterator[str]:
        from google.genai import errors

        if self._client is None:
            raise RuntimeError("Session not open. Use 'async with' context manager.")

        try:
            self._stream = await self._client.aio.models.generate_content_stream(
                model=request.model,
                contents=request.user_message,
                config=self._build_config(request),
            )
            async for chunk in self._stream:
                text = parse_gemini_chunk(chunk)
                if text:
                    yield text
        except errors.APIError as e:
            raise CompletionError(
                e.message or str(e), fault_for_status(e.code), status_code=e.code
            ) from e
        except UnicodeEncodeError as e:
            raise CompletionError(f"request encoding error: {e}", FaultKind.ENCODING) from e
        except httpx.TransportError as e:
            raise CompletionError(f"network error: {e}", FaultKind.NETWORK) from e

    async def close(self) -> None:
        stream, self._stream = self._stream, None
        client, self._client = self._client, None
        try:
            if stream is not None and hasattr(stream, "aclose"):
                await stream.aclose()
        finally:
            if client is not None:
                await client.aio.aclose()


class GeminiCompletionClient(CompletionClient):
    """Google Gemini provider with native URL-context support."""

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or get_config().llm

    def open_session(self) -> GeminiSession:
        logger.debug(
            "completion_session_opened",
            provider="gemini",
            model=self.config.model,
            api_key=mask_api_key(self.config.api_key),
        )
        return GeminiSession(self.config)


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class OpenAISession(CompletionSession):
    """Session backed by its own AsyncOpenAI client.

    Chat completions cannot fetch URLs, so URL-context requests pre-fetch
    the page and forward its text along with the URL.
    """

    def __init__(self, config: LLMConfig, crawler_config: CrawlerConfig):
        self.config = config
        self.crawler_config = crawler_config
        self._client = None

    async def open(self) -> None:
        import openai

        if not self.config.api_key:
            raise CompletionError("API key is not configured", FaultKind.ACCESS_DENIED)
        self._client = openai.AsyncOpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
        )

    async def _user_content(self, request: CompletionRequest) -> str:
        if not request.use_url_context:
            return request.user_message

        from webnovel_translator.crawler.base import PageFetcher

        urls = _URL_PATTERN.findall(request.user_message)
        if not urls:
            return request.user_message

        sections = [request.user_message]
        async with PageFetcher(self.crawler_config) as fetcher:
            for url in urls:
                try:
                    page_text = await fetcher.fetch_text(url)
                except httpx.HTTPStatusError as e:
                    status = e.response.status_code
                    kind = fault_for_status(status)
                    raise CompletionError(
                        f"source page inaccessible: {url}",
                        kind if kind != FaultKind.UNKNOWN else FaultKind.INACCESSIBLE,
                        status_code=status,
                    ) from e
                except httpx.TransportError as e:
                    raise CompletionError(
                        f"network error fetching {url}: {e}", FaultKind.NETWORK
                    ) from e
                sections.append(f"Page content of {url}:\n\n{page_text}")

        return "\n\n".join(sections)

    async def stream_text(self, request: CompletionRequest) -> AsyncIterator[str]:
        import openai

        if self._client is None:
            raise RuntimeError("Session not open. Use 'async with' context manager.")

        user_content = await self._user_content(request)
        try:
            stream = await self._client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.system_instruction},
                    {"role": "user", "content": user_content},
                ],
                temperature=self.config.temperature,
                stream=True,
            )
            async for chunk in stream:
                text = parse_openai_chunk(chunk)
                if text:
                    yield text
        except openai.RateLimitError as e:
            raise CompletionError(str(e), FaultKind.RATE_LIMIT, e.status_code) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise CompletionError(str(e), FaultKind.ACCESS_DENIED, e.status_code) from e
        except openai.APIConnectionError as e:
            raise CompletionError(str(e), FaultKind.NETWORK) from e
        except openai.APIStatusError as e:
            raise CompletionError(str(e), fault_for_status(e.status_code), e.status_code) from e
        except UnicodeEncodeError as e:
            raise CompletionError(f"request encoding error: {e}", FaultKind.ENCODING) from e

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.close()


class OpenAICompletionClient(CompletionClient):
    """OpenAI-compatible provider (streaming chat completions)."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        crawler_config: Optional[CrawlerConfig] = None,
    ):
        app_config = get_config() if config is None or crawler_config is None else None
        self.config = config or app_config.llm
        self.crawler_config = crawler_config or app_config.crawler

    def open_session(self) -> OpenAISession:
        logger.debug(
            "completion_session_opened",
            provider="openai",
            model=self.config.model,
            base_url=self.config.base_url,
            api_key=mask_api_key(self.config.api_key),
        )
        return OpenAISession(self.config, self.crawler_config)


def create_completion_client(
    config: Optional[LLMConfig] = None,
    crawler_config: Optional[CrawlerConfig] = None,
) -> CompletionClient:
    """Create the completion client for the configured provider."""
    config = config or get_config().llm
    if config.provider == "openai":
        return OpenAICompletionClient(config, crawler_config)
    return GeminiCompletionClient(config)
