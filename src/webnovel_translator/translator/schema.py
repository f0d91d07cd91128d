"""Declared shapes of streamed completion chunks.

Provider chunks are validated here so that a malformed reply surfaces as a
retryable CompletionError at the boundary instead of an AttributeError deep
inside the translator.
"""

from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from webnovel_translator.translator.outcome import CompletionError, FaultKind


class GeminiPart(BaseModel):
    text: Optional[str] = None
    thought: Optional[bool] = None


class GeminiContent(BaseModel):
    parts: Optional[list[GeminiPart]] = None
    role: Optional[str] = None


class GeminiCandidate(BaseModel):
    content: Optional[GeminiContent] = None
    finish_reason: Optional[str] = None


class GeminiPromptFeedback(BaseModel):
    block_reason: Optional[str] = None


class GeminiChunk(BaseModel):
    """One streamed GenerateContentResponse."""

    candidates: Optional[list[GeminiCandidate]] = None
    prompt_feedback: Optional[GeminiPromptFeedback] = None

    def text(self) -> str:
        """Concatenated non-thought text of the first candidate."""
        if not self.candidates:
            return ""
        content = self.candidates[0].content
        if content is None or not content.parts:
            return ""
        return "".join(
            part.text for part in content.parts if part.text and not part.thought
        )


class ChatDelta(BaseModel):
    content: Optional[str] = None
    role: Optional[str] = None


class ChatChoice(BaseModel):
    delta: ChatDelta
    finish_reason: Optional[str] = None


class ChatChunk(BaseModel):
    """One streamed chat.completion.chunk."""

    choices: list[ChatChoice]

    def text(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""


def as_payload(chunk: Any) -> Any:
    """Plain JSON-like view of an SDK chunk (SDK objects are pydantic models)."""
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump(mode="json")
    return chunk


def parse_gemini_chunk(chunk: Any) -> str:
    """Validate a Gemini stream chunk and return its text.

    Raises:
        CompletionError: MALFORMED_RESPONSE for unexpected shapes,
            ACCESS_DENIED when the prompt was blocked
    """
    try:
        parsed = GeminiChunk.model_validate(as_payload(chunk))
    except ValidationError as e:
        raise CompletionError(
            f"malformed completion chunk: {e.error_count()} validation errors",
            FaultKind.MALFORMED_RESPONSE,
        ) from e

    if parsed.prompt_feedback and parsed.prompt_feedback.block_reason:
        raise CompletionError(
            f"prompt blocked: {parsed.prompt_feedback.block_reason}",
            FaultKind.ACCESS_DENIED,
        )
    return parsed.text()


def parse_openai_chunk(chunk: Any) -> str:
    """Validate a chat completion stream chunk and return its text.

    Raises:
        CompletionError: MALFORMED_RESPONSE for unexpected shapes
    """
    try:
        parsed = ChatChunk.model_validate(as_payload(chunk))
    except ValidationError as e:
        raise CompletionError(
            f"malformed completion chunk: {e.error_count()} validation errors",
            FaultKind.MALFORMED_RESPONSE,
        ) from e
    return parsed.text()
