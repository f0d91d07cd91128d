"""Fault taxonomy and tagged translation outcomes."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class FaultKind(str, Enum):
    """Where a failure came from, tagged at its source."""

    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"
    ACCESS_DENIED = "access_denied"
    ENCODING = "encoding"
    INACCESSIBLE = "inaccessible"
    EMPTY_CONTENT = "empty_content"
    MISSING_MARKERS = "missing_markers"

    @property
    def is_terminal(self) -> bool:
        """Retrying a terminal fault is known to be futile."""
        return self in TERMINAL_FAULTS


TERMINAL_FAULTS = frozenset(
    {
        FaultKind.ACCESS_DENIED,
        FaultKind.ENCODING,
        FaultKind.INACCESSIBLE,
        FaultKind.EMPTY_CONTENT,
        FaultKind.MISSING_MARKERS,
    }
)


class CompletionError(Exception):
    """A completion provider failure, classified at the adapter boundary."""

    def __init__(
        self,
        message: str,
        kind: FaultKind = FaultKind.UNKNOWN,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


# Substrings seen in untyped error messages, checked in order
_MESSAGE_RULES: tuple[tuple[tuple[str, ...], FaultKind], ...] = (
    (("403", "blocked", "access denied", "forbidden"), FaultKind.ACCESS_DENIED),
    (
        ("bytestring", "character at index", "greater than 255"),
        FaultKind.ENCODING,
    ),
    (("empty content", "extracted content empty"), FaultKind.EMPTY_CONTENT),
    (("markers",), FaultKind.MISSING_MARKERS),
    (("inaccessible",), FaultKind.INACCESSIBLE),
    (("429", "quota", "rate limit", "rate-limit", "rate_limit"), FaultKind.RATE_LIMIT),
)


def classify_error_message(message: str) -> FaultKind:
    """Classify an untyped error by its message text.

    Only used for exceptions that were not raised as CompletionError.

    Args:
        message: Error message

    Returns:
        Best-guess fault kind, UNKNOWN when nothing matches
    """
    lowered = message.lower()
    for needles, kind in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return kind
    return FaultKind.UNKNOWN


def classify_exception(error: BaseException) -> FaultKind:
    """Fault kind of an exception, preferring the tag set at the source."""
    if isinstance(error, CompletionError) and error.kind != FaultKind.UNKNOWN:
        return error.kind
    return classify_error_message(str(error))


@dataclass(frozen=True)
class Success:
    text: str


@dataclass(frozen=True)
class RecoverableFailure:
    reason: str
    fault: FaultKind = FaultKind.UNKNOWN


@dataclass(frozen=True)
class TerminalFailure:
    reason: str
    fault: FaultKind = FaultKind.UNKNOWN


@dataclass(frozen=True)
class AmbiguousSuccess:
    """Plausible chapter content without the required markers.

    Never retried and never accepted automatically; a person decides.
    """

    raw_text: str

    @property
    def reason(self) -> str:
        return "response missing translation markers"


TranslationOutcome = Union[Success, RecoverableFailure, TerminalFailure, AmbiguousSuccess]
