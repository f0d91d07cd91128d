"""Locate the translated payload between the sentinel markers."""

import re
from typing import Optional, Sequence

import structlog

from webnovel_translator.translator.outcome import (
    AmbiguousSuccess,
    FaultKind,
    RecoverableFailure,
    Success,
    TranslationOutcome,
)
from webnovel_translator.translator.prompts import CHAPTER_TAG_PATTERN, END_MARKERS, START_MARKERS

logger = structlog.get_logger()

# A non-empty line ending in a chapter tag, e.g. "The Crimson Contract [chapter: 214]"
TITLE_LINE_PATTERN = re.compile(r"(?:^|\n)\s*([^\n]+\s*\[chapter:\s*\d+\])", re.IGNORECASE)

PREVIEW_CHARS = 200


# Word-like variants that also occur in prose; only accepted at the start of a line
LINE_ANCHORED_MARKERS = frozenset({"start:", "end:"})


def _positions(lowered: str, marker: str) -> list[int]:
    needle = marker.lower()
    if needle in LINE_ANCHORED_MARKERS:
        pattern = re.compile(r"^[ \t]*(" + re.escape(needle) + ")", re.MULTILINE)
        return [match.start(1) for match in pattern.finditer(lowered)]
    positions = []
    index = lowered.find(needle)
    while index != -1:
        positions.append(index)
        index = lowered.find(needle, index + 1)
    return positions


def find_first_marker(text: str, markers: Sequence[str]) -> tuple[int, Optional[str]]:
    """Position of the first occurrence of the highest-priority marker present.

    Returns:
        (index, marker) or (-1, None)
    """
    lowered = text.lower()
    for marker in markers:
        positions = _positions(lowered, marker)
        if positions:
            return positions[0], marker
    return -1, None


def find_last_marker(text: str, markers: Sequence[str]) -> tuple[int, Optional[str]]:
    """Position of the last occurrence of the highest-priority marker present."""
    lowered = text.lower()
    for marker in markers:
        positions = _positions(lowered, marker)
        if positions:
            return positions[-1], marker
    return -1, None


def looks_like_chapter(text: str, min_length: int = 100) -> bool:
    """Whether marker-less text is plausible chapter content worth a human look."""
    return bool(CHAPTER_TAG_PATTERN.search(text)) or len(text) > min_length


def recover_from_title_line(text_before_end: str) -> Optional[str]:
    """Recover a payload whose start marker was dropped.

    Everything from the first chapter title line up to the end marker is taken.
    """
    match = TITLE_LINE_PATTERN.search(text_before_end)
    if match is None:
        return None
    recovered = text_before_end[match.start():].strip()
    return recovered or None


def extract_translation(
    raw_text: str,
    start_markers: Sequence[str] = START_MARKERS,
    end_markers: Sequence[str] = END_MARKERS,
    min_length: int = 100,
) -> TranslationOutcome:
    """Extract the payload from a raw model reply.

    Args:
        raw_text: Complete response text
        start_markers: Accepted start sentinels, in priority order
        end_markers: Accepted end sentinels, in priority order
        min_length: Marker-less text longer than this counts as chapter-like

    Returns:
        Success with the trimmed payload, AmbiguousSuccess with the raw text,
        or RecoverableFailure
    """
    logger.debug(
        "response_preview",
        head=raw_text[:PREVIEW_CHARS],
        tail=raw_text[-PREVIEW_CHARS:],
        length=len(raw_text),
    )

    start_index, start_marker = find_first_marker(raw_text, start_markers)
    end_index, end_marker = find_last_marker(raw_text, end_markers)

    if start_marker is not None and end_marker is not None and end_index > start_index:
        payload = raw_text[start_index + len(start_marker):end_index].strip()
        if not payload:
            return RecoverableFailure("extracted content empty", FaultKind.EMPTY_CONTENT)
        logger.debug(
            "markers_found",
            start_marker=start_marker,
            end_marker=end_marker,
            length=len(payload),
        )
        return Success(payload)

    if start_marker is None and end_marker is not None:
        logger.warning("start_marker_missing", end_marker=end_marker)
        recovered = recover_from_title_line(raw_text[:end_index])
        if recovered is not None:
            logger.info("start_marker_recovered", length=len(recovered))
            return Success(recovered)
        logger.warning("start_marker_recovery_failed")
    else:
        logger.warning(
            "markers_not_found",
            start_found=start_marker is not None,
            end_found=end_marker is not None,
        )

    if looks_like_chapter(raw_text, min_length):
        return AmbiguousSuccess(raw_text)
    return RecoverableFailure("no markers, not chapter-like", FaultKind.MISSING_MARKERS)
