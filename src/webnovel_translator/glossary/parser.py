"""Salvage a character list from a loosely-structured model reply.

The model is asked for a JSON object with a ``characters`` array but is not a
reliable JSON emitter. Parsing happens in two tiers:

1. Repair the whole document and parse it.
2. If that fails, cut out just the ``characters`` array, repair that alone,
   wrap it in a minimal object and parse again.

Each repair step is a small pure function. Nothing here raises on bad input:
an unsalvageable reply yields ``None``.
"""

import json
import re
from typing import Any, Optional

import structlog

from webnovel_translator.glossary.models import Character, Importance

logger = structlog.get_logger()

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")
_LINE_BREAKS = re.compile(r"\s*\n\s*")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CHARACTERS_KEY = re.compile(r'"characters"\s*:\s*\[')
_SOURCE_SCRIPT = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")
_WHITESPACE = re.compile(r"\s+")

# What may follow a closing quote in valid JSON
_AFTER_STRING = set(",:}]")

MIN_DESCRIPTION_LENGTH = 5
MISSING_DESCRIPTION = "No description available."
UNAVAILABLE_DESCRIPTION = "Character description unavailable."


# ---------------------------------------------------------------------------
# Repair heuristics
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    """Return the contents of the first code fence, or the trimmed text."""
    text = text.strip()
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    if match:
        return match.group(1).strip()
    if text.startswith("```"):
        # Opening fence without a closing one (truncated reply)
        _, _, rest = text.partition("\n")
        return rest.strip()
    return text


def trim_to_outer_braces(text: str) -> str:
    """Drop anything before the first '{' and after the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1:
        return text
    if end < start:
        return text[start:]
    return text[start:end + 1]


def collapse_line_breaks(text: str) -> str:
    """Replace line breaks and their surrounding indentation with one space."""
    return _LINE_BREAKS.sub(" ", text)


def remove_trailing_commas(text: str) -> str:
    """Remove commas directly before a closing brace or bracket."""
    return _TRAILING_COMMA.sub(r"\1", text)


def _next_significant(text: str, index: int) -> Optional[str]:
    for char in text[index:]:
        if not char.isspace():
            return char
    return None


def repair_stray_quotes(text: str) -> str:
    """Turn quotes that cannot close a string into apostrophes.

    A quote inside a string value closes it only when what follows is
    structural (``,`` ``:`` ``}`` ``]``) or the end of text. Anything else,
    as in ``"The Duke"s daughter"``, is a stray quote.
    """
    out: list[str] = []
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                following = _next_significant(text, index + 1)
                if following is None or following in _AFTER_STRING:
                    in_string = False
                else:
                    char = "'"
        elif char == '"':
            in_string = True
        out.append(char)

    return "".join(out)


def repair_json_text(text: str) -> str:
    """Full repair chain applied to a whole document (tier 1)."""
    text = trim_to_outer_braces(text)
    text = collapse_line_breaks(text)
    text = remove_trailing_commas(text)
    return repair_stray_quotes(text)


def extract_characters_array(text: str) -> Optional[str]:
    """Cut the ``"characters": [...]`` array out of a document.

    Brackets inside strings are ignored. When the array is never closed
    (a truncated reply), it is cut after the last complete object.

    Returns:
        The array text including brackets, or None
    """
    match = _CHARACTERS_KEY.search(text)
    if match is None:
        return None

    start = match.end() - 1
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    last_object_end = text.rfind("}", start)
    if last_object_end == -1:
        return None
    return text[start:last_object_end + 1] + "]"


# ---------------------------------------------------------------------------
# Parsing tiers
# ---------------------------------------------------------------------------


def _parse_full_document(text: str) -> Optional[list[Any]]:
    repaired = repair_json_text(strip_code_fences(text))
    parsed = json.loads(repaired)
    if not isinstance(parsed, dict) or not isinstance(parsed.get("characters"), list):
        logger.warning("glossary_missing_characters_array")
        return None
    return parsed["characters"]


def _parse_characters_array(text: str) -> Optional[list[Any]]:
    array_text = extract_characters_array(text)
    if array_text is None:
        return None
    repaired = remove_trailing_commas(repair_stray_quotes(collapse_line_breaks(array_text)))
    parsed = json.loads(f'{{"characters":{repaired}}}')
    characters = parsed.get("characters")
    return characters if isinstance(characters, list) else None


def parse_characters_payload(text: str) -> Optional[list[Any]]:
    """Raw character entries from a reply, or None when unsalvageable."""
    logger.debug("glossary_response", length=len(text), preview=text[:500])

    try:
        return _parse_full_document(text)
    except json.JSONDecodeError as e:
        logger.warning("glossary_parse_failed", tier=1, error=str(e))

    try:
        characters = _parse_characters_array(text)
    except json.JSONDecodeError as e:
        logger.warning("glossary_parse_failed", tier=2, error=str(e))
        return None

    if characters is not None:
        logger.info("glossary_array_salvaged", count=len(characters))
    return characters


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _optional_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value).strip() or None


def clean_description(value: Any) -> str:
    """English-only description, whitespace normalized, placeholder when too short."""
    description = str(value) if value else MISSING_DESCRIPTION
    description = _SOURCE_SCRIPT.sub("", description)
    description = _WHITESPACE.sub(" ", description).strip()
    if len(description) < MIN_DESCRIPTION_LENGTH:
        return UNAVAILABLE_DESCRIPTION
    return description


def normalize_importance(value: Any) -> Importance:
    try:
        return Importance(str(value).strip().lower())
    except ValueError:
        return Importance.MINOR


def normalize_occurrence_count(value: Any) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 1
    return count if count >= 1 else 1


def normalize_characters(entries: list[Any], chapter_start: Optional[int] = None) -> list[Character]:
    """Build validated characters from raw entries.

    Entries with neither name are dropped. Every character gets a fresh id.
    """
    usable = [
        entry
        for entry in entries
        if isinstance(entry, dict) and (entry.get("japaneseName") or entry.get("englishName"))
    ]

    characters = []
    for index, entry in enumerate(usable):
        japanese_name = _optional_text(entry.get("japaneseName")) or ""
        english_name = (
            _optional_text(entry.get("englishName"))
            or japanese_name
            or f"Character {index + 1}"
        )
        characters.append(
            Character(
                japanese_name=japanese_name,
                english_name=english_name,
                age=_optional_text(entry.get("age")),
                gender=_optional_text(entry.get("gender")),
                height=_optional_text(entry.get("height")),
                physical_appearance=_optional_text(entry.get("physicalAppearance")),
                description=clean_description(entry.get("description")),
                importance=normalize_importance(entry.get("importance")),
                first_appearance=chapter_start,
                occurrence_count=normalize_occurrence_count(entry.get("occurrenceCount")),
            )
        )
    return characters


def parse_glossary_response(text: str, chapter_start: Optional[int] = None) -> Optional[list[Character]]:
    """Parse a glossary reply into characters.

    Args:
        text: Raw model reply
        chapter_start: First chapter of the segment, recorded as first appearance

    Returns:
        Characters (possibly empty), or None when the reply is unsalvageable
    """
    entries = parse_characters_payload(text)
    if entries is None:
        return None
    return normalize_characters(entries, chapter_start)
