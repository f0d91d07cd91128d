"""Character glossary: models, response parser and segmented builder."""

from webnovel_translator.glossary.builder import GlossaryBuildResult, GlossarySegmentBuilder
from webnovel_translator.glossary.models import (
    ChapterRange,
    Character,
    GlossaryCollection,
    GlossarySegment,
    Importance,
)
from webnovel_translator.glossary.parser import parse_glossary_response

__all__ = [
    "ChapterRange",
    "Character",
    "GlossaryBuildResult",
    "GlossaryCollection",
    "GlossarySegment",
    "GlossarySegmentBuilder",
    "Importance",
    "parse_glossary_response",
]
