"""Character glossary data model.

Models serialize with camelCase keys (``japaneseName``, ``chapterRange``)
so that stored collections keep the same JSON shape across versions.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class Importance(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    BACKGROUND = "background"

    @property
    def rank(self) -> int:
        return _IMPORTANCE_RANK[self]


_IMPORTANCE_RANK = {Importance.MAJOR: 0, Importance.MINOR: 1, Importance.BACKGROUND: 2}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Character(_CamelModel):
    """A recurring character as seen in one segment."""

    id: str = Field(default_factory=lambda: new_id("char"))
    japanese_name: str = Field(default="", description="Name in the source script")
    english_name: str = Field(description="Preferred English name, stable across segments")
    age: Optional[str] = None
    gender: Optional[str] = None
    height: Optional[str] = None
    physical_appearance: Optional[str] = None
    description: str = ""
    importance: Importance = Importance.MINOR
    first_appearance: Optional[int] = Field(default=None, description="First chapter seen")
    occurrence_count: int = Field(default=1, ge=1)
    last_modified: datetime = Field(default_factory=_now)

    def sort_key(self) -> tuple[int, str]:
        """Importance first, then English name."""
        return (self.importance.rank, self.english_name.lower())


class ChapterRange(_CamelModel):
    start: int = Field(ge=1)
    end: int = Field(ge=1)

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


class GlossarySegment(_CamelModel):
    """Characters generated for one fixed-size slice of chapters."""

    id: str = Field(default_factory=lambda: new_id("segment"))
    characters: list[Character] = Field(default_factory=list)
    series_name: str
    chapter_range: ChapterRange
    segment_number: int = Field(ge=1)
    generated_at: datetime = Field(default_factory=_now)
    last_modified: datetime = Field(default_factory=_now)

    def touch(self) -> None:
        self.last_modified = _now()


class GlossaryCollection(_CamelModel):
    """Ordered list of segments for one series.

    Segments are never merged. Consumers see the plain concatenation of every
    segment's characters.
    """

    series_name: str
    segments: list[GlossarySegment] = Field(default_factory=list)
    total_chapter_range: ChapterRange
    last_processed_chapter: Optional[int] = None
    created_at: datetime = Field(default_factory=_now)
    last_modified: datetime = Field(default_factory=_now)

    def touch(self) -> None:
        self.last_modified = _now()

    @property
    def next_segment_number(self) -> int:
        if not self.segments:
            return 1
        return max(segment.segment_number for segment in self.segments) + 1

    def all_characters(self) -> list[Character]:
        """Characters of every segment, concatenated in segment order."""
        return [char for segment in self.segments for char in segment.characters]

    def find_character(self, character_id: str) -> Optional[Character]:
        for char in self.all_characters():
            if char.id == character_id:
                return char
        return None

    def update_character(self, character_id: str, **updates: Any) -> bool:
        """Apply field updates to a character in whichever segment holds it.

        Args:
            character_id: Character id
            **updates: Field values by attribute name (snake_case)

        Returns:
            True if the character was found
        """
        found = False
        for segment in self.segments:
            for index, char in enumerate(segment.characters):
                if char.id != character_id:
                    continue
                data = char.model_dump()
                data.update(updates)
                data["id"] = char.id
                data["last_modified"] = _now()
                segment.characters[index] = Character.model_validate(data)
                segment.touch()
                found = True
        if found:
            self.touch()
        return found

    def add_character(self, character: Character) -> Character:
        """Append a character to the most recent segment.

        Raises:
            ValueError: If the collection has no segments
        """
        if not self.segments:
            raise ValueError("Cannot add character to collection with no segments")
        latest = self.segments[-1]
        latest.characters.append(character)
        latest.touch()
        self.touch()
        return character

    def delete_character(self, character_id: str) -> int:
        """Remove a character from every segment.

        Returns:
            Number of segments it was removed from
        """
        removed = 0
        for segment in self.segments:
            kept = [char for char in segment.characters if char.id != character_id]
            if len(kept) != len(segment.characters):
                segment.characters = kept
                segment.touch()
                removed += 1
        if removed:
            self.touch()
        return removed

    def delete_segment(self, segment_ref: str) -> bool:
        """Delete a segment by id or by segment number."""
        kept = [
            segment
            for segment in self.segments
            if segment.id != segment_ref and str(segment.segment_number) != segment_ref
        ]
        if len(kept) == len(self.segments):
            return False
        self.segments = kept
        self.touch()
        return True

    def to_prompt_context(self) -> str:
        """Render the character reference for the translation prompt.

        Returns:
            "Character Reference:" block, or "" when there are no characters
        """
        characters = sorted(self.all_characters(), key=Character.sort_key)
        if not characters:
            return ""
        lines = [
            f"{char.japanese_name} ({char.english_name}): {char.description}"
            for char in characters
        ]
        return "Character Reference:\n" + "\n".join(lines)
