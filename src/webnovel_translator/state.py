"""Persistent application state backed by a JSON key-value file."""

import json
import os
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from webnovel_translator.glossary.models import GlossaryCollection

logger = structlog.get_logger()


STORAGE_KEYS: dict[str, str] = {
    "selected_model": "wnt_selected_model",
    "site": "wnt_site",
    "series_url": "wnt_series_url",
    "series_name": "wnt_series_name",
    "start_chapter": "wnt_start_chapter",
    "num_chapters": "wnt_num_chapters",
    "output_file_name": "wnt_output_file_name",
    "translated_chapters": "wnt_translated_chapters",
    "glossary_collection": "wnt_glossary_collection",
    "glossary_start_chapter": "wnt_glossary_start_chapter",
    "glossary_num_chapters": "wnt_glossary_num_chapters",
}


class JsonFileStore:
    """Key-value store kept as one JSON object in a file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("state_file_unreadable", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("state_file_unreadable", path=str(self.path), error="not an object")
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def load(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def save(self, key: str, value: Any) -> None:
        self.save_many({key: value})

    def save_many(self, values: dict[str, Any]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def clear_all(self) -> None:
        """Remove every stored value."""
        if self.path.exists():
            self.path.unlink()
        logger.info("state_cleared", path=str(self.path))


class ChapterRecord(BaseModel):
    """A translated chapter."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    chapter_number: int = Field(ge=1)
    translated_text: str


class AppState(BaseModel):
    """Everything the user has entered or produced, persisted between runs.

    The API key is configuration and never stored here.
    """

    selected_model: str = "gemini-2.5-flash"
    site: str = "syosetu"
    series_url: str = ""
    series_name: str = ""
    start_chapter: int = Field(default=1, ge=1)
    num_chapters: int = Field(default=1, ge=1)
    output_file_name: str = "translated_novel"
    translated_chapters: list[ChapterRecord] = Field(default_factory=list)
    glossary_collection: Optional[GlossaryCollection] = None
    glossary_start_chapter: int = Field(default=1, ge=1)
    glossary_num_chapters: int = Field(default=10, ge=1)

    @classmethod
    def load(cls, store: JsonFileStore) -> "AppState":
        """Load state, falling back to defaults for missing or invalid fields."""
        data = {}
        for field_name, key in STORAGE_KEYS.items():
            value = store.load(key)
            if value is not None:
                data[field_name] = value

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            invalid = {str(error["loc"][0]) for error in e.errors() if error["loc"]}
            logger.warning("state_fields_reset", fields=sorted(invalid))
            return cls.model_validate({k: v for k, v in data.items() if k not in invalid})

    def persist(self, store: JsonFileStore, *fields: str) -> None:
        """Save the given fields (all when none are given)."""
        names = fields or tuple(STORAGE_KEYS)
        unknown = [name for name in names if name not in STORAGE_KEYS]
        if unknown:
            raise ValueError(f"Unknown state fields: {', '.join(unknown)}")

        dumped = self.model_dump(mode="json", by_alias=True, include=set(names))
        store.save_many({STORAGE_KEYS[name]: dumped[name] for name in names})

    # -- chapters ------------------------------------------------------------

    def get_chapter(self, chapter_number: int) -> Optional[ChapterRecord]:
        for record in self.translated_chapters:
            if record.chapter_number == chapter_number:
                return record
        return None

    def upsert_chapter(self, chapter_number: int, translated_text: str) -> ChapterRecord:
        """Store a chapter, replacing any earlier translation of it."""
        record = ChapterRecord(chapter_number=chapter_number, translated_text=translated_text)
        self.translated_chapters = [
            existing
            for existing in self.translated_chapters
            if existing.chapter_number != chapter_number
        ]
        self.translated_chapters.append(record)
        return record

    def edit_chapter(self, chapter_number: int, translated_text: str) -> ChapterRecord:
        """Replace the text of a stored chapter.

        Raises:
            KeyError: If the chapter is not stored
        """
        if self.get_chapter(chapter_number) is None:
            raise KeyError(chapter_number)
        return self.upsert_chapter(chapter_number, translated_text)

    def delete_chapter(self, chapter_number: int) -> bool:
        before = len(self.translated_chapters)
        self.translated_chapters = [
            record
            for record in self.translated_chapters
            if record.chapter_number != chapter_number
        ]
        return len(self.translated_chapters) != before

    def sorted_chapters(self) -> list[ChapterRecord]:
        return sorted(self.translated_chapters, key=lambda record: record.chapter_number)
