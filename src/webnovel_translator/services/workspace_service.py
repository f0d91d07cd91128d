"""WorkspaceService: every user operation over one persisted AppState.

Each mutating operation saves the fields it touched, so an interrupted
process never loses completed chapters or glossary segments.
"""

from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import structlog

from webnovel_translator.config import AppConfig, get_config
from webnovel_translator.exporter.epub_assembler import BookSection, EpubAssembler
from webnovel_translator.formatter.chapter import extract_chapter_content, glossary_to_html
from webnovel_translator.glossary.builder import GlossaryBuildResult, GlossarySegmentBuilder
from webnovel_translator.glossary.models import Character, GlossaryCollection, GlossarySegment
from webnovel_translator.pipeline.chapters import ChapterPipeline, ChapterRunResult
from webnovel_translator.services.events import EventBus
from webnovel_translator.sites import build_chapter_urls, series_identifier
from webnovel_translator.state import AppState, ChapterRecord, JsonFileStore
from webnovel_translator.translator.chapter import ChapterTranslator, TranslationOptions
from webnovel_translator.translator.llm import CompletionClient, create_completion_client
from webnovel_translator.translator.outcome import Success, TranslationOutcome
from webnovel_translator.translator.retry import RetryController

logger = structlog.get_logger()


class WorkspaceService:
    """Translate, review, build glossaries and export, all against one AppState."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        store: Optional[JsonFileStore] = None,
        client: Optional[CompletionClient] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config or get_config()
        self.store = store or JsonFileStore(self.config.state_file)
        self.client = client or create_completion_client(self.config.llm, self.config.crawler)
        self.event_bus = event_bus or EventBus()
        self.state = AppState.load(self.store)
        self._pipeline: Optional[ChapterPipeline] = None
        self._glossary_stop_requested = False

    # -- settings ------------------------------------------------------------

    def update_settings(self, **fields: Any) -> AppState:
        """Change form values (series URL, range, model, ...) and save them.

        None values are ignored.
        """
        changes = {name: value for name, value in fields.items() if value is not None}
        if not changes:
            return self.state
        data = self.state.model_dump()
        data.update(changes)
        self.state = AppState.model_validate(data)
        self.state.persist(self.store, *changes)
        return self.state

    def _translator(self) -> ChapterTranslator:
        return ChapterTranslator(self.client, self.config.translation.min_chapter_like_length)

    def _options(self) -> TranslationOptions:
        collection = self.state.glossary_collection
        return TranslationOptions(
            model=self.state.selected_model,
            series_name=self.state.series_name or None,
            glossary_context=collection.to_prompt_context() if collection else None,
        )

    # -- chapter translation -------------------------------------------------

    async def translate_chapters(
        self,
        chapter_numbers: Optional[Sequence[int]] = None,
    ) -> ChapterRunResult:
        """Translate the configured range (or the given chapters) sequentially.

        Raises:
            ValueError: If no series URL is set or the site is unsupported
        """
        if not self.state.series_url:
            raise ValueError("Please enter the series URL.")

        self._pipeline = ChapterPipeline(
            translator=self._translator(),
            retry=RetryController(config=self.config.translation),
            config=self.config.translation,
            event_bus=self.event_bus,
            on_chapter_saved=lambda state: state.persist(self.store, "translated_chapters"),
        )
        try:
            return await self._pipeline.run(self.state, chapter_numbers)
        finally:
            self._pipeline = None

    def request_stop(self) -> None:
        """Stop the running chapter or glossary loop before its next step."""
        self._glossary_stop_requested = True
        if self._pipeline is not None:
            self._pipeline.request_stop()

    async def translate_manual_source(self, chapter_number: int, source_text: str) -> TranslationOutcome:
        """Translate pasted source-language text for a chapter and store it on success."""
        if not source_text.strip():
            raise ValueError("Source text is empty.")
        outcome = await self._translator().translate_text(
            source_text, chapter_number, self._options()
        )
        if isinstance(outcome, Success):
            self.state.upsert_chapter(chapter_number, outcome.text)
            self.state.persist(self.store, "translated_chapters")
            logger.info("manual_chapter_translated", chapter=chapter_number)
        return outcome

    def accept_manual_translation(self, chapter_number: int, translated_text: str) -> ChapterRecord:
        """Store already translated text for a chapter as is."""
        if not translated_text.strip():
            raise ValueError("Translated text is empty.")
        record = self.state.upsert_chapter(chapter_number, translated_text.strip())
        self.state.persist(self.store, "translated_chapters")
        logger.info("manual_chapter_accepted", chapter=chapter_number)
        return record

    # -- chapters ------------------------------------------------------------

    def list_chapters(self) -> list[ChapterRecord]:
        return self.state.sorted_chapters()

    def get_chapter(self, chapter_number: int) -> ChapterRecord:
        record = self.state.get_chapter(chapter_number)
        if record is None:
            raise KeyError(f"Chapter {chapter_number} not found")
        return record

    def edit_chapter(self, chapter_number: int, translated_text: str) -> ChapterRecord:
        try:
            record = self.state.edit_chapter(chapter_number, translated_text)
        except KeyError:
            raise KeyError(f"Chapter {chapter_number} not found") from None
        self.state.persist(self.store, "translated_chapters")
        return record

    def delete_chapter(self, chapter_number: int) -> bool:
        deleted = self.state.delete_chapter(chapter_number)
        if deleted:
            self.state.persist(self.store, "translated_chapters")
        return deleted

    # -- glossary ------------------------------------------------------------

    async def build_glossary(
        self,
        resume: bool = False,
        on_segment: Optional[Callable[[GlossarySegment], None]] = None,
    ) -> GlossaryBuildResult:
        """Build glossary segments over the glossary chapter range.

        Args:
            resume: Continue after the existing collection's last processed
                chapter instead of starting over
            on_segment: Called with each segment as soon as it is generated

        Raises:
            ValueError: If no series URL is set or nothing is left to process
        """
        if not self.state.series_url:
            raise ValueError("Please enter the series URL.")

        start = self.state.glossary_start_chapter
        end = start + self.state.glossary_num_chapters - 1
        existing: Optional[GlossaryCollection] = None
        if resume and self.state.glossary_collection:
            existing = self.state.glossary_collection
            start = max(start, (existing.last_processed_chapter or start - 1) + 1)
            if start > end:
                raise ValueError(f"Glossary already covers chapters up to {end}.")

        urls = build_chapter_urls(self.state.site, self.state.series_url, start, end - start + 1)
        series_name = self.state.series_name or series_identifier(self.state.series_url)

        self._glossary_stop_requested = False
        builder = GlossarySegmentBuilder(
            self.client,
            self.config.glossary,
            should_stop=lambda: self._glossary_stop_requested,
        )
        result = await builder.build(
            series_name,
            urls,
            start,
            self.state.selected_model,
            existing=existing,
            on_segment=on_segment,
        )

        if result.success and result.collection is not None:
            self.state.glossary_collection = result.collection
            self.state.persist(self.store, "glossary_collection")
        return result

    def _require_glossary(self) -> GlossaryCollection:
        if self.state.glossary_collection is None:
            raise ValueError("No glossary has been generated yet.")
        return self.state.glossary_collection

    def update_character(self, character_id: str, **updates: Any) -> bool:
        found = self._require_glossary().update_character(character_id, **updates)
        if found:
            self.state.persist(self.store, "glossary_collection")
        return found

    def add_character(self, character: Character) -> Character:
        added = self._require_glossary().add_character(character)
        self.state.persist(self.store, "glossary_collection")
        return added

    def delete_character(self, character_id: str) -> int:
        removed = self._require_glossary().delete_character(character_id)
        if removed:
            self.state.persist(self.store, "glossary_collection")
        return removed

    def delete_segment(self, segment_ref: str) -> bool:
        deleted = self._require_glossary().delete_segment(segment_ref)
        if deleted:
            self.state.persist(self.store, "glossary_collection")
        return deleted

    def clear_glossary(self) -> None:
        self.state.glossary_collection = None
        self.state.persist(self.store, "glossary_collection")
        logger.info("glossary_cleared")

    # -- export and reset ----------------------------------------------------

    def export_epub(self, output_path: Optional[Path] = None, include_glossary: bool = True) -> Path:
        """Write the EPUB for all stored chapters.

        Raises:
            ValueError: If no chapters are translated yet
        """
        chapters = self.state.sorted_chapters()
        if not chapters:
            raise ValueError("No chapters translated yet to download.")

        file_name = self.state.output_file_name or "translated_novel"
        output_path = output_path or self.config.export.output_dir / f"{file_name}.epub"

        sections = []
        for record in chapters:
            content = extract_chapter_content(record.chapter_number, record.translated_text)
            sections.append(BookSection(title=content.title, body_html=content.body_html))

        glossary_html = None
        collection = self.state.glossary_collection
        if include_glossary and collection and collection.all_characters():
            glossary_html = glossary_to_html(collection)

        assembler = EpubAssembler(self.config.export)
        return assembler.assemble(
            sections,
            output_path,
            assembler.metadata_for(file_name),
            glossary_html=glossary_html,
        )

    def reset(self) -> AppState:
        """Forget everything: form values, chapters and glossary."""
        self.store.clear_all()
        self.state = AppState()
        return self.state
