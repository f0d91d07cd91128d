"""Tests for WorkspaceService."""

import json
import zipfile

import pytest

from webnovel_translator.services.workspace_service import WorkspaceService
from webnovel_translator.state import AppState, JsonFileStore
from webnovel_translator.translator.outcome import CompletionError, Success

from conftest import SERIES_URL, ScriptedCompletionClient, chapter_reply, wrap_translation


def glossary_reply(name: str) -> str:
    return json.dumps(
        {
            "characters": [
                {"japaneseName": "アリア", "englishName": name, "description": "Exiled noble daughter", "importance": "major"}
            ]
        }
    )


def make_service(fast_config, client) -> WorkspaceService:
    return WorkspaceService(config=fast_config, client=client)


class TestSettings:
    """Tests for update_settings."""

    def test_update_persists(self, fast_config):
        """Changed values are saved and visible to a new service."""
        service = make_service(fast_config, ScriptedCompletionClient())
        service.update_settings(series_url=SERIES_URL, num_chapters=4, series_name=None)

        reloaded = AppState.load(JsonFileStore(fast_config.state_file))
        assert reloaded.series_url == SERIES_URL
        assert reloaded.num_chapters == 4
        assert reloaded.series_name == ""

    def test_invalid_value_rejected(self, fast_config):
        """Out-of-range values raise and leave state untouched."""
        service = make_service(fast_config, ScriptedCompletionClient())
        with pytest.raises(ValueError):
            service.update_settings(start_chapter=0)
        assert service.state.start_chapter == 1


class TestTranslation:
    """Tests for chapter translation through the service."""

    @pytest.mark.asyncio
    async def test_translate_persists_each_chapter(self, fast_config):
        """Completed chapters survive a halt and a restart."""
        client = ScriptedCompletionClient([chapter_reply(1), CompletionError("403 Forbidden")])
        service = make_service(fast_config, client)
        service.update_settings(series_url=SERIES_URL, num_chapters=3)

        result = await service.translate_chapters()

        assert result.failed_chapter == 2
        reloaded = AppState.load(JsonFileStore(fast_config.state_file))
        assert [r.chapter_number for r in reloaded.translated_chapters] == [1]

    @pytest.mark.asyncio
    async def test_translate_requires_url(self, fast_config):
        """A series URL is needed before translating."""
        service = make_service(fast_config, ScriptedCompletionClient())
        with pytest.raises(ValueError, match="series URL"):
            await service.translate_chapters()

    @pytest.mark.asyncio
    async def test_manual_source(self, fast_config):
        """Pasted source text is translated and stored."""
        client = ScriptedCompletionClient([wrap_translation("Title [chapter: 2]\nBody")])
        service = make_service(fast_config, client)

        outcome = await service.translate_manual_source(2, "第二話")

        assert isinstance(outcome, Success)
        assert service.get_chapter(2).translated_text == "Title [chapter: 2]\nBody"
        assert client.requests[0].user_message == "第二話"

    def test_manual_translation_accepted(self, fast_config):
        """Already translated text is stored as is."""
        service = make_service(fast_config, ScriptedCompletionClient())
        service.accept_manual_translation(5, "  Chapter five text.  ")
        assert service.get_chapter(5).translated_text == "Chapter five text."

    def test_manual_translation_empty(self, fast_config):
        """Empty text is refused."""
        service = make_service(fast_config, ScriptedCompletionClient())
        with pytest.raises(ValueError):
            service.accept_manual_translation(5, "   ")


class TestChapters:
    """Tests for chapter review operations."""

    def test_edit_and_delete(self, fast_config):
        """Edits and deletions are persisted."""
        service = make_service(fast_config, ScriptedCompletionClient())
        service.accept_manual_translation(1, "one")
        service.edit_chapter(1, "ONE")
        assert service.get_chapter(1).translated_text == "ONE"

        assert service.delete_chapter(1)
        assert not service.delete_chapter(1)
        assert service.list_chapters() == []

    def test_missing_chapter(self, fast_config):
        """Unknown chapters raise KeyError."""
        service = make_service(fast_config, ScriptedCompletionClient())
        with pytest.raises(KeyError):
            service.get_chapter(3)
        with pytest.raises(KeyError):
            service.edit_chapter(3, "x")


class TestGlossary:
    """Tests for glossary operations."""

    @pytest.mark.asyncio
    async def test_build_and_resume(self, fast_config):
        """A resumed build starts after the last processed chapter."""
        client = ScriptedCompletionClient([glossary_reply("Aria"), glossary_reply("Aria")])
        service = make_service(fast_config, client)
        service.update_settings(series_url=SERIES_URL, glossary_start_chapter=1, glossary_num_chapters=10)

        first = await service.build_glossary()
        assert first.success
        assert service.state.glossary_collection.last_processed_chapter == 10

        service.update_settings(glossary_num_chapters=20)
        second = await service.build_glossary(resume=True)

        assert second.success
        assert "Chapter 11:" in client.requests[1].user_message
        collection = AppState.load(JsonFileStore(fast_config.state_file)).glossary_collection
        assert [s.segment_number for s in collection.segments] == [1, 2]
        assert collection.last_processed_chapter == 20

    @pytest.mark.asyncio
    async def test_resume_nothing_left(self, fast_config):
        """Resuming a complete glossary is refused."""
        client = ScriptedCompletionClient([glossary_reply("Aria")])
        service = make_service(fast_config, client)
        service.update_settings(series_url=SERIES_URL, glossary_num_chapters=5)
        await service.build_glossary()

        with pytest.raises(ValueError, match="already covers"):
            await service.build_glossary(resume=True)

    @pytest.mark.asyncio
    async def test_failed_build_keeps_existing(self, fast_config):
        """A build with no segments leaves the stored glossary alone."""
        client = ScriptedCompletionClient(["not json at all"])
        service = make_service(fast_config, client)
        service.update_settings(series_url=SERIES_URL, glossary_num_chapters=5)

        result = await service.build_glossary()

        assert not result.success
        assert service.state.glossary_collection is None

    @pytest.mark.asyncio
    async def test_character_edits(self, fast_config):
        """Character and segment edits are persisted."""
        client = ScriptedCompletionClient([glossary_reply("Aria")])
        service = make_service(fast_config, client)
        service.update_settings(series_url=SERIES_URL, glossary_num_chapters=5)
        await service.build_glossary()
        character = service.state.glossary_collection.all_characters()[0]

        assert service.update_character(character.id, english_name="Arya")
        reloaded = AppState.load(JsonFileStore(fast_config.state_file))
        assert reloaded.glossary_collection.all_characters()[0].english_name == "Arya"

        assert service.delete_segment("1")
        assert service.state.glossary_collection.segments == []

        service.clear_glossary()
        assert AppState.load(JsonFileStore(fast_config.state_file)).glossary_collection is None

    def test_edits_need_glossary(self, fast_config):
        """Editing without a glossary is an error."""
        service = make_service(fast_config, ScriptedCompletionClient())
        with pytest.raises(ValueError):
            service.delete_segment("1")


class TestExportAndReset:
    """Tests for export and reset."""

    def test_export(self, fast_config):
        """Chapters are exported in order to the configured directory."""
        service = make_service(fast_config, ScriptedCompletionClient())
        service.update_settings(output_file_name="saga")
        service.accept_manual_translation(2, "Second [chapter: 2]\n\nTwo.")
        service.accept_manual_translation(1, "First [chapter: 1]\n\nOne.")

        path = service.export_epub()

        assert path == fast_config.export.output_dir / "saga.epub"
        with zipfile.ZipFile(path) as zf:
            ncx = zf.read("OEBPS/toc.ncx").decode("utf-8")
        assert ncx.index("First - Chapter 1") < ncx.index("Second - Chapter 2")

    def test_export_without_chapters(self, fast_config):
        """Nothing translated means nothing to export."""
        service = make_service(fast_config, ScriptedCompletionClient())
        with pytest.raises(ValueError, match="No chapters"):
            service.export_epub()

    def test_reset(self, fast_config):
        """Reset clears the state file and restores defaults."""
        service = make_service(fast_config, ScriptedCompletionClient())
        service.update_settings(series_url=SERIES_URL)
        service.accept_manual_translation(1, "one")

        state = service.reset()

        assert state.series_url == ""
        assert not fast_config.state_file.exists()
