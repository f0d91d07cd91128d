"""Tests for translation payload extraction."""

from webnovel_translator.translator.markers import (
    extract_translation,
    looks_like_chapter,
    recover_from_title_line,
)
from webnovel_translator.translator.outcome import (
    AmbiguousSuccess,
    FaultKind,
    RecoverableFailure,
    Success,
)


class TestExtractTranslation:
    """Tests for extract_translation."""

    def test_primary_markers(self):
        """Text between the sentinels is returned trimmed."""
        raw = "Preamble\n***TRANSLATION_START***\n  Title [chapter: 1]\nBody  \n***TRANSLATION_END***\ntrailer"
        outcome = extract_translation(raw)
        assert outcome == Success("Title [chapter: 1]\nBody")

    def test_alternative_markers(self):
        """Alternative sentinel spellings are accepted."""
        outcome = extract_translation("{{start}}\nHello\n{{end}}")
        assert outcome == Success("Hello")

    def test_markers_case_insensitive(self):
        """Sentinels match regardless of case."""
        outcome = extract_translation("***translation_start***Hi***Translation_End***")
        assert outcome == Success("Hi")

    def test_last_end_marker_wins(self):
        """The payload runs to the last end marker."""
        raw = "***TRANSLATION_START***\nA\n***TRANSLATION_END***\nB\n***TRANSLATION_END***"
        outcome = extract_translation(raw)
        assert isinstance(outcome, Success)
        assert outcome.text.startswith("A")
        assert outcome.text.endswith("B")

    def test_empty_payload(self):
        """Markers around nothing is a non-retryable failure."""
        outcome = extract_translation("***TRANSLATION_START***\n   \n***TRANSLATION_END***")
        assert isinstance(outcome, RecoverableFailure)
        assert outcome.fault == FaultKind.EMPTY_CONTENT
        assert outcome.fault.is_terminal

    def test_missing_start_recovered_from_title(self):
        """A dropped start marker is recovered from the chapter title line."""
        raw = (
            "Sure, here it is.\n"
            "The Crimson Contract [chapter: 214]\n"
            "Body text\n"
            "***TRANSLATION_END***"
        )
        outcome = extract_translation(raw)
        assert outcome == Success("The Crimson Contract [chapter: 214]\nBody text")

    def test_start_word_in_prose_ignored(self):
        """A loose "start:" inside a sentence is not taken as the start marker."""
        raw = (
            "Let me start: here it is.\n"
            "Title [chapter: 3]\n"
            "Body text.\n"
            "***TRANSLATION_END***"
        )
        outcome = extract_translation(raw)
        assert outcome == Success("Title [chapter: 3]\nBody text.")

    def test_start_word_at_line_start(self):
        """The loose variants still count at the start of a line."""
        outcome = extract_translation("Sure.\n  START:\nHello\nEND:")
        assert outcome == Success("Hello")

    def test_missing_start_without_title_is_ambiguous(self):
        """Long text with only an end marker and no title goes to review."""
        raw = "x" * 150 + "\n***TRANSLATION_END***"
        outcome = extract_translation(raw, min_length=100)
        assert isinstance(outcome, AmbiguousSuccess)
        assert outcome.raw_text == raw

    def test_no_markers_chapter_like(self):
        """Marker-less text with a chapter tag is ambiguous, never accepted."""
        raw = "A Title [chapter: 3]\nShort body."
        outcome = extract_translation(raw)
        assert isinstance(outcome, AmbiguousSuccess)

    def test_no_markers_not_chapter_like(self):
        """Short marker-less chatter is a non-retryable failure."""
        outcome = extract_translation("I will translate this now.")
        assert isinstance(outcome, RecoverableFailure)
        assert outcome.fault == FaultKind.MISSING_MARKERS


class TestHelpers:
    """Tests for the marker helpers."""

    def test_looks_like_chapter_by_length(self):
        """Length above the threshold counts as chapter-like."""
        assert looks_like_chapter("a" * 101, min_length=100)
        assert not looks_like_chapter("a" * 100, min_length=100)

    def test_looks_like_chapter_by_tag(self):
        """A chapter tag counts regardless of length."""
        assert looks_like_chapter("[Chapter: 7]")

    def test_recover_without_title(self):
        """No title line means nothing to recover."""
        assert recover_from_title_line("just some text") is None
