"""Formatter module for turning translated text into book markup."""

from webnovel_translator.formatter.chapter import (
    ChapterContent,
    extract_chapter_content,
    glossary_to_html,
    text_to_html,
)

__all__ = ["ChapterContent", "extract_chapter_content", "glossary_to_html", "text_to_html"]
