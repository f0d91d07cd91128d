"""Plain translated text to XHTML fragments for the EPUB."""

import re
from typing import Optional
from xml.sax.saxutils import escape

from pydantic import BaseModel

from webnovel_translator.glossary.models import Character, GlossaryCollection
from webnovel_translator.translator.prompts import CHAPTER_TAG_PATTERN

EMPTY_CONTENT_HTML = "<p>No content available.</p>"
SCENE_BREAK_HTML = '<div class="scene-break">***</div>'

# Title line is looked for in the first lines, source URL in the last lines
EDGE_LINES = 5

_BLANK_LINE = re.compile(r"\n[ \t]*\n")
_SCENE_BREAK = re.compile(r"^[*\-=]{3,}$")
_EMPHASIS = re.compile(r"\*([^*\n]+)\*")
_URL_LINE = re.compile(r"^https?://\S+$")

DIALOGUE_OPENERS = ('"', "“", "「", "『")
DIALOGUE_CLOSERS = ('"', "”", "」", "』")


class ChapterContent(BaseModel):
    """A chapter ready for the book assembler."""

    chapter_number: int
    title: str
    body_html: str
    source_url: Optional[str] = None


def is_scene_break(line: str) -> bool:
    stripped = line.strip()
    return stripped == "* * *" or bool(_SCENE_BREAK.match(stripped))


def _is_dialogue(line: str) -> bool:
    return line.startswith(DIALOGUE_OPENERS)


def group_lines(text: str) -> list[str]:
    """Group lines into paragraphs when the text has no blank-line structure.

    A new paragraph starts at a dialogue line and after a scene break.
    A dialogue line that closes its quote ends its paragraph.
    """
    paragraphs: list[str] = []
    current: list[str] = []

    def flush() -> None:
        if current:
            paragraphs.append("\n".join(current))
            current.clear()

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            flush()
            continue
        if is_scene_break(line):
            flush()
            paragraphs.append(line)
            continue
        if _is_dialogue(line):
            flush()
        current.append(line)
        if _is_dialogue(line) and line.endswith(DIALOGUE_CLOSERS):
            flush()

    flush()
    return paragraphs


def _split_at_scene_breaks(paragraph: str) -> list[str]:
    """Break a paragraph apart at scene-break lines, keeping the breaks as their own blocks."""
    parts: list[str] = []
    current: list[str] = []
    for line in paragraph.split("\n"):
        if is_scene_break(line):
            if current:
                parts.append("\n".join(current))
                current = []
            parts.append(line.strip())
        else:
            current.append(line)
    if current:
        parts.append("\n".join(current))
    return parts


def split_paragraphs(text: str) -> list[str]:
    """Blank-line delimited paragraphs, falling back to line grouping."""
    paragraphs = _BLANK_LINE.split(text)
    if len(paragraphs) == 1:
        return group_lines(text)
    return [part for paragraph in paragraphs for part in _split_at_scene_breaks(paragraph)]


def _paragraph_html(paragraph: str) -> str:
    lines = [escape(line.strip()) for line in paragraph.strip().split("\n")]
    body = "<br/>\n".join(line for line in lines if line)
    body = _EMPHASIS.sub(r"<em>\1</em>", body)
    return f"<p>{body}</p>"


def text_to_html(text: str) -> str:
    """Convert translated plain text into paragraph markup.

    Args:
        text: Chapter body text

    Returns:
        XHTML fragment, never empty
    """
    if not text or not text.strip():
        return EMPTY_CONTENT_HTML

    text = text.replace("\r\n", "\n")
    blocks = []
    for paragraph in split_paragraphs(text):
        stripped = paragraph.strip()
        if not stripped:
            continue
        if is_scene_break(stripped):
            blocks.append(SCENE_BREAK_HTML)
        else:
            blocks.append(_paragraph_html(stripped))

    return "\n".join(blocks) if blocks else EMPTY_CONTENT_HTML


def extract_chapter_content(chapter_number: int, translated_text: str) -> ChapterContent:
    """Split a stored translation into title, body markup and source URL.

    The title comes from a ``[chapter: N]`` line near the top, the source
    URL line near the bottom is dropped from the body.
    """
    lines = translated_text.replace("\r\n", "\n").split("\n")
    non_empty = [index for index, line in enumerate(lines) if line.strip()]

    if not non_empty:
        return ChapterContent(
            chapter_number=chapter_number,
            title=f"Chapter {chapter_number}",
            body_html=EMPTY_CONTENT_HTML,
        )

    title = f"Chapter {chapter_number}"
    body_start = 0
    for index in non_empty[:EDGE_LINES]:
        if CHAPTER_TAG_PATTERN.search(lines[index]):
            heading = CHAPTER_TAG_PATTERN.sub("", lines[index]).strip()
            if heading:
                title = f"{heading} - Chapter {chapter_number}"
            body_start = index + 1
            break

    source_url = None
    body_end = len(lines)
    for index in reversed(non_empty[-EDGE_LINES:]):
        if index < body_start:
            break
        if _URL_LINE.match(lines[index].strip()):
            source_url = lines[index].strip()
            body_end = index
            break

    body = "\n".join(lines[body_start:body_end])
    return ChapterContent(
        chapter_number=chapter_number,
        title=title,
        body_html=text_to_html(body),
        source_url=source_url,
    )


def _character_html(char: Character) -> str:
    name = escape(char.english_name)
    if char.japanese_name and char.japanese_name != char.english_name:
        name += f' <span class="source-name">({escape(char.japanese_name)})</span>'

    details = []
    if char.age:
        details.append(f"<strong>Age:</strong> {escape(char.age)}")
    if char.physical_appearance:
        details.append(f"<strong>Appearance:</strong> {escape(char.physical_appearance)}")

    parts = ['<div class="character-entry">', f"<h4>{name}</h4>"]
    if details:
        parts.append(f'<p class="character-details">{" • ".join(details)}</p>')
    parts.append(f'<p class="character-description">{escape(char.description)}</p>')
    parts.append("</div>")
    return "\n".join(parts)


def glossary_to_html(collection: Optional[GlossaryCollection]) -> str:
    """Character glossary section, sorted by importance then English name."""
    characters = collection.all_characters() if collection else []
    if not characters:
        return "<p>No character glossary available.</p>"

    entries = "\n".join(_character_html(char) for char in sorted(characters, key=Character.sort_key))
    chapter_range = collection.total_chapter_range
    return f"""<div class="glossary">
<h2 class="glossary-title">Character Glossary</h2>
<div class="glossary-summary">
<p><strong>{escape(collection.series_name)}</strong></p>
<p>Chapters {chapter_range.start}–{chapter_range.end} • {len(characters)} characters</p>
</div>
<div class="characters-list">
{entries}
</div>
</div>"""
