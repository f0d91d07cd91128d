"""Encoding detection for Japanese web pages."""

import codecs
import re
from typing import Optional

import chardet

# Aliases seen in Japanese page headers, mapped to the codec Python should use.
# The Windows code page is a superset of plain Shift_JIS.
_ALIASES = {
    "shift_jis": "cp932",
    "shift-jis": "cp932",
    "sjis": "cp932",
    "x-sjis": "cp932",
    "windows-31j": "cp932",
    "ms_kanji": "cp932",
    "euc-jp": "euc_jp",
    "x-euc-jp": "euc_jp",
    "iso-2022-jp": "iso2022_jp",
}

_FALLBACKS = ("utf-8", "cp932", "euc_jp", "latin-1")

_META_CHARSET = re.compile(rb"""<meta[^>]+charset\s*=\s*["']?\s*([A-Za-z0-9_\-]+)""", re.IGNORECASE)


def normalize_encoding(name: str) -> str:
    """Map a declared or detected encoding name to a Python codec name."""
    return _ALIASES.get(name.strip().lower(), name.strip().lower())


def declared_encoding(content: bytes) -> Optional[str]:
    """Encoding declared by a BOM or a <meta charset> tag near the top of the page."""
    if content.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    match = _META_CHARSET.search(content[:2048])
    if not match:
        return None
    name = normalize_encoding(match.group(1).decode("ascii", errors="ignore"))
    try:
        codecs.lookup(name)
    except LookupError:
        return None
    return name


def detect_encoding(content: bytes) -> str:
    """Detect the encoding of byte content.

    A declaration in the page wins; otherwise chardet guesses.

    Args:
        content: Raw bytes content

    Returns:
        Codec name (e.g., 'utf-8', 'cp932', 'euc_jp')
    """
    declared = declared_encoding(content)
    if declared:
        return declared

    guessed = chardet.detect(content).get("encoding")
    return normalize_encoding(guessed) if guessed else "utf-8"


def decode_content(content: bytes, encoding: Optional[str] = None) -> str:
    """Decode byte content, trying the usual Japanese encodings on failure.

    Args:
        content: Raw bytes content
        encoding: Optional explicit encoding, auto-detect if None

    Returns:
        Decoded string content
    """
    encoding = normalize_encoding(encoding) if encoding else detect_encoding(content)

    for candidate in (encoding, *_FALLBACKS):
        try:
            return content.decode(candidate)
        except (UnicodeDecodeError, LookupError):
            continue

    return content.decode("utf-8", errors="replace")
