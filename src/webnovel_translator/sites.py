"""Chapter URL conventions of supported sites."""

import re
from typing import Callable

SYOSETU = "syosetu"

_SYOSETU_SERIES_ID = re.compile(r"ncode\.syosetu\.com/(n\d+[a-zA-Z]+)")


def _syosetu_chapter_url(series_url: str, chapter_number: int) -> str:
    return f"{series_url.rstrip('/')}/{chapter_number}/"


SITE_URL_BUILDERS: dict[str, Callable[[str, int], str]] = {
    SYOSETU: _syosetu_chapter_url,
}


def supported_sites() -> list[str]:
    return sorted(SITE_URL_BUILDERS)


def build_chapter_url(site: str, series_url: str, chapter_number: int) -> str:
    """Chapter URL for a series on a supported site.

    Raises:
        ValueError: Unknown site or chapter number below 1
    """
    builder = SITE_URL_BUILDERS.get(site)
    if builder is None:
        raise ValueError(f"Unsupported site: {site}")
    if chapter_number < 1:
        raise ValueError(f"Chapter number must be at least 1, got {chapter_number}")
    return builder(series_url, chapter_number)


def build_chapter_urls(site: str, series_url: str, start: int, count: int) -> list[str]:
    return [build_chapter_url(site, series_url, start + i) for i in range(count)]


def series_identifier(series_url: str) -> str:
    """Short series id (e.g. ``n5547eo``) for status lines, the URL when unknown."""
    match = _SYOSETU_SERIES_ID.search(series_url)
    return match.group(1) if match else series_url
