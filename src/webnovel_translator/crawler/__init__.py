"""Crawler module for fetching chapter pages."""

from webnovel_translator.crawler.base import PageFetcher, extract_page_text

__all__ = ["PageFetcher", "extract_page_text"]
