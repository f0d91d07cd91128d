"""Sequential chapter translation pipeline."""

from webnovel_translator.pipeline.chapters import ChapterPipeline, ChapterRunResult

__all__ = ["ChapterPipeline", "ChapterRunResult"]
