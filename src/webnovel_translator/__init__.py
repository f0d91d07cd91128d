"""Web novel translator: URL → LLM translation → character glossary → EPUB."""

__version__ = "0.3.0"
