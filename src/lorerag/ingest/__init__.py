"""Lore ingest — JSON parsing into hierarchical Items."""

from lorerag.ingest.parser import (
    DEFAULT_CONTAINERS,
    Diagnostic,
    LoreParser,
    ParseResult,
)

__all__ = [
    "DEFAULT_CONTAINERS",
    "Diagnostic",
    "LoreParser",
    "ParseResult",
]
