"""Error taxonomy for the lore engine.

Only whole-document or whole-corpus failures are raised. Structural oddities
inside a document (an object without a usable ``name``) are skipped by the
parser and reported as diagnostics instead.
"""

from __future__ import annotations


class LoreRagError(Exception):
    """Base class for every error raised by lorerag."""


class ConfigError(LoreRagError, ValueError):
    """Raised when configuration is invalid or inconsistent (fatal at construction)."""


class LoadError(LoreRagError):
    """Raised when a load call fails; the engine keeps its previous corpus."""


class ParseError(LoadError):
    """Raised when the input document is not valid JSON."""


class EmbeddingError(LoreRagError):
    """Raised when the embedding backend fails to produce vectors."""


class VectorIndexError(LoreRagError):
    """Raised when the vector index cannot be built or searched."""


class QueryError(LoreRagError, ValueError):
    """Raised for a malformed query, before any embedding or search work."""
