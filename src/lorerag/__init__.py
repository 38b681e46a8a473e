"""lorerag — retrieval over hierarchical narrative lore.

Example:
    from pathlib import Path
    from lorerag import LoreEngine, load_config

    engine = LoreEngine(load_config())
    engine.load(Path("lore.json"))
    print(engine.query("Who are the important characters?", 3))
"""

from lorerag.config import LoreConfig, load_config, validate_config
from lorerag.engine import LoreEngine
from lorerag.errors import (
    ConfigError,
    EmbeddingError,
    LoadError,
    LoreRagError,
    ParseError,
    QueryError,
    VectorIndexError,
)
from lorerag.models import Category, Item, LoreStats

__all__ = [
    "Category",
    "ConfigError",
    "EmbeddingError",
    "Item",
    "LoadError",
    "LoreConfig",
    "LoreEngine",
    "LoreRagError",
    "LoreStats",
    "ParseError",
    "QueryError",
    "VectorIndexError",
    "load_config",
    "validate_config",
]
