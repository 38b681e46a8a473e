"""Lore vector index layer."""

from lorerag.db.connection import Database
from lorerag.db.index import (
    BACKENDS,
    IndexParams,
    Neighbor,
    SearchResult,
    SqliteVecIndex,
    VectorIndex,
    create_index,
)
from lorerag.db.vectors import ensure_vec_table, vec_table_name

__all__ = [
    "BACKENDS",
    "Database",
    "IndexParams",
    "Neighbor",
    "SearchResult",
    "SqliteVecIndex",
    "VectorIndex",
    "create_index",
    "ensure_vec_table",
    "vec_table_name",
]
