"""sqlite-vec virtual table management for item embeddings."""

from __future__ import annotations

import re
import sqlite3

DISTANCE_METRICS = ("cosine", "l2", "l1")


def vec_table_name(name: str = "items") -> str:
    """Return the full vec table name for *name*."""
    return f"vec_{name}"


def ensure_vec_table(
    conn: sqlite3.Connection,
    table: str,
    dimensions: int,
    metric: str = "cosine",
) -> str:
    """Create the *table* vec0 virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        table: Table name; lowercase letters, digits and underscores only.
        dimensions: Embedding vector dimensions.
        metric: vec0 distance metric (cosine, l2 or l1).

    Returns:
        The table name.
    """
    if not re.fullmatch(r"[a-z0-9_]+", table):
        raise ValueError(f"Invalid vec table name '{table}'")
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    if metric not in DISTANCE_METRICS:
        raise ValueError(f"metric must be one of {DISTANCE_METRICS}, got '{metric}'")

    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0("
            f"embedding float[{dimensions}] distance_metric={metric})"
        )
        conn.commit()

    return table
