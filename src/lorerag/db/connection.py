"""SQLite connection layer with the sqlite-vec extension."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

MEMORY = ":memory:"


class Database:
    """SQLite database with sqlite-vec vector search support.

    The lore index lives in memory by default; it is rebuilt on every load.
    """

    def __init__(self, db_path: Path | str = MEMORY, *, check_same_thread: bool = True) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file, or ``":memory:"``.
            check_same_thread: Passed to ``sqlite3.connect``. Set False when
                the connection is shared between reader threads behind a lock.
        """
        self.db_path = db_path if db_path == MEMORY else Path(db_path)
        self.check_same_thread = check_same_thread

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection."""
        conn = sqlite3.connect(self.db_path, check_same_thread=self.check_same_thread)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        return conn
