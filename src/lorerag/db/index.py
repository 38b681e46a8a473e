"""Vector index interface and the sqlite-vec backend.

Every backend builds once from ``(id, vector)`` pairs and answers top-k
similarity queries. Results are ordered by decreasing similarity, ties broken
by ascending id, so equal-scoring items always come back in document order.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Sequence

from lorerag.db.connection import Database
from lorerag.db.vectors import ensure_vec_table, vec_table_name
from lorerag.errors import ConfigError, VectorIndexError

logger = logging.getLogger(__name__)

BACKENDS = ("sqlite-vec", "hnsw")

# sqlite-vec refuses KNN queries with k above this.
_VEC0_K_MAX = 4096


@dataclass
class IndexParams:
    """Recall/speed tunables for graph-based backends.

    Attributes:
        max_connections: Neighbour links per node (HNSW ``M``).
        max_layer: Upper bound on graph layers.
        ef_construction: Candidate list size while building.
        ef_search: Candidate list size while searching.
    """

    max_connections: int = 16
    max_layer: int = 16
    ef_construction: int = 200
    ef_search: int = 64

    def validate(self) -> None:
        for name in ("max_connections", "max_layer", "ef_construction", "ef_search"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"index.{name} must be an integer >= 1, got {value!r}")


@dataclass(frozen=True)
class Neighbor:
    id: int
    score: float


@dataclass
class SearchResult:
    """Top-k hits plus explicit markers for short results.

    Attributes:
        hits: Neighbours, best first.
        requested: The k that was asked for.
        exhausted: True when every indexed vector was returned because k
            reached or exceeded the index size.
        truncated: True when a backend limit returned fewer hits than
            min(k, size).
    """

    hits: list[Neighbor] = field(default_factory=list)
    requested: int = 0
    exhausted: bool = False
    truncated: bool = False

    @classmethod
    def ranked(
        cls, hits: list[Neighbor], requested: int, size: int, limit: int | None = None
    ) -> SearchResult:
        """Order *hits* by (-score, id) and keep the first *requested*.

        *limit* is the most hits the backend could return; below
        ``min(requested, size)`` the result is marked truncated.
        """
        ordered = sorted(hits, key=lambda h: (-h.score, h.id))[:requested]
        wanted = min(requested, size)
        truncated = limit is not None and limit < wanted
        return cls(
            hits=ordered,
            requested=requested,
            exhausted=requested >= size and not truncated,
            truncated=truncated,
        )


class VectorIndex(ABC):
    """Abstract base for nearest-neighbour backends.

    Subclasses implement ``build()``, ``search()`` and ``__len__()`` and use
    ``_check_entries()`` / ``_check_query()`` for input validation.
    """

    def __init__(self, dimension: int, params: IndexParams | None = None) -> None:
        if not isinstance(dimension, int) or dimension < 1:
            raise ConfigError(f"Index dimension must be an integer >= 1, got {dimension!r}")
        self.dimension = dimension
        self.params = params or IndexParams()
        self.params.validate()

    @abstractmethod
    def build(self, entries: Sequence[tuple[int, Sequence[float]]]) -> None:
        """Replace the index contents with *entries*.

        Raises:
            VectorIndexError: On duplicate ids or vectors of the wrong length.
        """

    @abstractmethod
    def search(self, vector: Sequence[float], k: int) -> SearchResult:
        """Return at most *k* nearest neighbours of *vector*."""

    @abstractmethod
    def __len__(self) -> int: ...

    def close(self) -> None:
        """Release backend resources. The index is empty afterwards."""

    def _check_entries(
        self, entries: Sequence[tuple[int, Sequence[float]]]
    ) -> list[tuple[int, list[float]]]:
        checked: list[tuple[int, list[float]]] = []
        seen: set[int] = set()
        for item_id, vector in entries:
            if item_id in seen:
                raise VectorIndexError(f"Duplicate id {item_id} in index build")
            if len(vector) != self.dimension:
                raise VectorIndexError(
                    f"Vector for id {item_id} has {len(vector)} dimensions, "
                    f"index expects {self.dimension}"
                )
            seen.add(item_id)
            checked.append((item_id, [float(v) for v in vector]))
        return checked

    def _check_query(self, vector: Sequence[float], k: int) -> None:
        if k < 0:
            raise VectorIndexError(f"k must be >= 0, got {k}")
        if len(vector) != self.dimension:
            raise VectorIndexError(
                f"Query vector has {len(vector)} dimensions, index expects {self.dimension}"
            )


class SqliteVecIndex(VectorIndex):
    """In-memory sqlite-vec index using cosine distance.

    vec0 performs an exhaustive KNN scan, so the graph tunables in
    ``IndexParams`` are validated but do not change results.
    """

    def __init__(self, dimension: int, params: IndexParams | None = None) -> None:
        super().__init__(dimension, params)
        self._table = vec_table_name("items")
        self._conn: sqlite3.Connection | None = None
        self._size = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._size

    def build(self, entries: Sequence[tuple[int, Sequence[float]]]) -> None:
        checked = self._check_entries(entries)
        conn = Database(check_same_thread=False).connect()
        try:
            ensure_vec_table(conn, self._table, self.dimension, metric="cosine")
            # vec0 rowids are offset by one so that item id 0 stays a positive rowid.
            conn.executemany(
                f"INSERT INTO {self._table}(rowid, embedding) VALUES (?, ?)",
                [(item_id + 1, json.dumps(vector)) for item_id, vector in checked],
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.close()
            raise VectorIndexError(f"sqlite-vec index build failed: {exc}") from exc

        with self._lock:
            previous, self._conn, self._size = self._conn, conn, len(checked)
        if previous is not None:
            previous.close()
        logger.debug("Built sqlite-vec index with %d vectors", self._size)

    def search(self, vector: Sequence[float], k: int) -> SearchResult:
        self._check_query(vector, k)
        if k == 0 or self._size == 0 or self._conn is None:
            return SearchResult(requested=k, exhausted=k >= self._size)

        query = json.dumps([float(v) for v in vector])
        cap = min(self._size, _VEC0_K_MAX)
        limit = min(k, cap)
        hits = fetch_with_ties(lambda count: self._knn(query, count), limit, cap)
        if limit < min(k, self._size):
            logger.warning(
                "sqlite-vec returns at most %d neighbours; %d requested from %d vectors",
                _VEC0_K_MAX,
                k,
                self._size,
            )
        return SearchResult.ranked(hits, k, self._size, limit=limit)

    def _knn(self, query: str, count: int) -> list[Neighbor]:
        try:
            with self._lock:
                if self._conn is None:
                    return []
                rows = self._conn.execute(
                    f"SELECT rowid, distance FROM {self._table} "
                    "WHERE embedding MATCH ? AND k = ? ORDER BY distance",
                    (query, count),
                ).fetchall()
        except sqlite3.Error as exc:
            raise VectorIndexError(f"sqlite-vec search failed: {exc}") from exc
        return [
            Neighbor(id=row["rowid"] - 1, score=_cosine_similarity(row["distance"]))
            for row in rows
        ]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._size = 0


def fetch_with_ties(
    fetch: Callable[[int], list[Neighbor]], limit: int, cap: int
) -> list[Neighbor]:
    """Call *fetch* for *limit* neighbours, widening while the cutoff is a tie.

    Backends return tied neighbours in arbitrary order, so when the last
    fetched score equals the *limit*-th score some tied ids may be missing.
    The fetch doubles (up to *cap*) until the tie is fully inside the window.
    *fetch* must return neighbours best first.
    """
    count = limit
    while True:
        hits = fetch(count)
        if len(hits) < count or count >= cap or hits[-1].score != hits[limit - 1].score:
            return hits
        count = min(count * 2, cap)


def _cosine_similarity(distance: float | None) -> float:
    # Zero vectors have no direction; sqlite-vec reports them as NULL/NaN.
    if distance is None or math.isnan(distance):
        return 0.0
    return 1.0 - float(distance)


def create_index(backend: str, dimension: int, params: IndexParams | None = None) -> VectorIndex:
    """Instantiate the index backend named *backend*.

    Raises:
        ConfigError: If *backend* is unknown.
    """
    if backend == "sqlite-vec":
        return SqliteVecIndex(dimension, params)
    if backend == "hnsw":
        # Optional extra: pip install lore-rag[hnsw]
        from lorerag.db.hnsw import FaissHnswIndex

        return FaissHnswIndex(dimension, params)
    raise ConfigError(f"Unknown index backend '{backend}'. Choose one of: {', '.join(BACKENDS)}")
