"""FAISS HNSW backend (optional ``hnsw`` extra).

Vectors are L2-normalised and searched by inner product, so scores are
cosine similarities like the sqlite-vec backend. ``max_connections`` maps to
HNSW ``M``; ``ef_construction`` and ``ef_search`` map to the FAISS fields of
the same name. ``max_layer`` caps the level tables FAISS derives from ``M``,
so no node is assigned above layer ``max_layer - 1``.
"""

from __future__ import annotations

import logging
from typing import Sequence

import faiss
import numpy as np

from lorerag.db.index import IndexParams, Neighbor, SearchResult, VectorIndex, fetch_with_ties
from lorerag.errors import VectorIndexError

logger = logging.getLogger(__name__)


class FaissHnswIndex(VectorIndex):
    """Approximate nearest-neighbour index over a FAISS HNSW graph."""

    def __init__(self, dimension: int, params: IndexParams | None = None) -> None:
        super().__init__(dimension, params)
        self._index: faiss.Index | None = None
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def build(self, entries: Sequence[tuple[int, Sequence[float]]]) -> None:
        checked = self._check_entries(entries)
        if not checked:
            self._index, self._size = None, 0
            return

        ids = np.asarray([item_id for item_id, _ in checked], dtype="int64")
        vectors = np.asarray([vector for _, vector in checked], dtype="float32")
        faiss.normalize_L2(vectors)

        try:
            graph = faiss.IndexHNSWFlat(
                self.dimension, self.params.max_connections, faiss.METRIC_INNER_PRODUCT
            )
            graph.hnsw.efConstruction = self.params.ef_construction
            graph.hnsw.efSearch = self.params.ef_search
            _cap_levels(graph.hnsw, self.params.max_layer)
            index = faiss.IndexIDMap(graph)
            index.add_with_ids(vectors, ids)
        except RuntimeError as exc:
            raise VectorIndexError(f"FAISS HNSW build failed: {exc}") from exc

        self._index, self._size = index, len(checked)
        logger.debug(
            "Built HNSW index: %d vectors, M=%d, efConstruction=%d",
            self._size,
            self.params.max_connections,
            self.params.ef_construction,
        )

    def search(self, vector: Sequence[float], k: int) -> SearchResult:
        self._check_query(vector, k)
        if k == 0 or self._index is None:
            return SearchResult(requested=k, exhausted=k >= self._size)

        query = np.asarray([vector], dtype="float32")
        faiss.normalize_L2(query)
        limit = min(k, self._size)
        hits = fetch_with_ties(lambda count: self._knn(query, count), limit, self._size)
        return SearchResult.ranked(hits, k, self._size)

    def _knn(self, query: np.ndarray, count: int) -> list[Neighbor]:
        try:
            scores, ids = self._index.search(query, count)
        except RuntimeError as exc:
            raise VectorIndexError(f"FAISS HNSW search failed: {exc}") from exc
        return [
            Neighbor(id=int(item_id), score=float(score))
            for item_id, score in zip(ids[0], scores[0])
            if item_id != -1
        ]

    def close(self) -> None:
        self._index, self._size = None, 0


def _cap_levels(hnsw: faiss.HNSW, max_layer: int) -> None:
    # Random levels past the last entry of assign_probas fall on the top level.
    if hnsw.assign_probas.size() > max_layer:
        hnsw.assign_probas.resize(max_layer)
        hnsw.cum_nneighbor_per_level.resize(max_layer + 1)
