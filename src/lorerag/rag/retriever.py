"""Category-filtered dense retrieval over the lore index.

Pipeline for ``retrieve(text, k)``:
  1. Reject malformed requests (negative k) before any work.
  2. Detect a category hint from the query text.
  3. Embed the query with the same embedder used at load.
  4. Ask the index for k neighbours, or ceil(k * overfetch_factor) when a
     category filter is active (the index itself is filter-agnostic).
  5. Keep hits of the hinted category, drop duplicate ids, truncate to k.

Fewer than k hits after filtering is a normal outcome, not an error.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

from lorerag.db.index import VectorIndex
from lorerag.errors import QueryError
from lorerag.models import Category, Item
from lorerag.rag.detector import CategoryDetector
from lorerag.rag.embedder import Embedder

logger = logging.getLogger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for the retriever.

    Attributes:
        top_k: Default number of items to return.
        overfetch_factor: Multiplier on k for the pre-filter candidate pool.
    """

    top_k: int = 3
    overfetch_factor: float = 3.0


@dataclass
class ScoredItem:
    """A retrieved item with its similarity score and 1-based rank."""

    item: Item
    score: float
    rank: int


@dataclass
class QueryResult:
    query: str
    category: Category | None = None
    hits: list[ScoredItem] = field(default_factory=list)

    @property
    def items(self) -> list[Item]:
        return [hit.item for hit in self.hits]

    def __len__(self) -> int:
        return len(self.hits)


def check_request(text: object, k: object) -> None:
    """Raise QueryError unless *text* is a string and *k* a non-negative int."""
    if not isinstance(text, str):
        raise QueryError(f"Query text must be a string, got {type(text).__name__}")
    if not isinstance(k, int) or isinstance(k, bool):
        raise QueryError(f"k must be an integer, got {type(k).__name__}")
    if k < 0:
        raise QueryError(f"k must be >= 0, got {k}")


def retrieve(
    text: str,
    k: int,
    corpus: Sequence[Item],
    index: VectorIndex,
    embedder: Embedder,
    detector: CategoryDetector,
    config: RetrieverConfig,
) -> QueryResult:
    """Return up to *k* items of *corpus* most similar to *text*, best first.

    *corpus* must be indexed by item id (``corpus[i].id == i``), which is how
    the parser numbers items.

    Raises:
        QueryError: If the request is malformed.
        EmbeddingError: If the query cannot be embedded.
    """
    check_request(text, k)
    category = detector.detect(text)
    if k == 0 or not corpus:
        return QueryResult(query=text, category=category)

    query_vector = embedder.embed(text)
    fetch_k = _fetch_size(k, category, config.overfetch_factor)
    search = index.search(query_vector, fetch_k)

    hits: list[ScoredItem] = []
    seen: set[int] = set()
    for neighbor in search.hits:
        if neighbor.id in seen or not 0 <= neighbor.id < len(corpus):
            continue
        item = corpus[neighbor.id]
        if category is not None and item.category != category:
            continue
        seen.add(neighbor.id)
        hits.append(ScoredItem(item=item, score=neighbor.score, rank=len(hits) + 1))
        if len(hits) == k:
            break

    logger.debug(
        "Query %r: filter=%s fetched=%d kept=%d exhausted=%s truncated=%s",
        text,
        category.value if category else None,
        len(search.hits),
        len(hits),
        search.exhausted,
        search.truncated,
    )
    return QueryResult(query=text, category=category, hits=hits)


def _fetch_size(k: int, category: Category | None, overfetch_factor: float) -> int:
    if category is None:
        return k
    return max(k, math.ceil(k * overfetch_factor))
