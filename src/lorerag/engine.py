"""LoreEngine — owns the embedder, the corpus and its index.

Lifecycle:
  1. ``LoreEngine(config)`` validates config and sets up the embedder.
  2. ``load(source)`` parses, embeds every item in bulk and builds a fresh
     index. Corpus and index are swapped in together only after all three
     steps succeed, so a failed load leaves the previous corpus queryable.
  3. ``query(text, k)`` returns assembled context text and never mutates
     engine state, so it is safe from several reader threads at once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from lorerag.config import LoreConfig, validate_config
from lorerag.db.index import IndexParams, VectorIndex, create_index
from lorerag.errors import ConfigError, EmbeddingError, LoadError
from lorerag.ingest.parser import LoreParser, ParseResult
from lorerag.models import Item, LoreStats
from lorerag.rag.assembler import AssemblerConfig, assemble
from lorerag.rag.detector import CategoryDetector
from lorerag.rag.embedder import Embedder, LiteLLMEmbedder
from lorerag.rag.retriever import QueryResult, RetrieverConfig, retrieve

logger = logging.getLogger(__name__)

IndexFactory = Callable[[int, IndexParams], VectorIndex]


@dataclass(frozen=True)
class _Corpus:
    """Items and the index built from them; always replaced as one unit."""

    items: tuple[Item, ...]
    index: VectorIndex


class LoreEngine:
    """Retrieval engine over a single lore document.

    Args:
        config: Engine configuration. Defaults to ``LoreConfig()``.
        embedder: Embedding backend. Defaults to a ``LiteLLMEmbedder`` built
            from ``config.embedding``.
        index_factory: ``(dimension, params) -> VectorIndex``. Defaults to the
            backend named by ``config.index.backend``.

    Raises:
        ConfigError: If the config is invalid or the embedder's dimension
            does not match ``config.embedding.dimension``.
    """

    def __init__(
        self,
        config: LoreConfig | None = None,
        *,
        embedder: Embedder | None = None,
        index_factory: IndexFactory | None = None,
    ) -> None:
        self.config = validate_config(config or LoreConfig())
        emb = self.config.embedding

        self._embedder = embedder or LiteLLMEmbedder(
            model=emb.model, dimension=emb.dimension, batch_size=emb.batch_size
        )
        if self._embedder.dimension != emb.dimension:
            raise ConfigError(
                f"Embedder produces {self._embedder.dimension}-dimensional vectors but "
                f"embedding.dimension is {emb.dimension}"
            )

        self._index_factory: IndexFactory = index_factory or (
            lambda dimension, params: create_index(self.config.index.backend, dimension, params)
        )
        self._parser = LoreParser(self.config.categories.containers)
        self._detector = CategoryDetector(self.config.categories.keywords)
        self._retriever_cfg = RetrieverConfig(
            top_k=self.config.retrieval.top_k,
            overfetch_factor=self.config.retrieval.overfetch_factor,
        )
        self._assembler_cfg = AssemblerConfig(
            separator=self.config.context.separator,
            show_scores=self.config.context.show_scores,
            show_filter=self.config.context.show_filter,
        )

        self._load_lock = threading.Lock()
        self._corpus = _Corpus(items=(), index=self._new_index())
        self._loaded = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[Item, ...]:
        return self._corpus.items

    @property
    def embedding_dimension(self) -> int:
        return self._embedder.dimension

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def stats(self) -> LoreStats:
        return LoreStats.from_items(self._corpus.items)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, source: Path | str | bytes | dict[str, Any] | list[Any]) -> ParseResult:
        """Replace the corpus with the lore in *source*.

        *source* is a ``Path`` to a JSON file, JSON text (``str``/``bytes``),
        or an already-decoded JSON value. Plain string paths must be wrapped
        in ``Path``.

        Returns:
            The parse result, including diagnostics for skipped candidates.

        Raises:
            LoadError: If the file cannot be read.
            ParseError: If the document is not valid JSON.
            EmbeddingError: If any item fails to embed.
            VectorIndexError: If the index cannot be built.
        """
        if isinstance(source, Path):
            return self.load_file(source)
        if isinstance(source, (str, bytes, bytearray)):
            return self.load_json(source)
        return self.load_document(source)

    def load_file(self, path: Path | str) -> ParseResult:
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise LoadError(f"Error reading lore file '{path}': {exc}") from exc
        logger.info("Loading lore from %s", path)
        return self._replace_corpus(lambda: self._parser.parse_json(content))

    def load_json(self, content: str | bytes) -> ParseResult:
        return self._replace_corpus(lambda: self._parser.parse_json(content))

    def load_document(self, document: Any) -> ParseResult:
        return self._replace_corpus(lambda: self._parser.parse(document))

    def _replace_corpus(self, parse: Callable[[], ParseResult]) -> ParseResult:
        with self._load_lock:
            result = parse()
            items = self._embed_items(result.items)

            index = self._new_index()
            index.build([(item.id, item.embedding) for item in items])

            previous, self._corpus = self._corpus, _Corpus(items=tuple(items), index=index)
            self._loaded = True
            result.items = items
            previous.index.close()

        stats = LoreStats.from_items(items)
        logger.info("Indexed %d items %s", stats.total_items, stats.category_counts)
        if not items:
            logger.warning("Loaded document contains no lore items; queries will return nothing")
        for diagnostic in result.diagnostics:
            logger.debug("Parse diagnostic: %s", diagnostic)
        return result

    def _embed_items(self, items: list[Item]) -> list[Item]:
        if not items:
            return []
        vectors = self._embedder.embed_batch([item.text for item in items])
        if len(vectors) != len(items):
            raise EmbeddingError(
                f"Embedder returned {len(vectors)} vectors for {len(items)} items"
            )
        return [item.with_embedding(vector) for item, vector in zip(items, vectors)]

    def _new_index(self) -> VectorIndex:
        return self._index_factory(self._embedder.dimension, self.config.index.params())

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def retrieve(self, text: str, k: int | None = None) -> QueryResult:
        """Return the ranked items for *text* without rendering them.

        Raises:
            QueryError: If *text* is not a string or *k* is negative.
            EmbeddingError: If the query cannot be embedded.
        """
        k = self._retriever_cfg.top_k if k is None else k
        corpus = self._corpus
        return retrieve(
            text,
            k,
            corpus.items,
            corpus.index,
            self._embedder,
            self._detector,
            self._retriever_cfg,
        )

    def query(self, text: str, k: int | None = None) -> str:
        """Return context text for the *k* items most relevant to *text*.

        *k* defaults to ``retrieval.top_k``. ``k == 0`` or an empty corpus
        yields ``""``.
        """
        return assemble(self.retrieve(text, k), self._assembler_cfg)
