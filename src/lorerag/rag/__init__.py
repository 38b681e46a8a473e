"""Lore retrieval — embedding, category detection, search and context assembly."""

from lorerag.rag.assembler import AssemblerConfig, assemble
from lorerag.rag.detector import DEFAULT_KEYWORDS, CategoryDetector
from lorerag.rag.embedder import Embedder, LiteLLMEmbedder
from lorerag.rag.retriever import QueryResult, RetrieverConfig, ScoredItem, retrieve

__all__ = [
    "AssemblerConfig",
    "CategoryDetector",
    "DEFAULT_KEYWORDS",
    "Embedder",
    "LiteLLMEmbedder",
    "QueryResult",
    "RetrieverConfig",
    "ScoredItem",
    "assemble",
    "retrieve",
]
