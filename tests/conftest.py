"""Shared pytest fixtures."""

from __future__ import annotations

import math
import re
from typing import Sequence

import pytest

from lorerag.config import LoreConfig
from lorerag.engine import LoreEngine
from lorerag.rag.embedder import Embedder

TEST_DIMENSION = 512

SAMPLE_LORE = {
    "worlds": [
        {
            "name": "Aetheria",
            "description": "A world of floating islands and storms.",
            "regions": [
                {
                    "name": "North",
                    "description": "Frozen highlands under endless winter.",
                    "locations": [
                        {"name": "Frosthold", "description": "A fortress carved in ice."}
                    ],
                    "characters": [
                        {
                            "name": "Arion",
                            "description": "The exiled monarch of the highlands.",
                            "title": "Storm Warden",
                        }
                    ],
                },
                {
                    "name": "Sunreach",
                    "description": "Golden deserts along the southern coast.",
                    "characters": [
                        {"name": "Lyssa", "description": "A desert scout and cartographer."}
                    ],
                },
            ],
            "factions": [
                {"name": "Ember Circle", "description": "Mages who guard the old flames."}
            ],
            "events": [
                {"name": "Sundering", "description": "The cataclysm that split the continent."}
            ],
        }
    ]
}


class VocabularyEmbedder(Embedder):
    """Deterministic bag-of-words embedder for tests.

    Each distinct lowercase word gets its own slot (slot 0 is reserved for
    the empty text), so unrelated texts never share a dimension.
    """

    def __init__(self, dimension: int = TEST_DIMENSION) -> None:
        super().__init__(dimension)
        self._slots: dict[str, int] = {}
        self.calls: list[list[str]] = []

    def _slot(self, word: str) -> int:
        if word not in self._slots:
            self._slots[word] = 1 + len(self._slots) % (self.dimension - 1)
        return self._slots[word]

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        words = re.findall(r"\w+", text.casefold())
        if not words:
            vector[0] = 1.0
            return vector
        for word in words:
            vector[self._slot(word)] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]


@pytest.fixture(autouse=True)
def _clear_lorerag_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("LORERAG_EMBEDDING_MODEL", "LORERAG_EMBEDDING_DIMENSION", "LORERAG_INDEX_BACKEND"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sample_lore() -> dict:
    return SAMPLE_LORE


@pytest.fixture
def embedder() -> VocabularyEmbedder:
    return VocabularyEmbedder()


@pytest.fixture
def test_config() -> LoreConfig:
    cfg = LoreConfig()
    cfg.embedding.dimension = TEST_DIMENSION
    return cfg


@pytest.fixture
def engine(test_config: LoreConfig, embedder: VocabularyEmbedder) -> LoreEngine:
    """Engine over the sqlite-vec backend with the vocabulary embedder."""
    return LoreEngine(test_config, embedder=embedder)


@pytest.fixture
def loaded_engine(engine: LoreEngine, sample_lore: dict) -> LoreEngine:
    engine.load(sample_lore)
    return engine
