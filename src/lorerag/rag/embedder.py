"""Embedder interface and the LiteLLM embedding backend.

All item and query vectors come from an ``Embedder``. The engine only relies
on ``embed``, ``embed_batch`` and ``dimension``, so any backend can be dropped
in. ``LiteLLMEmbedder`` routes through ``litellm.embedding()``; it performs no
retries, callers own retry policy.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Sequence

import litellm

from lorerag.errors import EmbeddingError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "huggingface": None,
}


class Embedder(ABC):
    """Deterministic text → fixed-length vector function.

    Subclasses implement ``embed_batch()``; ``embed()`` is the one-text case.
    ``embed_batch(texts)`` must return exactly what ``[embed(t) for t in texts]``
    would.
    """

    def __init__(self, dimension: int) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self.dimension = dimension

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    @abstractmethod
    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in order.

        Raises:
            EmbeddingError: If the backend fails for any text.
        """

    def _check_vectors(self, vectors: list[list[float]], expected: int) -> list[list[float]]:
        """Raise EmbeddingError unless *vectors* holds *expected* vectors of ``dimension``."""
        if len(vectors) != expected:
            raise EmbeddingError(
                f"Embedding backend returned {len(vectors)} vectors for {expected} texts"
            )
        for vector in vectors:
            if len(vector) != self.dimension:
                raise EmbeddingError(
                    f"Embedding backend returned a {len(vector)}-dimensional vector, "
                    f"expected {self.dimension}. Check embedding.dimension in lorerag.yaml."
                )
        return vectors


def required_api_key_env(model: str) -> str | None:
    """Return the env var holding the API key for *model*'s provider, if any."""
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    return _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")


class LiteLLMEmbedder(Embedder):
    """Embed through ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimension: Vector length the model produces.
        batch_size: Maximum texts per ``litellm.embedding()`` call.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimension: int = 1536,
        batch_size: int = 64,
    ) -> None:
        super().__init__(dimension)
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.model = model
        self.batch_size = batch_size

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        self._check_api_key()

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            # Hosted providers reject empty inputs; a blank query embeds as a space.
            batch = [text or " " for text in texts[start : start + self.batch_size]]
            vectors.extend(self._embed_call(batch))
        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return self._check_vectors(vectors, len(texts))

    def _embed_call(self, batch: list[str]) -> list[list[float]]:
        try:
            response = litellm.embedding(model=self.model, input=batch)
        except Exception as exc:
            raise EmbeddingError(f"Embedding call to '{self.model}' failed: {exc}") from exc
        return [list(row["embedding"]) for row in response.data]

    def _check_api_key(self) -> None:
        """Raise EmbeddingError if no API key is available for the embedding model."""
        env_var = required_api_key_env(self.model)
        if env_var and not os.environ.get(env_var):
            raise EmbeddingError(
                f"No API key found for embedding model '{self.model}'. "
                f"Set the {env_var} environment variable."
            )
