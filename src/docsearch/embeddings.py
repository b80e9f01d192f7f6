"""
Embedding provider for vector-based semantic search.

Wraps the Google GenAI embedding API for batch and single-query embedding
with configurable model, dimensions, and batch size. Every vector handed
back is checked for shape; anything malformed raises
``EmbeddingServiceError``.
"""

from __future__ import annotations

import math
import os
from typing import Any

from google.genai import Client as GenAIClient

from .config import resolve_api_key
from .errors import EmbeddingServiceError
from .logging_setup import get_logger


_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 384
_DEFAULT_BATCH_SIZE = 10

logger = get_logger(__name__)


class EmbeddingProvider:
    """Generate text embeddings via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        batch_size: int | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("DOCSEARCH_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self.dim = dim or int(os.getenv("DOCSEARCH_EMBEDDING_DIM", str(_DEFAULT_DIM)))
        self.batch_size = batch_size or int(
            os.getenv("DOCSEARCH_EMBEDDING_BATCH_SIZE", str(_DEFAULT_BATCH_SIZE))
        )

        if client is not None:
            self._client = client
        else:
            self._client = GenAIClient(api_key=resolve_api_key(api_key))

    def embed_texts(
        self,
        texts: list[str],
        *,
        task_type: str = "RETRIEVAL_DOCUMENT",
    ) -> list[list[float]]:
        """Embed a list of texts in batches.

        Returns a list of embedding vectors in the same order as *texts*.
        """
        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            vectors = self._embed(batch, task_type=task_type)
            if len(vectors) != len(batch):
                raise EmbeddingServiceError(
                    f"Embedding service returned {len(vectors)} vectors "
                    f"for {len(batch)} inputs"
                )
            all_embeddings.extend(vectors)
        return all_embeddings

    def embed_query(self, query: str) -> list[float]:
        """Embed a single query text for retrieval."""
        vectors = self._embed([query], task_type="RETRIEVAL_QUERY")
        if not vectors:
            raise EmbeddingServiceError("Embedding service returned no vector for query")
        return vectors[0]

    def _embed(self, contents: list[str], *, task_type: str) -> list[list[float]]:
        try:
            result = self._client.models.embed_content(
                model=self.model,
                contents=contents,
                config={
                    "task_type": task_type,
                    "output_dimensionality": self.dim,
                },
            )
        except Exception as exc:
            logger.error("Embedding request to %s failed: %s", self.model, exc)
            raise EmbeddingServiceError(
                f"Failed to generate embedding: {exc}"
            ) from exc

        embeddings = getattr(result, "embeddings", None)
        if not isinstance(embeddings, list) or not embeddings:
            logger.error("Invalid embedding response: %r", result)
            raise EmbeddingServiceError("Invalid embedding response: no embeddings")
        return [self._validate_vector(getattr(emb, "values", None)) for emb in embeddings]

    def _validate_vector(self, values: Any) -> list[float]:
        if not isinstance(values, (list, tuple)) or not values:
            raise EmbeddingServiceError("Invalid embedding response: vector is not an array")
        if len(values) != self.dim:
            raise EmbeddingServiceError(
                f"Invalid embedding response: expected {self.dim} dimensions, "
                f"got {len(values)}"
            )
        vector: list[float] = []
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EmbeddingServiceError(
                    "Invalid embedding response: vector holds non-numeric values"
                )
            if not math.isfinite(value):
                raise EmbeddingServiceError(
                    "Invalid embedding response: vector holds non-finite values"
                )
            vector.append(float(value))
        return vector
