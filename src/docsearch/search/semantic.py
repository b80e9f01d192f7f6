"""
Vector-based semantic retrieval.

Searches the requesting user's chunk embeddings via cosine similarity.
"""

from __future__ import annotations

from ..logging_setup import get_logger
from ..storage import ChunkMatch, StorageBackend


logger = get_logger(__name__)


class SemanticSearchEngine:
    """Match a query embedding against stored chunk embeddings."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    def retrieve(
        self,
        query_embedding: list[float],
        *,
        user_id: str,
        threshold: float,
        limit: int,
    ) -> list[ChunkMatch]:
        """Return chunks at or above *threshold*, most similar first."""
        matches = self.storage.match_chunks(
            query_embedding=query_embedding,
            user_id=user_id,
            threshold=threshold,
            limit=limit,
        )
        logger.debug(
            "Retrieved %d chunks (threshold=%.2f, limit=%d)",
            len(matches),
            threshold,
            limit,
        )
        return matches
