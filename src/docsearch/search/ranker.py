"""
Multi-factor re-ranking of retrieved chunks.

Each candidate gets four sub-scores in [0, 1] (similarity, recency, position,
metadata match) combined by a weighted sum. Weights live in an immutable
``RankingConfig`` passed per call; ``DEFAULT_RANKING_CONFIG`` is the single
canonical default.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from ..storage import ChunkMatch, DocumentRecord


RECENCY_HORIZON_DAYS = 365.0
POSITION_HORIZON_CHUNKS = 100.0
_SECONDS_PER_DAY = 86400.0
_WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class RankingConfig:
    """Weights for the composite score. Non-negative, summing to 1."""

    similarity_weight: float = 0.5
    recency_weight: float = 0.2
    position_weight: float = 0.15
    metadata_weight: float = 0.15

    def __post_init__(self) -> None:
        weights = self.as_tuple()
        if any(not math.isfinite(w) or w < 0 for w in weights):
            raise ValueError(f"Ranking weights must be non-negative: {weights}")
        total = sum(weights)
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ValueError(f"Ranking weights must sum to 1.0, got {total:.6f}")

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (
            self.similarity_weight,
            self.recency_weight,
            self.position_weight,
            self.metadata_weight,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "similarityWeight": self.similarity_weight,
            "recencyWeight": self.recency_weight,
            "positionWeight": self.position_weight,
            "metadataWeight": self.metadata_weight,
        }


DEFAULT_RANKING_CONFIG = RankingConfig()


@dataclass(frozen=True)
class RankedResult:
    """A scored chunk with the document fields needed for display."""

    id: str
    document_id: str
    document_title: str
    file_name: str
    file_type: str
    chunk_text: str
    chunk_index: int
    similarity: float
    recency_score: float
    position_score: float
    metadata_score: float
    final_score: float
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "documentId": self.document_id,
            "documentTitle": self.document_title,
            "fileName": self.file_name,
            "fileType": self.file_type,
            "chunkText": self.chunk_text,
            "chunkIndex": self.chunk_index,
            "similarity": self.similarity,
            "recencyScore": self.recency_score,
            "positionScore": self.position_score,
            "metadataScore": self.metadata_score,
            "finalScore": self.final_score,
            "createdAt": self.created_at.isoformat(),
        }


def similarity_score(similarity: float) -> float:
    return _clamp(similarity)


def recency_score(created_at: datetime, now: datetime) -> float:
    """Linear decay from 1 (created now) to 0 (one year old or more)."""
    age_days = (_as_utc(now) - _as_utc(created_at)).total_seconds() / _SECONDS_PER_DAY
    return _clamp(1.0 - age_days / RECENCY_HORIZON_DAYS)


def position_score(chunk_index: int) -> float:
    """Earlier chunks score higher; zero from chunk 100 on."""
    return _clamp(1.0 - chunk_index / POSITION_HORIZON_CHUNKS)


def metadata_score(query: str, title: str, file_name: str) -> float:
    """1 when the query is a substring of the title or file name."""
    needle = query.lower()
    if needle in title.lower() or needle in file_name.lower():
        return 1.0
    return 0.0


def score_candidate(
    candidate: ChunkMatch,
    document: DocumentRecord,
    *,
    query: str,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    now: datetime,
) -> RankedResult:
    similarity = similarity_score(candidate.similarity)
    recency = recency_score(document.created_at, now)
    position = position_score(candidate.chunk_index)
    metadata = metadata_score(query, document.title, document.file_name)

    final = (
        similarity * config.similarity_weight
        + recency * config.recency_weight
        + position * config.position_weight
        + metadata * config.metadata_weight
    )
    return RankedResult(
        id=candidate.chunk_id,
        document_id=candidate.document_id,
        document_title=document.title,
        file_name=document.file_name,
        file_type=document.file_type,
        chunk_text=candidate.chunk_text,
        chunk_index=candidate.chunk_index,
        similarity=similarity,
        recency_score=recency,
        position_score=position,
        metadata_score=metadata,
        final_score=_clamp(final),
        created_at=document.created_at,
    )


def rank_results(
    candidates: list[ChunkMatch],
    documents: Mapping[str, DocumentRecord],
    *,
    query: str,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    now: datetime | None = None,
) -> list[RankedResult]:
    """Score candidates and sort them by composite score, highest first.

    Candidates without document metadata are skipped. Equal scores keep
    retrieval order.
    """
    reference_time = now or datetime.now(timezone.utc)
    scored = [
        score_candidate(
            candidate,
            documents[candidate.document_id],
            query=query,
            config=config,
            now=reference_time,
        )
        for candidate in candidates
        if candidate.document_id in documents
    ]
    return sorted(scored, key=lambda result: -result.final_score)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
