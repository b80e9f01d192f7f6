"""
Per-document result capping.
"""

from __future__ import annotations

from typing import Protocol, Sequence, TypeVar


class _HasDocumentId(Protocol):
    @property
    def document_id(self) -> str: ...


ResultT = TypeVar("ResultT", bound=_HasDocumentId)


def limit_diversity(
    results: Sequence[ResultT],
    *,
    max_per_document: int = 3,
) -> list[ResultT]:
    """Drop results once their document already has *max_per_document* kept.

    Single greedy pass over already-sorted input; the output preserves order.
    """
    if max_per_document < 1:
        raise ValueError("max_per_document must be >= 1")

    counts: dict[str, int] = {}
    kept: list[ResultT] = []
    for result in results:
        count = counts.get(result.document_id, 0)
        if count < max_per_document:
            counts[result.document_id] = count + 1
            kept.append(result)
    return kept
