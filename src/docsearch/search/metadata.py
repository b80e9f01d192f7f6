"""
Structured-field document queries (no embeddings involved).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..logging_setup import get_logger
from ..storage import DocumentRecord, StorageBackend
from .filters import TimeWindow, resolve_mime_types


logger = get_logger(__name__)


@dataclass(frozen=True)
class MetadataQueryResult:
    """Documents matched by a metadata query, in sort order."""

    documents: list[DocumentRecord]

    @property
    def total_count(self) -> int:
        return len(self.documents)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents": [document_to_dict(doc) for doc in self.documents],
            "totalCount": self.total_count,
        }


def document_to_dict(document: DocumentRecord) -> dict[str, Any]:
    return {
        "id": document.id,
        "title": document.title,
        "fileName": document.file_name,
        "fileType": document.file_type,
        "fileSize": document.file_size,
        "sourceType": document.source_type,
        "createdAt": document.created_at.isoformat(),
        "updatedAt": document.updated_at.isoformat(),
    }


class MetadataQueryExecutor:
    """Sort and filter a user's documents by creation date and type."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    def query(
        self,
        *,
        user_id: str,
        sort_by: str = "newest",
        limit: int = 10,
        time_window: TimeWindow | None = None,
        doc_types: list[str] | None = None,
    ) -> MetadataQueryResult:
        # Labels that map to no MIME type leave the type filter off.
        file_types = resolve_mime_types(doc_types)
        documents = self.storage.query_documents(
            user_id=user_id,
            sort_by="oldest" if sort_by == "oldest" else "newest",
            limit=max(limit, 1),
            created_from=time_window.start if time_window else None,
            created_to=time_window.end if time_window else None,
            file_types=file_types or None,
        )
        logger.info(
            "Metadata query returned %d documents (sort=%s, types=%s)",
            len(documents),
            sort_by,
            file_types or "any",
        )
        return MetadataQueryResult(documents=documents)
