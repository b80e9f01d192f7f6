"""
Storage interfaces and data models for document, chunk and history persistence.

Every read that can surface user data takes a ``user_id`` keyword argument;
there is no unscoped variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Protocol


SourceType = Literal["upload", "notion", "google_drive"]
SortOrder = Literal["newest", "oldest"]


@dataclass(frozen=True)
class DocumentRecord:
    """A document owned by exactly one user."""

    id: str
    user_id: str
    title: str
    file_name: str
    file_type: str
    file_size: int
    source_type: str
    created_at: datetime
    updated_at: datetime
    source_id: str | None = None
    storage_path: str | None = None


@dataclass(frozen=True)
class ChunkRecord:
    """A text chunk stored for a document."""

    id: str
    document_id: str
    chunk_index: int
    chunk_text: str
    embedding: list[float] | None = None


@dataclass(frozen=True)
class ChunkMatch:
    """A chunk returned by similarity search, annotated with its raw score."""

    chunk_id: str
    document_id: str
    chunk_text: str
    chunk_index: int
    similarity: float


@dataclass(frozen=True)
class SearchHistoryRecord:
    """An append-only search log entry."""

    id: str
    user_id: str
    query: str
    sources: list[str] | None
    created_at: datetime


class StorageBackend(Protocol):
    """Protocol for persistence operations used by ingestion and search."""

    def initialize(self) -> None:
        """Initialize required tables/indexes."""

    def close(self) -> None:
        """Release the underlying connection."""

    def upsert_document(
        self, document: DocumentRecord, chunks: list[ChunkRecord]
    ) -> None:
        """Insert or update a document and replace its chunks."""

    def find_document_by_source(
        self,
        *,
        user_id: str,
        source_type: str,
        source_id: str,
    ) -> DocumentRecord | None:
        """Return the user's document imported from an external item, if any."""

    def get_document(self, *, document_id: str, user_id: str) -> DocumentRecord | None:
        """Get one of the user's documents by id."""

    def get_documents(
        self,
        *,
        document_ids: list[str],
        user_id: str,
    ) -> dict[str, DocumentRecord]:
        """Return the user's documents among *document_ids*, keyed by id."""

    def delete_document(self, *, document_id: str, user_id: str) -> bool:
        """Delete a document and its chunks. Return False when absent."""

    def count_chunks(self, *, document_id: str) -> int:
        """Count chunks stored for a document."""

    def match_chunks(
        self,
        *,
        query_embedding: list[float],
        user_id: str,
        threshold: float,
        limit: int,
    ) -> list[ChunkMatch]:
        """Return the user's chunks with cosine similarity >= threshold."""

    def query_documents(
        self,
        *,
        user_id: str,
        sort_by: SortOrder = "newest",
        limit: int = 10,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        file_types: list[str] | None = None,
    ) -> list[DocumentRecord]:
        """List the user's documents by structured fields only."""

    def insert_search_history(
        self,
        *,
        user_id: str,
        query: str,
        sources: list[str] | None,
    ) -> str:
        """Append a search history row. Return its id."""

    def list_search_history(
        self,
        *,
        user_id: str,
        limit: int = 20,
    ) -> list[SearchHistoryRecord]:
        """List the user's most recent searches, newest first."""
