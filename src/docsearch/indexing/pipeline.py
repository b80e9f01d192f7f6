"""
Ingestion pipeline: chunk extracted text, embed it and persist the document.
"""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone

from .chunker import TextChunk, TextChunker
from ..embeddings import EmbeddingProvider
from ..errors import (
    AuthorizationError,
    EmbeddingServiceError,
    NotFoundError,
    QueryValidationError,
)
from ..logging_setup import get_logger
from ..storage import ChunkRecord, DocumentRecord, DuckDBStorage, SourceType, StorageBackend

logger = get_logger(__name__)

_DEFAULT_BATCH_SIZE = 10


@dataclass(frozen=True)
class DocumentInput:
    """Text already extracted from an uploaded file or an imported page."""

    user_id: str
    title: str
    file_name: str
    file_type: str
    text: str
    file_size: int | None = None
    source_type: SourceType = "upload"
    source_id: str | None = None
    storage_path: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class IngestionResult:
    """Summary output for one ingested document."""

    document_id: str
    chunks_written: int
    chunks_failed: int


class IngestionPipeline:
    """Turn extracted document text into stored, embedded chunks."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: EmbeddingProvider,
        chunker: TextChunker | None = None,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        max_workers: int = 4,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.chunker = chunker or TextChunker()
        self.batch_size = batch_size
        self._max_workers = max_workers

    def ingest(self, document: DocumentInput) -> IngestionResult:
        if not document.user_id or not document.user_id.strip():
            raise AuthorizationError("Unauthorized")
        user_id = document.user_id.strip()

        chunks = self.chunker.chunk_text(document.text or "")
        if not chunks:
            raise QueryValidationError(
                f"No text content could be extracted from {document.file_name!r}"
            )

        now = datetime.now(timezone.utc)
        existing = None
        if document.source_id:
            existing = self.storage.find_document_by_source(
                user_id=user_id,
                source_type=document.source_type,
                source_id=document.source_id,
            )

        if existing is not None:
            document_id = existing.id
            created_at = existing.created_at
            logger.info("Re-importing %s as existing document %s", document.source_id, document_id)
        else:
            source_key = document.source_id or str(uuid.uuid4())
            document_id = DuckDBStorage.make_document_id(
                user_id, document.source_type, source_key
            )
            created_at = document.created_at or now

        embeddings = self._embed_chunks(chunks)
        chunk_records = [
            ChunkRecord(
                id=DuckDBStorage.make_chunk_id(document_id, chunk.index),
                document_id=document_id,
                chunk_index=chunk.index,
                chunk_text=chunk.text,
                embedding=embedding,
            )
            for chunk, embedding in zip(chunks, embeddings)
            if embedding is not None
        ]
        chunks_failed = len(chunks) - len(chunk_records)
        if not chunk_records:
            raise EmbeddingServiceError(
                f"Failed to embed all {len(chunks)} chunks of {document.file_name!r}"
            )

        record = DocumentRecord(
            id=document_id,
            user_id=user_id,
            title=document.title or document.file_name,
            file_name=document.file_name,
            file_type=document.file_type,
            file_size=(
                document.file_size
                if document.file_size is not None
                else len(document.text.encode("utf-8"))
            ),
            source_type=document.source_type,
            created_at=created_at,
            updated_at=now,
            source_id=document.source_id,
            storage_path=document.storage_path,
        )
        self.storage.upsert_document(record, chunk_records)

        logger.info(
            "Ingested %s: %d chunks written, %d failed",
            document.file_name,
            len(chunk_records),
            chunks_failed,
        )
        return IngestionResult(
            document_id=document_id,
            chunks_written=len(chunk_records),
            chunks_failed=chunks_failed,
        )

    def delete_document(self, document_id: str, *, user_id: str) -> None:
        if not user_id or not user_id.strip():
            raise AuthorizationError("Unauthorized")
        if not self.storage.delete_document(document_id=document_id, user_id=user_id.strip()):
            raise NotFoundError(f"Document not found: {document_id}")
        logger.info("Deleted document %s", document_id)

    def _embed_chunks(self, chunks: list[TextChunk]) -> list[list[float] | None]:
        """Embed chunk texts batch by batch; a failed chunk yields ``None``."""

        def _embed_one(chunk: TextChunk) -> list[float] | None:
            try:
                return self.embedding_provider.embed_texts([chunk.text])[0]
            except EmbeddingServiceError as exc:
                logger.warning("Skipping chunk %d: %s", chunk.index, exc)
                return None

        embeddings: list[list[float] | None] = []
        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            for start in range(0, len(chunks), self.batch_size):
                batch = chunks[start : start + self.batch_size]
                embeddings.extend(executor.map(_embed_one, batch))
        return embeddings
