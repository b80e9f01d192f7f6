"""
DuckDB storage backend for documents, chunk embeddings and search history.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb

from .base import (
    ChunkMatch,
    ChunkRecord,
    DocumentRecord,
    SearchHistoryRecord,
    SortOrder,
)


_DEFAULT_EMBEDDING_DIM = 384

_DOCUMENT_COLUMNS = """
    id, user_id, title, file_name, file_type, file_size, source_type,
    source_id, storage_path, created_at, updated_at
"""


def _stable_id(prefix: str, value: str) -> str:
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


def _to_db_timestamp(value: datetime) -> datetime:
    # Timestamps are stored as naive UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_timestamp(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DuckDBStorage:
    """DuckDB-backed persistence for documents, chunks, and search history."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
        embedding_dim: int = _DEFAULT_EMBEDDING_DIM,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        self.embedding_dim = embedding_dim
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id VARCHAR PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                title VARCHAR NOT NULL,
                file_name VARCHAR NOT NULL,
                file_type VARCHAR NOT NULL,
                file_size BIGINT NOT NULL,
                source_type VARCHAR NOT NULL DEFAULT 'upload',
                source_id VARCHAR,
                storage_path VARCHAR,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                UNIQUE(user_id, source_type, source_id)
            );
            """
        )
        self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS document_chunks (
                id VARCHAR PRIMARY KEY,
                document_id VARCHAR NOT NULL,
                chunk_index INTEGER NOT NULL,
                chunk_text VARCHAR NOT NULL,
                embedding FLOAT[{self.embedding_dim}],
                UNIQUE(document_id, chunk_index)
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS search_history (
                id VARCHAR PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                query VARCHAR NOT NULL,
                sources VARCHAR,
                created_at TIMESTAMP NOT NULL
            );
            """
        )

    def upsert_document(self, document: DocumentRecord, chunks: list[ChunkRecord]) -> None:
        # Chunks are replaced wholesale; the cascade is handled here, not by FKs.
        self._conn.begin()
        try:
            self._write_document(document, chunks)
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()

    def _write_document(self, document: DocumentRecord, chunks: list[ChunkRecord]) -> None:
        self._conn.execute(
            "DELETE FROM document_chunks WHERE document_id = ?", [document.id]
        )

        self._conn.execute(
            f"""
            INSERT INTO documents ({_DOCUMENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                file_name = excluded.file_name,
                file_type = excluded.file_type,
                file_size = excluded.file_size,
                storage_path = excluded.storage_path,
                updated_at = excluded.updated_at
            """,
            [
                document.id,
                document.user_id,
                document.title,
                document.file_name,
                document.file_type,
                document.file_size,
                document.source_type,
                document.source_id,
                document.storage_path,
                _to_db_timestamp(document.created_at),
                _to_db_timestamp(document.updated_at),
            ],
        )

        if chunks:
            self._conn.executemany(
                f"""
                INSERT INTO document_chunks (id, document_id, chunk_index, chunk_text, embedding)
                VALUES (?, ?, ?, ?, CAST(? AS FLOAT[{self.embedding_dim}]))
                """,
                [
                    (
                        chunk.id,
                        chunk.document_id,
                        chunk.chunk_index,
                        chunk.chunk_text,
                        chunk.embedding,
                    )
                    for chunk in chunks
                ],
            )

    def find_document_by_source(
        self,
        *,
        user_id: str,
        source_type: str,
        source_id: str,
    ) -> DocumentRecord | None:
        row = self._conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE user_id = ? AND source_type = ? AND source_id = ?
            LIMIT 1
            """,
            [user_id, source_type, source_id],
        ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def get_document(self, *, document_id: str, user_id: str) -> DocumentRecord | None:
        row = self._conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE id = ? AND user_id = ?
            LIMIT 1
            """,
            [document_id, user_id],
        ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def get_documents(
        self,
        *,
        document_ids: list[str],
        user_id: str,
    ) -> dict[str, DocumentRecord]:
        unique_ids = sorted(set(document_ids))
        if not unique_ids:
            return {}

        placeholders = ", ".join(["?"] * len(unique_ids))
        params: list[Any] = [user_id]
        params.extend(unique_ids)
        rows = self._conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE user_id = ?
              AND id IN ({placeholders})
            """,
            params,
        ).fetchall()
        documents = [self._row_to_document(row) for row in rows]
        return {doc.id: doc for doc in documents}

    def delete_document(self, *, document_id: str, user_id: str) -> bool:
        if self.get_document(document_id=document_id, user_id=user_id) is None:
            return False
        self._conn.begin()
        try:
            self._conn.execute(
                "DELETE FROM document_chunks WHERE document_id = ?", [document_id]
            )
            self._conn.execute(
                "DELETE FROM documents WHERE id = ? AND user_id = ?",
                [document_id, user_id],
            )
        except Exception:
            self._conn.rollback()
            raise
        self._conn.commit()
        return True

    def count_chunks(self, *, document_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM document_chunks WHERE document_id = ?",
            [document_id],
        ).fetchone()
        return int(row[0]) if row else 0

    def match_chunks(
        self,
        *,
        query_embedding: list[float],
        user_id: str,
        threshold: float,
        limit: int,
    ) -> list[ChunkMatch]:
        if len(query_embedding) != self.embedding_dim:
            raise ValueError(
                f"Query embedding has {len(query_embedding)} dimensions, "
                f"store expects {self.embedding_dim}."
            )

        sql = f"""
            SELECT * FROM (
                SELECT
                    c.id,
                    c.document_id,
                    c.chunk_text,
                    c.chunk_index,
                    array_cosine_similarity(
                        c.embedding, CAST(? AS FLOAT[{self.embedding_dim}])
                    ) AS similarity
                FROM document_chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE d.user_id = ?
                  AND c.embedding IS NOT NULL
            ) scored
            WHERE similarity >= ?
            ORDER BY similarity DESC, document_id ASC, chunk_index ASC
            LIMIT ?
        """
        rows = self._conn.execute(
            sql,
            [query_embedding, user_id, float(threshold), max(int(limit), 0)],
        ).fetchall()
        return [
            ChunkMatch(
                chunk_id=str(row[0]),
                document_id=str(row[1]),
                chunk_text=str(row[2]),
                chunk_index=int(row[3]),
                similarity=float(row[4]),
            )
            for row in rows
        ]

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
        sql = f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE user_id = ?
        """
        params: list[Any] = [user_id]

        if created_from is not None:
            sql += "\n  AND created_at >= ?"
            params.append(_to_db_timestamp(created_from))
        if created_to is not None:
            sql += "\n  AND created_at <= ?"
            params.append(_to_db_timestamp(created_to))
        if file_types:
            placeholders = ", ".join(["?"] * len(file_types))
            sql += f"\n  AND file_type IN ({placeholders})"
            params.extend(file_types)

        direction = "ASC" if sort_by == "oldest" else "DESC"
        sql += f"\nORDER BY created_at {direction}, id ASC\nLIMIT ?"
        params.append(max(int(limit), 0))

        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_document(row) for row in rows]

    def insert_search_history(
        self,
        *,
        user_id: str,
        query: str,
        sources: list[str] | None,
    ) -> str:
        entry_id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO search_history (id, user_id, query, sources, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                entry_id,
                user_id,
                query,
                json.dumps(sources) if sources else None,
                _to_db_timestamp(datetime.now(timezone.utc)),
            ],
        )
        return entry_id

    def list_search_history(
        self,
        *,
        user_id: str,
        limit: int = 20,
    ) -> list[SearchHistoryRecord]:
        rows = self._conn.execute(
            """
            SELECT id, user_id, query, sources, created_at
            FROM search_history
            WHERE user_id = ?
            ORDER BY created_at DESC, id ASC
            LIMIT ?
            """,
            [user_id, max(int(limit), 0)],
        ).fetchall()
        return [
            SearchHistoryRecord(
                id=str(row[0]),
                user_id=str(row[1]),
                query=str(row[2]),
                sources=json.loads(row[3]) if row[3] is not None else None,
                created_at=_from_db_timestamp(row[4]),
            )
            for row in rows
        ]

    @staticmethod
    def make_document_id(user_id: str, source_type: str, source_key: str) -> str:
        return _stable_id("doc", f"{user_id}:{source_type}:{source_key}")

    @staticmethod
    def make_chunk_id(document_id: str, chunk_index: int) -> str:
        return _stable_id("chunk", f"{document_id}:{chunk_index}")

    @staticmethod
    def _row_to_document(row: tuple[Any, ...]) -> DocumentRecord:
        return DocumentRecord(
            id=str(row[0]),
            user_id=str(row[1]),
            title=str(row[2]),
            file_name=str(row[3]),
            file_type=str(row[4]),
            file_size=int(row[5]),
            source_type=str(row[6]),
            source_id=str(row[7]) if row[7] is not None else None,
            storage_path=str(row[8]) if row[8] is not None else None,
            created_at=_from_db_timestamp(row[9]),
            updated_at=_from_db_timestamp(row[10]),
        )
