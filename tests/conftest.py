from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
from google.genai.types import (
    Candidate,
    Content,
    GenerateContentResponse,
    Part,
)

from docsearch.embeddings import EmbeddingProvider
from docsearch.storage import ChunkRecord, DocumentRecord, DuckDBStorage


EMBEDDING_DIM = 5
VOCABULARY = ("invoice", "contract", "recipe", "travel")


def keyword_vector(text: str) -> list[float]:
    """One axis per vocabulary word plus a small constant bias axis."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]


@dataclass
class FakeEmbedding:
    values: Any


@dataclass
class FakeEmbedResult:
    embeddings: Any


class FakeEmbeddingModels:
    """Records calls and returns keyword-count embeddings."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.failing_texts: set[str] = set()
        self.malformed = False

    def embed_content(self, *, model: str, contents: list[str], config: dict) -> FakeEmbedResult:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if any(text in self.failing_texts for text in contents):
            raise RuntimeError("embedding quota exceeded")
        if self.malformed:
            return FakeEmbedResult(embeddings=[FakeEmbedding(values="not-a-vector")])
        return FakeEmbedResult(
            embeddings=[FakeEmbedding(values=keyword_vector(text)) for text in contents]
        )


class FakeEmbeddingClient:
    def __init__(self) -> None:
        self.models = FakeEmbeddingModels()


def text_response(text: str) -> GenerateContentResponse:
    return GenerateContentResponse(
        candidates=[
            Candidate(
                content=Content(
                    role="model",
                    parts=[Part.from_text(text=text)],
                )
            )
        ]
    )


class MockModels:
    """Async ``generate_content`` that replays queued texts or exceptions."""

    def __init__(self, replies: list[str | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, *args, **kwargs) -> GenerateContentResponse:
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return text_response(reply)


class MockAio:
    def __init__(self, models: MockModels) -> None:
        self.models = models


class MockGenAIClient:
    def __init__(self, replies: list[str | Exception] | None = None) -> None:
        self.aio = MockAio(MockModels(replies or []))

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self.aio.models.calls


@pytest.fixture()
def genai_client() -> Callable[..., MockGenAIClient]:
    """Factory for generation clients: ``genai_client(["reply", ...])``."""
    return MockGenAIClient


@pytest.fixture()
def embedding_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture()
def embedding_provider(embedding_client: FakeEmbeddingClient) -> EmbeddingProvider:
    return EmbeddingProvider(client=embedding_client, dim=EMBEDDING_DIM, batch_size=10)


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "index.duckdb")


@pytest.fixture()
def storage(db_path: str):
    store = DuckDBStorage(db_path, embedding_dim=EMBEDDING_DIM)
    yield store
    store.close()


@pytest.fixture()
def seed_document(storage: DuckDBStorage) -> Callable[..., str]:
    """Insert a document whose chunks are embedded with ``keyword_vector``."""

    def _seed(
        *,
        user_id: str,
        title: str,
        chunks: list[str],
        file_name: str | None = None,
        file_type: str = "application/pdf",
        created_at: datetime | None = None,
        source_id: str | None = None,
    ) -> str:
        created = created_at or datetime.now(timezone.utc)
        document_id = DuckDBStorage.make_document_id(
            user_id, "upload", source_id or f"{title}:{created.isoformat()}"
        )
        document = DocumentRecord(
            id=document_id,
            user_id=user_id,
            title=title,
            file_name=file_name or f"{title.lower().replace(' ', '_')}.pdf",
            file_type=file_type,
            file_size=sum(len(chunk) for chunk in chunks),
            source_type="upload",
            created_at=created,
            updated_at=created,
            source_id=source_id,
        )
        storage.upsert_document(
            document,
            [
                ChunkRecord(
                    id=DuckDBStorage.make_chunk_id(document_id, index),
                    document_id=document_id,
                    chunk_index=index,
                    chunk_text=text,
                    embedding=keyword_vector(text),
                )
                for index, text in enumerate(chunks)
            ],
        )
        return document_id

    return _seed
