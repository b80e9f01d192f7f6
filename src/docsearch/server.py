"""
FastAPI server for docsearch.

Exposes semantic search, metadata queries, intent parsing, routed queries,
cited answers, ingestion of extracted text and search history. Every
endpoint is scoped to the user named by the ``X-User-Id`` header.
"""

import asyncio
from typing import Any, Iterator, Literal

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .answer import AnswerSynthesizer
from .config import (
    ANSWER_MAX_RESULTS,
    DEFAULT_MAX_RESULTS,
    DEFAULT_SIMILARITY_THRESHOLD,
    resolve_db_path,
)
from .embeddings import EmbeddingProvider
from .errors import (
    AuthorizationError,
    DocSearchError,
    NotFoundError,
    QueryValidationError,
    UpstreamServiceError,
)
from .indexing import DocumentInput, IngestionPipeline
from .logging_setup import configure_logging, get_logger
from .search import IntentParser, SearchParams, SearchService, TimeWindow
from .search.query import DEFAULT_METADATA_LIMIT
from .storage import DuckDBStorage, SourceType

logger = get_logger(__name__)

app = FastAPI(title="docsearch", description="Semantic search over personal documents")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TimeFilterBody(_CamelModel):
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")

    def to_window(self) -> TimeWindow | None:
        return TimeWindow.from_bounds(self.start_date, self.end_date)


class SearchRequest(_CamelModel):
    """Request model for semantic search."""

    query: str = ""
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, alias="maxResults")
    similarity_threshold: float = Field(
        default=DEFAULT_SIMILARITY_THRESHOLD, alias="similarityThreshold"
    )
    sources: list[str] | None = None
    time_filter: TimeFilterBody | None = Field(default=None, alias="timeFilter")
    doc_types: list[str] | None = Field(default=None, alias="docTypes")


class MetadataQueryRequest(_CamelModel):
    """Request model for metadata-only document queries."""

    sort_by: Literal["newest", "oldest"] = Field(default="newest", alias="sortBy")
    limit: int = DEFAULT_METADATA_LIMIT
    time_filter: TimeFilterBody | None = Field(default=None, alias="timeFilter")
    doc_types: list[str] | None = Field(default=None, alias="docTypes")


class QueryRequest(BaseModel):
    """Request model for intent parsing and routed queries."""

    query: str = ""


class AnswerFilters(_CamelModel):
    sources: list[str] | None = None
    time_filter: TimeFilterBody | None = Field(default=None, alias="timeFilter")
    doc_types: list[str] | None = Field(default=None, alias="docTypes")


class AnswerRequest(_CamelModel):
    """Request model for cited answers."""

    question: str = ""
    filters: AnswerFilters | None = None
    max_results: int = Field(default=ANSWER_MAX_RESULTS, alias="maxResults")


class IngestRequest(_CamelModel):
    """Request model for ingesting text extracted from a document."""

    title: str = ""
    file_name: str = Field(alias="fileName")
    file_type: str = Field(alias="fileType")
    text: str = ""
    file_size: int | None = Field(default=None, alias="fileSize")
    source_type: SourceType = Field(default="upload", alias="sourceType")
    source_id: str | None = Field(default=None, alias="sourceId")
    storage_path: str | None = Field(default=None, alias="storagePath")


_STATUS_BY_ERROR: tuple[tuple[type[DocSearchError], int], ...] = (
    (QueryValidationError, 400),
    (AuthorizationError, 401),
    (NotFoundError, 404),
    (UpstreamServiceError, 502),
)


@app.exception_handler(DocSearchError)
async def docsearch_error_handler(request: Request, exc: DocSearchError):
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Resolve the calling user from the ``X-User-Id`` header."""
    if x_user_id is None or not x_user_id.strip():
        raise AuthorizationError("Unauthorized")
    return x_user_id.strip()


def get_embedding_provider() -> EmbeddingProvider:
    return EmbeddingProvider()


def get_storage(
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
) -> Iterator[DuckDBStorage]:
    storage = DuckDBStorage(resolve_db_path(), embedding_dim=embedding_provider.dim)
    try:
        yield storage
    finally:
        storage.close()


def get_search_service(
    storage: DuckDBStorage = Depends(get_storage),
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
) -> SearchService:
    return SearchService(
        storage=storage,
        embedding_provider=embedding_provider,
        intent_parser=IntentParser(),
        answer_synthesizer=AnswerSynthesizer(),
    )


def get_ingestion_pipeline(
    storage: DuckDBStorage = Depends(get_storage),
    embedding_provider: EmbeddingProvider = Depends(get_embedding_provider),
) -> IngestionPipeline:
    return IngestionPipeline(storage=storage, embedding_provider=embedding_provider)


def _window(body: TimeFilterBody | None) -> TimeWindow | None:
    return body.to_window() if body is not None else None


@app.post("/api/search")
async def search(
    request: SearchRequest,
    user_id: str = Depends(get_user_id),
    service: SearchService = Depends(get_search_service),
):
    """Rank the caller's chunks against a free-text query."""
    params = SearchParams(
        query=request.query,
        max_results=request.max_results,
        similarity_threshold=request.similarity_threshold,
        sources=request.sources,
        time_window=_window(request.time_filter),
        doc_types=request.doc_types,
    )
    response = await asyncio.to_thread(service.search, params, user_id=user_id)
    return response.to_dict()


@app.post("/api/documents/query")
async def query_documents(
    request: MetadataQueryRequest,
    user_id: str = Depends(get_user_id),
    service: SearchService = Depends(get_search_service),
):
    result = await asyncio.to_thread(
        service.query_by_metadata,
        user_id=user_id,
        sort_by=request.sort_by,
        limit=request.limit,
        time_window=_window(request.time_filter),
        doc_types=request.doc_types,
    )
    return result.to_dict()


@app.post("/api/intent")
async def parse_intent(
    request: QueryRequest,
    user_id: str = Depends(get_user_id),
    service: SearchService = Depends(get_search_service),
):
    intent = await service.parse_intent(request.query)
    return intent.model_dump(by_alias=True)


@app.post("/api/query")
async def routed_query(
    request: QueryRequest,
    user_id: str = Depends(get_user_id),
    service: SearchService = Depends(get_search_service),
):
    """Parse intent and run a metadata query or a semantic search."""
    routed = await service.route(request.query, user_id=user_id)
    return routed.to_dict()


@app.post("/api/answer")
async def answer(
    request: AnswerRequest,
    user_id: str = Depends(get_user_id),
    service: SearchService = Depends(get_search_service),
):
    filters = request.filters or AnswerFilters()
    result = await service.answer(
        request.question,
        user_id=user_id,
        sources=filters.sources,
        time_window=_window(filters.time_filter),
        doc_types=filters.doc_types,
        max_results=request.max_results,
    )
    return result.model_dump(by_alias=True)


@app.post("/api/documents", status_code=201)
async def ingest_document(
    request: IngestRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """Chunk, embed and store text extracted from one document."""
    document = DocumentInput(
        user_id=user_id,
        title=request.title or request.file_name,
        file_name=request.file_name,
        file_type=request.file_type,
        text=request.text,
        file_size=request.file_size,
        source_type=request.source_type,
        source_id=request.source_id,
        storage_path=request.storage_path,
    )
    result = await asyncio.to_thread(pipeline.ingest, document)
    return {
        "documentId": result.document_id,
        "chunksWritten": result.chunks_written,
        "chunksFailed": result.chunks_failed,
    }


@app.delete("/api/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
) -> None:
    await asyncio.to_thread(pipeline.delete_document, document_id, user_id=user_id)


@app.get("/api/history")
async def search_history(
    limit: int = 20,
    user_id: str = Depends(get_user_id),
    storage: DuckDBStorage = Depends(get_storage),
) -> dict[str, Any]:
    entries = await asyncio.to_thread(
        storage.list_search_history, user_id=user_id, limit=limit
    )
    return {
        "history": [
            {
                "id": entry.id,
                "query": entry.query,
                "sources": entry.sources,
                "createdAt": entry.created_at.isoformat(),
            }
            for entry in entries
        ]
    }


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    configure_logging()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
