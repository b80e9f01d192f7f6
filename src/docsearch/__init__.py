"""
docsearch - semantic search over a user's personal documents.

This package embeds document chunks with Google Gemini, stores them in
DuckDB, and ranks them against natural-language queries by combining
vector similarity with recency, position and metadata signals. A Gemini
intent parser routes queries such as "latest pdf from last week" to a
metadata query instead of a vector search.

Example usage:
    >>> from docsearch import SearchService, SearchParams, DuckDBStorage, EmbeddingProvider
    >>> service = SearchService(DuckDBStorage("index.duckdb"), EmbeddingProvider())
    >>> response = service.search(SearchParams(query="quarterly revenue"), user_id="alice")
"""

from .answer import AnswerSynthesizer
from .embeddings import EmbeddingProvider
from .errors import (
    AuthorizationError,
    DocSearchError,
    EmbeddingServiceError,
    NotFoundError,
    QueryValidationError,
    UpstreamServiceError,
)
from .indexing import DocumentInput, IngestionPipeline, IngestionResult, TextChunker
from .models import Answer, AnswerSource, ParsedIntent
from .search import (
    DEFAULT_RANKING_CONFIG,
    IntentParser,
    RankedResult,
    RankingConfig,
    SearchParams,
    SearchResponse,
    SearchService,
    TimeWindow,
)
from .storage import DuckDBStorage

__all__ = [
    # Services
    "SearchService",
    "SearchParams",
    "SearchResponse",
    "IngestionPipeline",
    "DocumentInput",
    "IngestionResult",
    "TextChunker",
    # Adapters
    "EmbeddingProvider",
    "IntentParser",
    "AnswerSynthesizer",
    "DuckDBStorage",
    # Models
    "RankedResult",
    "RankingConfig",
    "DEFAULT_RANKING_CONFIG",
    "TimeWindow",
    "ParsedIntent",
    "Answer",
    "AnswerSource",
    # Errors
    "DocSearchError",
    "UpstreamServiceError",
    "EmbeddingServiceError",
    "QueryValidationError",
    "AuthorizationError",
    "NotFoundError",
]
