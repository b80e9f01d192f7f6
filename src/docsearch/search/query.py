"""
Search orchestration: intent routing, semantic search and metadata queries.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal

from ..answer import AnswerSynthesizer
from ..config import (
    ANSWER_MAX_RESULTS,
    ANSWER_SIMILARITY_THRESHOLD,
    DEFAULT_MAX_RESULTS,
    DEFAULT_SIMILARITY_THRESHOLD,
    MAX_CHUNKS_PER_DOCUMENT,
)
from ..embeddings import EmbeddingProvider
from ..errors import AuthorizationError, QueryValidationError
from ..logging_setup import get_logger
from ..models import Answer, ParsedIntent
from ..storage import StorageBackend
from .diversity import limit_diversity
from .filters import TimeWindow, filter_candidates
from .intent import IntentParser
from .metadata import MetadataQueryExecutor, MetadataQueryResult
from .ranker import DEFAULT_RANKING_CONFIG, RankedResult, RankingConfig, rank_results
from .semantic import SemanticSearchEngine


logger = get_logger(__name__)

# Retrieve extra candidates so filtering and diversity capping keep enough.
RETRIEVAL_HEADROOM = 2
DEFAULT_METADATA_LIMIT = 10


@dataclass(frozen=True)
class SearchParams:
    """Inputs of a semantic search request."""

    query: str
    max_results: int = DEFAULT_MAX_RESULTS
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    sources: list[str] | None = None
    time_window: TimeWindow | None = None
    doc_types: list[str] | None = None


@dataclass(frozen=True)
class SearchResponse:
    """Ranked results plus the weights that produced them."""

    results: list[RankedResult]
    config: RankingConfig

    @property
    def total_results(self) -> int:
        return len(self.results)

    @property
    def no_results(self) -> bool:
        return not self.results

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "totalResults": self.total_results,
            "config": self.config.to_dict(),
        }


@dataclass(frozen=True)
class RoutedQuery:
    """Outcome of routing a raw query through the intent parser."""

    intent: ParsedIntent
    mode: Literal["metadata", "semantic"]
    search: SearchResponse | None = None
    metadata: MetadataQueryResult | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "intent": self.intent.model_dump(by_alias=True),
            "mode": self.mode,
        }
        if self.search is not None:
            payload.update(self.search.to_dict())
        if self.metadata is not None:
            payload.update(self.metadata.to_dict())
        return payload


@dataclass
class SearchService:
    """Entry point for every search-side operation, always scoped to a user."""

    storage: StorageBackend
    embedding_provider: EmbeddingProvider
    intent_parser: IntentParser | None = None
    answer_synthesizer: AnswerSynthesizer | None = None
    ranking_config: RankingConfig = DEFAULT_RANKING_CONFIG
    max_per_document: int = MAX_CHUNKS_PER_DOCUMENT
    _semantic: SemanticSearchEngine = field(init=False, repr=False)
    _metadata: MetadataQueryExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._semantic = SemanticSearchEngine(self.storage)
        self._metadata = MetadataQueryExecutor(self.storage)

    def search(self, params: SearchParams, *, user_id: str | None) -> SearchResponse:
        """Embed, retrieve, filter, rank and diversity-cap chunks for a query."""
        query = self._validate_query(params.query)
        owner = self._require_user(user_id)
        if params.max_results < 1:
            raise QueryValidationError("maxResults must be at least 1")
        if not 0.0 <= params.similarity_threshold <= 1.0:
            raise QueryValidationError("similarityThreshold must be between 0 and 1")

        logger.info("Performing semantic search for: %r", query[:80])
        query_embedding = self.embedding_provider.embed_query(query)
        candidates = self._semantic.retrieve(
            query_embedding,
            user_id=owner,
            threshold=params.similarity_threshold,
            limit=params.max_results * RETRIEVAL_HEADROOM,
        )
        if not candidates:
            logger.info("No matching chunks found")
            return SearchResponse(results=[], config=self.ranking_config)

        documents = self.storage.get_documents(
            document_ids=[candidate.document_id for candidate in candidates],
            user_id=owner,
        )
        filtered = filter_candidates(
            candidates,
            documents,
            user_id=owner,
            source_ids=params.sources,
            time_window=params.time_window,
            doc_types=params.doc_types,
        )
        ranked = rank_results(
            filtered,
            documents,
            query=query,
            config=self.ranking_config,
        )
        diverse = limit_diversity(ranked, max_per_document=self.max_per_document)
        final_results = diverse[: params.max_results]
        logger.info(
            "Search pipeline: %d retrieved, %d filtered, %d returned",
            len(candidates),
            len(filtered),
            len(final_results),
        )

        self._record_history(owner, query, params.sources)
        return SearchResponse(results=final_results, config=self.ranking_config)

    def query_by_metadata(
        self,
        *,
        user_id: str | None,
        sort_by: str = "newest",
        limit: int = DEFAULT_METADATA_LIMIT,
        time_window: TimeWindow | None = None,
        doc_types: list[str] | None = None,
    ) -> MetadataQueryResult:
        owner = self._require_user(user_id)
        if limit < 1:
            raise QueryValidationError("limit must be at least 1")
        return self._metadata.query(
            user_id=owner,
            sort_by=sort_by,
            limit=limit,
            time_window=time_window,
            doc_types=doc_types,
        )

    async def parse_intent(self, raw_query: str) -> ParsedIntent:
        query = self._validate_query(raw_query)
        if self.intent_parser is None:
            logger.warning("No intent parser configured, treating query as content search")
            return ParsedIntent.fallback(query)
        return await self.intent_parser.parse(query)

    async def route(self, raw_query: str, *, user_id: str | None) -> RoutedQuery:
        """Parse intent, then run either a metadata query or a semantic search."""
        owner = self._require_user(user_id)
        intent = await self.parse_intent(raw_query)
        time_window = intent_time_window(intent)

        if intent.is_metadata_query:
            metadata = await asyncio.to_thread(
                self.query_by_metadata,
                user_id=owner,
                sort_by=intent.sort_by,
                limit=intent.limit or DEFAULT_METADATA_LIMIT,
                time_window=time_window,
                doc_types=intent.doc_types,
            )
            return RoutedQuery(intent=intent, mode="metadata", metadata=metadata)

        params = SearchParams(
            query=intent.search_query or raw_query,
            max_results=intent.limit or DEFAULT_MAX_RESULTS,
            time_window=time_window,
            doc_types=intent.doc_types,
        )
        response = await asyncio.to_thread(self.search, params, user_id=owner)
        return RoutedQuery(intent=intent, mode="semantic", search=response)

    async def answer(
        self,
        question: str,
        *,
        user_id: str | None,
        sources: list[str] | None = None,
        time_window: TimeWindow | None = None,
        doc_types: list[str] | None = None,
        max_results: int = ANSWER_MAX_RESULTS,
    ) -> Answer:
        """Search with the wider answer threshold and synthesise a cited answer."""
        if self.answer_synthesizer is None:
            raise RuntimeError("Answer synthesis is not configured for this service")
        params = SearchParams(
            query=question,
            max_results=max_results,
            similarity_threshold=ANSWER_SIMILARITY_THRESHOLD,
            sources=sources,
            time_window=time_window,
            doc_types=doc_types,
        )
        response = await asyncio.to_thread(self.search, params, user_id=user_id)
        return await self.answer_synthesizer.generate(params.query.strip(), response.results)

    def _record_history(self, user_id: str, query: str, sources: list[str] | None) -> None:
        try:
            self.storage.insert_search_history(
                user_id=user_id,
                query=query,
                sources=sources or None,
            )
        except Exception as exc:
            logger.warning("Failed to store search history: %s", exc)

    @staticmethod
    def _validate_query(query: str | None) -> str:
        if query is None or not query.strip():
            raise QueryValidationError("Query is required")
        return query.strip()

    @staticmethod
    def _require_user(user_id: str | None) -> str:
        if user_id is None or not user_id.strip():
            raise AuthorizationError("Unauthorized")
        return user_id.strip()


def intent_time_window(intent: ParsedIntent) -> TimeWindow | None:
    if intent.time_filter is None:
        return None
    return TimeWindow.from_bounds(
        intent.time_filter.start_date,
        intent.time_filter.end_date,
    )
