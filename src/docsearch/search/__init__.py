"""Search pipeline: retrieval, filtering, ranking, intent routing."""

from .diversity import limit_diversity
from .filters import TimeWindow, filter_candidates, resolve_mime_types
from .intent import IntentParser
from .metadata import MetadataQueryExecutor, MetadataQueryResult
from .query import RoutedQuery, SearchParams, SearchResponse, SearchService
from .ranker import (
    DEFAULT_RANKING_CONFIG,
    RankedResult,
    RankingConfig,
    rank_results,
)
from .semantic import SemanticSearchEngine

__all__ = [
    "limit_diversity",
    "TimeWindow",
    "filter_candidates",
    "resolve_mime_types",
    "IntentParser",
    "MetadataQueryExecutor",
    "MetadataQueryResult",
    "RoutedQuery",
    "SearchParams",
    "SearchResponse",
    "SearchService",
    "DEFAULT_RANKING_CONFIG",
    "RankedResult",
    "RankingConfig",
    "rank_results",
    "SemanticSearchEngine",
]
