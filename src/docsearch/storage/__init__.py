"""Storage backends for docsearch."""

from .base import (
    ChunkMatch,
    ChunkRecord,
    DocumentRecord,
    SearchHistoryRecord,
    SortOrder,
    SourceType,
    StorageBackend,
)
from .duckdb import DuckDBStorage

__all__ = [
    "ChunkMatch",
    "ChunkRecord",
    "DocumentRecord",
    "SearchHistoryRecord",
    "SortOrder",
    "SourceType",
    "StorageBackend",
    "DuckDBStorage",
]
