"""Ingestion components for docsearch."""

from .chunker import TextChunk, TextChunker
from .pipeline import DocumentInput, IngestionPipeline, IngestionResult

__all__ = [
    "TextChunk",
    "TextChunker",
    "DocumentInput",
    "IngestionPipeline",
    "IngestionResult",
]
