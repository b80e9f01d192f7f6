"""
Chunking utilities shared by every ingestion source.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal


ChunkStrategy = Literal["sentence", "paragraph"]

_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class TextChunk:
    """A content chunk with its document-order index and source offsets."""

    text: str
    index: int
    start_char: int
    end_char: int


class TextChunker:
    """
    Split extracted text into chunks of roughly ``chunk_size`` characters.

    ``sentence`` packs whole sentences until the next one would overflow the
    target (a single oversized sentence becomes its own chunk). ``paragraph``
    is a char window that prefers blank-line boundaries and overlaps
    neighbouring chunks by ``overlap`` characters.
    """

    def __init__(
        self,
        chunk_size: int = 512,
        *,
        strategy: ChunkStrategy = "sentence",
        overlap: int = 0,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        if overlap >= chunk_size:
            raise ValueError("overlap must be smaller than chunk_size")
        if strategy not in ("sentence", "paragraph"):
            raise ValueError(f"Unknown chunking strategy: {strategy!r}")

        self.chunk_size = chunk_size
        self.strategy = strategy
        self.overlap = overlap

    def chunk_text(self, text: str) -> list[TextChunk]:
        normalized = text.strip()
        if not normalized:
            return []
        if self.strategy == "sentence":
            return self._chunk_by_sentence(normalized)
        return self._chunk_by_paragraph(normalized)

    def _chunk_by_sentence(self, text: str) -> list[TextChunk]:
        spans: list[tuple[int, int]] = []
        start = 0
        for match in _SENTENCE_BREAK_RE.finditer(text):
            spans.append((start, match.start()))
            start = match.end()
        spans.append((start, len(text)))

        chunks: list[TextChunk] = []
        chunk_start: int | None = None
        chunk_end = 0
        for span_start, span_end in spans:
            if chunk_start is not None and span_end - chunk_start > self.chunk_size:
                self._append(chunks, text, chunk_start, chunk_end)
                chunk_start = None
            if chunk_start is None:
                chunk_start = span_start
            chunk_end = span_end

        if chunk_start is not None:
            self._append(chunks, text, chunk_start, chunk_end)
        return chunks

    def _chunk_by_paragraph(self, text: str) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        start = 0
        total = len(text)

        while start < total:
            tentative_end = min(start + self.chunk_size, total)
            end = tentative_end

            if tentative_end < total:
                boundary = text.rfind("\n\n", start + (self.chunk_size // 2), tentative_end)
                if boundary != -1:
                    end = boundary + 2

            self._append(chunks, text, start, end)

            if end >= total:
                break
            start = max(0, end - self.overlap)

        return chunks

    @staticmethod
    def _append(chunks: list[TextChunk], text: str, start: int, end: int) -> None:
        chunk_text = text[start:end].strip()
        if chunk_text:
            chunks.append(
                TextChunk(
                    text=chunk_text,
                    index=len(chunks),
                    start_char=start,
                    end_char=end,
                )
            )
