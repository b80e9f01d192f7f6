"""
Candidate filtering by ownership, source, creation time and document type.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Mapping

from ..errors import QueryValidationError
from ..storage import ChunkMatch, DocumentRecord


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_START_OF_DAY = time(0, 0, 0, 0)
_END_OF_DAY = time(23, 59, 59, 999000)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

DOC_TYPE_MIME_TYPES: dict[str, tuple[str, ...]] = {
    "pdf": (PDF_MIME,),
    "docx": (DOCX_MIME,),
    "word": (DOCX_MIME,),
    "txt": ("text/plain",),
    "text": ("text/plain",),
    "md": ("text/markdown",),
    "markdown": ("text/markdown",),
    "notion": ("application/vnd.notion.page",),
    "gdoc": ("application/vnd.google-apps.document",),
    "google doc": ("application/vnd.google-apps.document",),
}


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive creation-time bounds, both optional, both UTC-aware."""

    start: datetime | None = None
    end: datetime | None = None

    @classmethod
    def from_bounds(
        cls,
        start_date: str | date | datetime | None = None,
        end_date: str | date | datetime | None = None,
    ) -> TimeWindow | None:
        """Build a window from raw bounds, or ``None`` when both are absent.

        Date-only bounds widen to the start of the day (start) and the last
        millisecond of the day (end).
        """
        start = normalize_bound(start_date, end_of_day=False)
        end = normalize_bound(end_date, end_of_day=True)
        if start is None and end is None:
            return None
        return cls(start=start, end=end)

    def contains(self, moment: datetime) -> bool:
        value = _as_utc(moment)
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


def normalize_bound(
    raw: str | date | datetime | None,
    *,
    end_of_day: bool,
) -> datetime | None:
    """Turn a time-filter bound into a UTC-aware datetime."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return _as_utc(raw)
    if isinstance(raw, date):
        return _widen_date(raw, end_of_day=end_of_day)

    text = raw.strip()
    if not text:
        return None
    if _DATE_ONLY_RE.match(text):
        try:
            parsed_date = date.fromisoformat(text)
        except ValueError as exc:
            raise QueryValidationError(f"Invalid date in time filter: {raw!r}") from exc
        return _widen_date(parsed_date, end_of_day=end_of_day)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise QueryValidationError(f"Invalid timestamp in time filter: {raw!r}") from exc
    return _as_utc(parsed)


def resolve_mime_types(doc_types: list[str] | None) -> list[str]:
    """Map human document-type labels to MIME types.

    Values that already look like MIME types pass through unchanged; unknown
    labels are ignored.
    """
    if not doc_types:
        return []
    resolved: list[str] = []
    for raw in doc_types:
        label = raw.strip().lower()
        if not label:
            continue
        if "/" in label:
            candidates: tuple[str, ...] = (label,)
        else:
            candidates = DOC_TYPE_MIME_TYPES.get(label.lstrip("."), ())
        for mime in candidates:
            if mime not in resolved:
                resolved.append(mime)
    return resolved


def filter_candidates(
    candidates: list[ChunkMatch],
    documents: Mapping[str, DocumentRecord],
    *,
    user_id: str,
    source_ids: list[str] | None = None,
    time_window: TimeWindow | None = None,
    doc_types: list[str] | None = None,
) -> list[ChunkMatch]:
    """Keep candidates whose parent document satisfies every given predicate."""
    allowed_sources = set(source_ids) if source_ids else None
    allowed_types = set(resolve_mime_types(doc_types)) if doc_types else None

    kept: list[ChunkMatch] = []
    for candidate in candidates:
        document = documents.get(candidate.document_id)
        if document is None or document.user_id != user_id:
            continue
        if allowed_sources is not None and candidate.document_id not in allowed_sources:
            continue
        if time_window is not None and not time_window.contains(document.created_at):
            continue
        if allowed_types is not None and document.file_type.lower() not in allowed_types:
            continue
        kept.append(candidate)
    return kept


def _widen_date(value: date, *, end_of_day: bool) -> datetime:
    return datetime.combine(
        value, _END_OF_DAY if end_of_day else _START_OF_DAY, tzinfo=timezone.utc
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
