"""
Natural-language query intent parsing.

A Gemini model classifies the query into a ``ParsedIntent``: either a
metadata-only request (sort/filter documents) or a content search. Its JSON
answer is validated against the pydantic schema; any failure degrades to a
plain content search over the raw query.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from google.genai import Client as GenAIClient
from pydantic import ValidationError

from ..config import resolve_api_key, resolve_generation_model
from ..errors import QueryValidationError
from ..logging_setup import get_logger
from ..models import ParsedIntent


logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*", flags=re.IGNORECASE)

SYSTEM_PROMPT_TEMPLATE = """
You parse search requests for a personal document library into structured parameters.

Today's date is {today}.

Respond with ONLY a JSON object with these keys:
- "searchQuery": the text to search document content with, or null when the request is only about document metadata
- "sortBy": "relevance", "newest" or "oldest"
- "timeFilter": {{"startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"}} or null
- "docTypes": list of document type labels such as "pdf" or "docx", or null
- "limit": how many results the user asked for, or null
- "isMetadataQuery": true when the request is about recency, count or type of documents rather than their content
- "owner": the name of a person mentioned as author or owner, or null

Resolve relative time expressions ("yesterday", "last week", "this month", "last 3 days") into absolute dates relative to {today}.
Requests that only mention time, type or count (such as "files from yesterday" or "latest uploaded this week") are metadata queries.
Set isMetadataQuery to false whenever the user asks about what documents say.

When an owner or author is mentioned, put the name in "owner" and write searchQuery as
"author:<name> OR owner:<name> OR by <name> OR created by <name>", prefixed by the topic when there is one.

Examples:
- "latest document" -> {{"searchQuery": null, "sortBy": "newest", "timeFilter": null, "docTypes": null, "limit": 1, "isMetadataQuery": true, "owner": null}}
- "show me the 5 newest PDFs" -> {{"searchQuery": null, "sortBy": "newest", "timeFilter": null, "docTypes": ["pdf"], "limit": 5, "isMetadataQuery": true, "owner": null}}
- "oldest files" -> {{"searchQuery": null, "sortBy": "oldest", "timeFilter": null, "docTypes": null, "limit": 10, "isMetadataQuery": true, "owner": null}}
- "what is our refund policy" -> {{"searchQuery": "refund policy", "sortBy": "relevance", "timeFilter": null, "docTypes": null, "limit": null, "isMetadataQuery": false, "owner": null}}
- "docs by Sarah" -> {{"searchQuery": "author:Sarah OR owner:Sarah OR by Sarah OR created by Sarah", "sortBy": "relevance", "timeFilter": null, "docTypes": null, "limit": null, "isMetadataQuery": false, "owner": "Sarah"}}
"""


def build_system_prompt(today: date) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(today=today.isoformat())


def owner_search_terms(owner: str) -> str:
    return f"author:{owner} OR owner:{owner} OR by {owner} OR created by {owner}"


def strip_code_fences(content: str) -> str:
    return _FENCE_RE.sub("", content).replace("```", "").strip()


def finalize_intent(intent: ParsedIntent, raw_query: str) -> ParsedIntent:
    """Apply the invariants the model is asked for but not trusted with."""
    updates: dict[str, Any] = {}

    owner = (intent.owner or "").strip() or None
    if owner != intent.owner:
        updates["owner"] = owner

    search_query = (intent.search_query or "").strip() or None
    if owner is not None:
        author_terms = owner_search_terms(owner)
        if search_query is None:
            search_query = author_terms
        elif f"author:{owner}".lower() not in search_query.lower():
            search_query = f"{search_query} {author_terms}"
    if search_query is None and not intent.is_metadata_query:
        search_query = raw_query
    if search_query != intent.search_query:
        updates["search_query"] = search_query

    if not updates:
        return intent
    return intent.model_copy(update=updates)


class IntentParser:
    """Classify raw queries with Gemini, falling back to a content search."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = resolve_generation_model(model)
        if client is not None:
            self._client = client
        else:
            self._client = GenAIClient(api_key=resolve_api_key(api_key))

    async def parse(self, raw_query: str, *, today: date | None = None) -> ParsedIntent:
        query = raw_query.strip() if raw_query else ""
        if not query:
            raise QueryValidationError("Query is required")

        reference_day = today or datetime.now(timezone.utc).date()
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=query,
                config={
                    "system_instruction": build_system_prompt(reference_day),
                    "response_mime_type": "application/json",
                    "response_json_schema": ParsedIntent.model_json_schema(),
                },
            )
            content = getattr(response, "text", None)
        except Exception as exc:
            logger.warning("Intent classification failed, using fallback: %s", exc)
            return ParsedIntent.fallback(query)

        if not isinstance(content, str) or not content.strip():
            logger.warning("Intent classification returned no content, using fallback")
            return ParsedIntent.fallback(query)

        try:
            intent = ParsedIntent.model_validate_json(strip_code_fences(content))
        except ValidationError as exc:
            logger.warning(
                "Intent response failed schema validation, using fallback: %s",
                exc.errors(include_url=False),
            )
            return ParsedIntent.fallback(query)

        intent = finalize_intent(intent, query)
        logger.info(
            "Parsed intent: metadata=%s sort=%s limit=%s owner=%s",
            intent.is_metadata_query,
            intent.sort_by,
            intent.limit,
            intent.owner,
        )
        return intent
