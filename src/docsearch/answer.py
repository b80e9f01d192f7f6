"""
Cited answer generation over ranked search results.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from google.genai import Client as GenAIClient

from .config import resolve_api_key, resolve_generation_model
from .logging_setup import get_logger
from .models import Answer, AnswerSource

if TYPE_CHECKING:
    from .search.ranker import RankedResult


logger = get_logger(__name__)

SYSTEM_PROMPT = """
You answer questions about a user's own documents using only the context you are given.

- Answer directly and concisely.
- Only use information found in the context; say so when it is not enough.
- Cite sources by number when you use them, for example "According to Source 2, ...".
- Do not speculate.
- Use short paragraphs or bullet points where they help.
"""

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information in the knowledge base to answer "
    "your question. Please try rephrasing or ask something else."
)


def build_sources(results: Sequence[RankedResult]) -> list[AnswerSource]:
    """Number results 1..n in their final order for citation."""
    return [
        AnswerSource(
            source_number=index,
            document_title=result.document_title,
            file_name=result.file_name,
            chunk_text=result.chunk_text,
            similarity=result.similarity,
            document_id=result.document_id,
        )
        for index, result in enumerate(results, start=1)
    ]


def build_context(sources: Sequence[AnswerSource]) -> str:
    return "\n\n".join(
        f"[Source {source.source_number}] {source.document_title} "
        f"({source.file_name}):\n{source.chunk_text}"
        for source in sources
    )


def build_user_prompt(question: str, context: str) -> str:
    return (
        f"Context from knowledge base:\n{context}\n\n"
        f"Question: {question}\n\n"
        "Please provide a comprehensive answer based on the context above."
    )


class AnswerSynthesizer:
    """Turn the top ranked chunks into a prose answer with citations."""

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

    async def generate(
        self,
        question: str,
        results: Sequence[RankedResult],
    ) -> Answer:
        if not results:
            logger.info("No search results, returning the no-information answer")
            return Answer(answer=NO_RESULTS_ANSWER, sources=[], question=question)

        sources = build_sources(results)
        prompt = build_user_prompt(question, build_context(sources))
        logger.info(
            "Generating answer from %d sources (%d prompt chars)",
            len(sources),
            len(prompt),
        )

        # Sources are returned even when the model fails.
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config={"system_instruction": SYSTEM_PROMPT},
            )
            text = getattr(response, "text", None)
        except Exception as exc:
            logger.error("Answer generation failed: %s", exc)
            return Answer(
                answer=(
                    "I found relevant documents but couldn't generate an answer: "
                    f"{exc}. Please review the sources below."
                ),
                sources=sources,
                question=question,
            )

        if not isinstance(text, str) or not text.strip():
            logger.error("Answer generation returned an empty response")
            return Answer(
                answer=(
                    "I found relevant documents but the AI returned an empty "
                    "response. Please review the sources below."
                ),
                sources=sources,
                question=question,
            )

        return Answer(answer=text.strip(), sources=sources, question=question)
