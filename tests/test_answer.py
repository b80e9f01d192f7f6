"""Tests for cited answer synthesis."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from docsearch.answer import NO_RESULTS_ANSWER, AnswerSynthesizer, build_context, build_sources
from docsearch.search.ranker import RankedResult


def _result(index: int, title: str) -> RankedResult:
    return RankedResult(
        id=f"chunk-{index}",
        document_id=f"doc-{index}",
        document_title=title,
        file_name=f"{title.lower()}.pdf",
        file_type="application/pdf",
        chunk_text=f"{title} says something important.",
        chunk_index=0,
        similarity=0.8,
        recency_score=1.0,
        position_score=1.0,
        metadata_score=0.0,
        final_score=0.75,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_sources_are_numbered_from_one_in_result_order() -> None:
    sources = build_sources([_result(1, "Lease"), _result(2, "Invoice")])

    assert [source.source_number for source in sources] == [1, 2]
    assert sources[1].document_title == "Invoice"
    context = build_context(sources)
    assert context.startswith("[Source 1] Lease (lease.pdf):")
    assert "[Source 2] Invoice (invoice.pdf):\nInvoice says something important." in context


@pytest.mark.asyncio
async def test_no_results_skips_the_model(genai_client) -> None:
    client = genai_client(["should not be used"])
    synthesizer = AnswerSynthesizer(client=client)

    answer = await synthesizer.generate("What is the rent?", [])

    assert answer.answer == NO_RESULTS_ANSWER
    assert answer.sources == []
    assert client.calls == []


@pytest.mark.asyncio
async def test_answer_cites_sources(genai_client) -> None:
    client = genai_client(["According to Source 1, the rent is $1,200."])
    synthesizer = AnswerSynthesizer(client=client, model="answer-model")

    answer = await synthesizer.generate("What is the rent?", [_result(1, "Lease")])

    assert answer.answer == "According to Source 1, the rent is $1,200."
    assert answer.question == "What is the rent?"
    assert answer.sources[0].document_id == "doc-1"
    call = client.calls[0]
    assert call["model"] == "answer-model"
    assert "[Source 1] Lease" in call["contents"]
    assert "Question: What is the rent?" in call["contents"]

    payload = answer.model_dump(by_alias=True)
    assert payload["sources"][0]["sourceNumber"] == 1
    assert payload["sources"][0]["documentTitle"] == "Lease"


@pytest.mark.asyncio
async def test_model_failure_still_returns_sources(genai_client) -> None:
    synthesizer = AnswerSynthesizer(client=genai_client([RuntimeError("model overloaded")]))

    answer = await synthesizer.generate("What is due?", [_result(1, "Invoice")])

    assert "couldn't generate an answer" in answer.answer
    assert "model overloaded" in answer.answer
    assert len(answer.sources) == 1


@pytest.mark.asyncio
async def test_empty_model_reply_still_returns_sources(genai_client) -> None:
    synthesizer = AnswerSynthesizer(client=genai_client(["   "]))

    answer = await synthesizer.generate("What is due?", [_result(1, "Invoice")])

    assert "empty response" in answer.answer
    assert answer.sources[0].source_number == 1
