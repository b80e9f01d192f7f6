"""Tests for the search service over DuckDB storage."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from docsearch.answer import AnswerSynthesizer
from docsearch.errors import (
    AuthorizationError,
    EmbeddingServiceError,
    QueryValidationError,
    UpstreamServiceError,
)
from docsearch.search import IntentParser, SearchParams, SearchService, TimeWindow
from docsearch.search.filters import DOCX_MIME, PDF_MIME


@pytest.fixture()
def service(storage, embedding_provider) -> SearchService:
    return SearchService(storage=storage, embedding_provider=embedding_provider)


def test_search_ranks_matching_chunks_for_the_user(service, storage, seed_document) -> None:
    invoice_id = seed_document(
        user_id="alice",
        title="March billing",
        chunks=["Invoice for March consulting.", "Payment terms are thirty days."],
    )
    seed_document(user_id="alice", title="Dinner", chunks=["A recipe for soup."])
    seed_document(user_id="bob", title="Bob billing", chunks=["Invoice for Bob."])

    response = service.search(SearchParams(query="invoice"), user_id="alice")

    assert response.total_results == 1
    result = response.results[0]
    assert result.document_id == invoice_id
    assert result.chunk_text == "Invoice for March consulting."
    assert result.similarity == pytest.approx(1.0)
    assert response.to_dict()["config"]["similarityWeight"] == 0.5

    history = storage.list_search_history(user_id="alice")
    assert [entry.query for entry in history] == ["invoice"]
    assert history[0].sources is None
    assert storage.list_search_history(user_id="bob") == []


def test_search_caps_chunks_per_document(service, seed_document) -> None:
    seed_document(
        user_id="alice",
        title="Ledger",
        chunks=[f"Invoice number {index}." for index in range(4)],
    )

    response = service.search(SearchParams(query="invoice"), user_id="alice")

    assert [result.chunk_index for result in response.results] == [0, 1, 2]


def test_search_truncates_to_max_results(service, seed_document) -> None:
    for index in range(4):
        seed_document(user_id="alice", title=f"Bill {index}", chunks=["Invoice attached."])

    response = service.search(SearchParams(query="invoice", max_results=2), user_id="alice")

    assert response.total_results == 2


def test_search_respects_sources_time_window_and_doc_types(service, storage, seed_document) -> None:
    old_pdf = seed_document(
        user_id="alice",
        title="Old",
        chunks=["Invoice from last year."],
        created_at=datetime(2024, 1, 10, tzinfo=timezone.utc),
    )
    new_pdf = seed_document(
        user_id="alice",
        title="New",
        chunks=["Invoice from this year."],
        created_at=datetime(2025, 1, 10, tzinfo=timezone.utc),
    )
    new_docx = seed_document(
        user_id="alice",
        title="Word",
        chunks=["Invoice drafted in Word."],
        file_type=DOCX_MIME,
        created_at=datetime(2025, 1, 11, tzinfo=timezone.utc),
    )

    by_time = service.search(
        SearchParams(query="invoice", time_window=TimeWindow.from_bounds("2025-01-01", None)),
        user_id="alice",
    )
    by_type = service.search(
        SearchParams(query="invoice", doc_types=["pdf"]),
        user_id="alice",
    )
    by_source = service.search(
        SearchParams(query="invoice", sources=[old_pdf]),
        user_id="alice",
    )

    assert {result.document_id for result in by_time.results} == {new_pdf, new_docx}
    assert {result.document_id for result in by_type.results} == {old_pdf, new_pdf}
    assert [result.document_id for result in by_source.results] == [old_pdf]
    history = storage.list_search_history(user_id="alice")
    assert len(history) == 3
    assert [old_pdf] in [entry.sources for entry in history]


def test_search_without_matches_writes_no_history(service, storage, seed_document) -> None:
    seed_document(user_id="alice", title="Dinner", chunks=["A recipe for soup."])

    response = service.search(SearchParams(query="travel"), user_id="alice")

    assert response.no_results
    assert storage.list_search_history(user_id="alice") == []


def test_malformed_embedding_aborts_search(service, storage, embedding_client, seed_document) -> None:
    seed_document(user_id="alice", title="Bill", chunks=["Invoice attached."])
    embedding_client.models.malformed = True

    with pytest.raises(UpstreamServiceError) as excinfo:
        service.search(SearchParams(query="invoice"), user_id="alice")

    assert isinstance(excinfo.value, EmbeddingServiceError)
    assert storage.list_search_history(user_id="alice") == []


@pytest.mark.parametrize("query", ["", "   ", None])
def test_empty_query_rejected_before_embedding(service, embedding_client, query) -> None:
    with pytest.raises(QueryValidationError):
        service.search(SearchParams(query=query), user_id="alice")  # type: ignore[arg-type]

    assert embedding_client.models.calls == []


@pytest.mark.parametrize("user_id", [None, "", "  "])
def test_search_requires_user(service, embedding_client, user_id) -> None:
    with pytest.raises(AuthorizationError):
        service.search(SearchParams(query="invoice"), user_id=user_id)

    assert embedding_client.models.calls == []


@pytest.mark.parametrize(
    "params",
    [
        SearchParams(query="invoice", max_results=0),
        SearchParams(query="invoice", similarity_threshold=1.5),
        SearchParams(query="invoice", similarity_threshold=-0.1),
    ],
)
def test_invalid_search_parameters_rejected(service, params) -> None:
    with pytest.raises(QueryValidationError):
        service.search(params, user_id="alice")


def test_history_failure_does_not_fail_search(service, storage, seed_document, monkeypatch) -> None:
    seed_document(user_id="alice", title="Bill", chunks=["Invoice attached."])

    def _broken(**kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(storage, "insert_search_history", _broken)

    response = service.search(SearchParams(query="invoice"), user_id="alice")

    assert response.total_results == 1


# ---------------------------------------------------------------------------
# Metadata queries
# ---------------------------------------------------------------------------


def _seed_library(seed_document) -> dict[str, str]:
    base = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)
    return {
        "first": seed_document(user_id="alice", title="First", chunks=["one"], created_at=base),
        "second": seed_document(
            user_id="alice",
            title="Second",
            chunks=["two"],
            file_type=DOCX_MIME,
            created_at=base + timedelta(days=1),
        ),
        "third": seed_document(
            user_id="alice", title="Third", chunks=["three"], created_at=base + timedelta(days=2)
        ),
        "bobs": seed_document(
            user_id="bob", title="Bob's", chunks=["four"], created_at=base + timedelta(days=3)
        ),
    }


def test_metadata_query_sorts_by_creation_date(service, seed_document) -> None:
    ids = _seed_library(seed_document)

    newest = service.query_by_metadata(user_id="alice", sort_by="newest", limit=2)
    oldest = service.query_by_metadata(user_id="alice", sort_by="oldest", limit=10)

    assert [doc.id for doc in newest.documents] == [ids["third"], ids["second"]]
    assert [doc.id for doc in oldest.documents] == [ids["first"], ids["second"], ids["third"]]
    assert oldest.total_count == 3
    payload = newest.to_dict()
    assert payload["totalCount"] == 2
    assert payload["documents"][0]["title"] == "Third"
    assert set(payload["documents"][0]) == {
        "id",
        "title",
        "fileName",
        "fileType",
        "fileSize",
        "sourceType",
        "createdAt",
        "updatedAt",
    }


def test_metadata_query_filters_by_type_and_window(service, seed_document) -> None:
    ids = _seed_library(seed_document)

    pdfs = service.query_by_metadata(user_id="alice", doc_types=["pdf"])
    windowed = service.query_by_metadata(
        user_id="alice",
        time_window=TimeWindow.from_bounds("2025-03-02", "2025-03-02"),
    )
    unknown_type = service.query_by_metadata(user_id="alice", doc_types=["spreadsheet"])

    assert [doc.id for doc in pdfs.documents] == [ids["third"], ids["first"]]
    assert all(doc.file_type == PDF_MIME for doc in pdfs.documents)
    assert [doc.id for doc in windowed.documents] == [ids["second"]]
    assert unknown_type.total_count == 3


def test_metadata_query_is_idempotent(service, seed_document) -> None:
    _seed_library(seed_document)

    first = service.query_by_metadata(user_id="alice", sort_by="newest", limit=5)
    second = service.query_by_metadata(user_id="alice", sort_by="newest", limit=5)

    assert first.to_dict() == second.to_dict()


def test_metadata_query_requires_user(service) -> None:
    with pytest.raises(AuthorizationError):
        service.query_by_metadata(user_id=None)


# ---------------------------------------------------------------------------
# Routing and answers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_route_runs_metadata_query_for_latest_document(
    storage, embedding_provider, embedding_client, seed_document, genai_client
) -> None:
    ids = _seed_library(seed_document)
    reply = json.dumps(
        {
            "searchQuery": None,
            "sortBy": "newest",
            "timeFilter": None,
            "docTypes": None,
            "limit": 1,
            "isMetadataQuery": True,
            "owner": None,
        }
    )
    service = SearchService(
        storage=storage,
        embedding_provider=embedding_provider,
        intent_parser=IntentParser(client=genai_client([reply])),
    )

    routed = await service.route("latest document", user_id="alice")

    assert routed.mode == "metadata"
    assert routed.metadata is not None
    assert [doc.id for doc in routed.metadata.documents] == [ids["third"]]
    assert embedding_client.models.calls == []
    payload = routed.to_dict()
    assert payload["intent"]["isMetadataQuery"] is True
    assert payload["totalCount"] == 1


@pytest.mark.asyncio
async def test_route_falls_back_to_semantic_search(
    storage, embedding_provider, seed_document, genai_client
) -> None:
    invoice_id = seed_document(user_id="alice", title="Bill", chunks=["Invoice attached."])
    service = SearchService(
        storage=storage,
        embedding_provider=embedding_provider,
        intent_parser=IntentParser(client=genai_client(["{broken"])),
    )

    routed = await service.route("invoice", user_id="alice")

    assert routed.mode == "semantic"
    assert routed.intent.search_query == "invoice"
    assert routed.search is not None
    assert [result.document_id for result in routed.search.results] == [invoice_id]
    assert routed.to_dict()["totalResults"] == 1


@pytest.mark.asyncio
async def test_parse_intent_without_parser_uses_fallback(service) -> None:
    intent = await service.parse_intent("  contract renewal ")

    assert intent.search_query == "contract renewal"
    assert intent.is_metadata_query is False


@pytest.mark.asyncio
async def test_answer_uses_wider_threshold(
    storage, embedding_provider, seed_document, genai_client
) -> None:
    weak_id = seed_document(
        user_id="alice",
        title="Statement",
        chunks=["invoice invoice invoice contract"],
    )
    client = genai_client(["According to Source 1, the contract is mentioned."])
    service = SearchService(
        storage=storage,
        embedding_provider=embedding_provider,
        answer_synthesizer=AnswerSynthesizer(client=client),
    )

    strict = service.search(SearchParams(query="contract"), user_id="alice")
    answer = await service.answer("contract", user_id="alice")

    assert strict.no_results
    assert [source.document_id for source in answer.sources] == [weak_id]
    assert answer.answer.startswith("According to Source 1")
    assert "[Source 1] Statement" in client.calls[0]["contents"]


@pytest.mark.asyncio
async def test_answer_without_matches_returns_no_information(
    storage, embedding_provider, genai_client
) -> None:
    client = genai_client(["unused"])
    service = SearchService(
        storage=storage,
        embedding_provider=embedding_provider,
        answer_synthesizer=AnswerSynthesizer(client=client),
    )

    answer = await service.answer("travel plans", user_id="alice")

    assert answer.sources == []
    assert "couldn't find any relevant information" in answer.answer
    assert client.calls == []
