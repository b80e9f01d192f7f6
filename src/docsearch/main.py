import asyncio
import json
import mimetypes
import sys
from pathlib import Path
from typing import Annotated, Optional

from typer import Argument, Exit, Option, Typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .answer import AnswerSynthesizer
from .config import (
    ANSWER_MAX_RESULTS,
    DEFAULT_MAX_RESULTS,
    DEFAULT_SIMILARITY_THRESHOLD,
    resolve_db_path,
)
from .embeddings import EmbeddingProvider
from .errors import DocSearchError
from .indexing import DocumentInput, IngestionPipeline, TextChunker
from .logging_setup import configure_logging
from .search import IntentParser, SearchParams, SearchService, TimeWindow
from .search.metadata import MetadataQueryResult
from .search.query import SearchResponse
from .storage import DuckDBStorage

app = Typer(help="Semantic search over your own documents.")
console = Console()

UserOption = Annotated[
    str,
    Option("--user", "-u", envvar="DOCSEARCH_USER_ID", help="Owner of the documents."),
]
DbPathOption = Annotated[
    Optional[str],
    Option("--db-path", help="DuckDB file (defaults to DOCSEARCH_DB_PATH or ~/.docsearch)."),
]
StartOption = Annotated[
    Optional[str],
    Option("--from", help="Only documents created on or after this date (YYYY-MM-DD)."),
]
EndOption = Annotated[
    Optional[str],
    Option("--to", help="Only documents created on or before this date (YYYY-MM-DD)."),
]
DocTypeOption = Annotated[
    Optional[list[str]],
    Option("--type", help="Document type label such as pdf or docx. Repeatable."),
]
JsonOption = Annotated[bool, Option("--json", help="Print the raw JSON payload.")]


def _setup_logging() -> None:
    # Keep stdout clean for tables and --json output.
    configure_logging(default="WARNING", stream=sys.stderr)


def _open_storage(db_path: str | None, embedding_provider: EmbeddingProvider) -> DuckDBStorage:
    return DuckDBStorage(resolve_db_path(db_path), embedding_dim=embedding_provider.dim)


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/] {exc}")
    raise Exit(code=1)


def _print_search_response(response: SearchResponse) -> None:
    if response.no_results:
        console.print("[yellow]No matching documents found.[/]")
        return
    table = Table(title=f"{response.total_results} results")
    table.add_column("#", justify="right")
    table.add_column("Document")
    table.add_column("Score", justify="right")
    table.add_column("Similarity", justify="right")
    table.add_column("Excerpt")
    for index, result in enumerate(response.results, start=1):
        excerpt = result.chunk_text.replace("\n", " ")
        table.add_row(
            str(index),
            result.document_title,
            f"{result.final_score:.3f}",
            f"{result.similarity:.3f}",
            excerpt[:120] + ("..." if len(excerpt) > 120 else ""),
        )
    console.print(table)


def _print_documents(result: MetadataQueryResult) -> None:
    if not result.documents:
        console.print("[yellow]No documents match.[/]")
        return
    table = Table(title=f"{result.total_count} documents")
    table.add_column("Title")
    table.add_column("File")
    table.add_column("Type")
    table.add_column("Created")
    for document in result.documents:
        table.add_row(
            document.title,
            document.file_name,
            document.file_type,
            document.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def ingest(
    path: Annotated[Path, Argument(help="Text file holding the extracted document content.")],
    user: UserOption,
    title: Annotated[Optional[str], Option(help="Document title (defaults to the file name).")] = None,
    file_type: Annotated[
        Optional[str], Option("--file-type", help="MIME type of the original file.")
    ] = None,
    source_type: Annotated[str, Option("--source-type")] = "upload",
    source_id: Annotated[Optional[str], Option("--source-id")] = None,
    chunk_size: Annotated[int, Option("--chunk-size")] = 512,
    strategy: Annotated[str, Option(help="sentence or paragraph")] = "sentence",
    db_path: DbPathOption = None,
) -> None:
    """Chunk, embed and store one document."""
    _setup_logging()
    if not path.is_file():
        _fail(ValueError(f"No such file: {path}"))
    try:
        chunker = TextChunker(chunk_size, strategy=strategy)  # type: ignore[arg-type]
        embedding_provider = EmbeddingProvider()
        storage = _open_storage(db_path, embedding_provider)
    except ValueError as exc:
        _fail(exc)

    guessed_type, _ = mimetypes.guess_type(path.name)
    document = DocumentInput(
        user_id=user,
        title=title or path.stem,
        file_name=path.name,
        file_type=file_type or guessed_type or "text/plain",
        text=path.read_text(encoding="utf-8", errors="replace"),
        file_size=path.stat().st_size,
        source_type=source_type,  # type: ignore[arg-type]
        source_id=source_id,
    )
    try:
        pipeline = IngestionPipeline(storage, embedding_provider, chunker=chunker)
        result = pipeline.ingest(document)
    except DocSearchError as exc:
        _fail(exc)
    finally:
        storage.close()

    console.print(
        Panel(
            f"Document id: {result.document_id}\n"
            f"Chunks written: {result.chunks_written}\n"
            f"Chunks failed: {result.chunks_failed}",
            title=f"Ingested {path.name}",
            title_align="left",
            border_style="bold green",
        )
    )


@app.command()
def search(
    query: Annotated[str, Argument(help="Free-text search query.")],
    user: UserOption,
    max_results: Annotated[int, Option("--max-results", "-n")] = DEFAULT_MAX_RESULTS,
    threshold: Annotated[float, Option("--threshold")] = DEFAULT_SIMILARITY_THRESHOLD,
    start: StartOption = None,
    end: EndOption = None,
    doc_types: DocTypeOption = None,
    db_path: DbPathOption = None,
    as_json: JsonOption = False,
) -> None:
    """Run a ranked semantic search."""
    _setup_logging()
    try:
        embedding_provider = EmbeddingProvider()
        storage = _open_storage(db_path, embedding_provider)
    except ValueError as exc:
        _fail(exc)
    try:
        service = SearchService(storage=storage, embedding_provider=embedding_provider)
        response = service.search(
            SearchParams(
                query=query,
                max_results=max_results,
                similarity_threshold=threshold,
                time_window=TimeWindow.from_bounds(start, end),
                doc_types=doc_types or None,
            ),
            user_id=user,
        )
    except DocSearchError as exc:
        _fail(exc)
    finally:
        storage.close()

    if as_json:
        console.print_json(json.dumps(response.to_dict()))
    else:
        _print_search_response(response)


@app.command()
def query(
    text: Annotated[str, Argument(help="Natural-language request, e.g. 'latest pdf from last week'.")],
    user: UserOption,
    db_path: DbPathOption = None,
    as_json: JsonOption = False,
) -> None:
    """Parse a request's intent and run the matching query."""
    _setup_logging()
    try:
        embedding_provider = EmbeddingProvider()
        storage = _open_storage(db_path, embedding_provider)
        intent_parser = IntentParser()
    except ValueError as exc:
        _fail(exc)
    try:
        service = SearchService(
            storage=storage,
            embedding_provider=embedding_provider,
            intent_parser=intent_parser,
        )
        with console.status("Understanding your request..."):
            routed = asyncio.run(service.route(text, user_id=user))
    except DocSearchError as exc:
        _fail(exc)
    finally:
        storage.close()

    if as_json:
        console.print_json(json.dumps(routed.to_dict()))
        return
    console.print(f"[dim]Intent:[/] {routed.intent.model_dump_json(by_alias=True, exclude_none=True)}")
    if routed.metadata is not None:
        _print_documents(routed.metadata)
    elif routed.search is not None:
        _print_search_response(routed.search)


@app.command()
def ask(
    question: Annotated[str, Argument(help="Question to answer from your documents.")],
    user: UserOption,
    max_results: Annotated[int, Option("--max-results", "-n")] = ANSWER_MAX_RESULTS,
    db_path: DbPathOption = None,
) -> None:
    """Answer a question with citations to your documents."""
    _setup_logging()
    try:
        embedding_provider = EmbeddingProvider()
        storage = _open_storage(db_path, embedding_provider)
        synthesizer = AnswerSynthesizer()
    except ValueError as exc:
        _fail(exc)
    try:
        service = SearchService(
            storage=storage,
            embedding_provider=embedding_provider,
            answer_synthesizer=synthesizer,
        )
        with console.status("Working on your answer..."):
            answer = asyncio.run(
                service.answer(question, user_id=user, max_results=max_results)
            )
    except DocSearchError as exc:
        _fail(exc)
    finally:
        storage.close()

    console.print(
        Panel(
            Markdown(answer.answer),
            title_align="left",
            title="Answer",
            border_style="bold green",
        )
    )
    for source in answer.sources:
        console.print(
            f"[bold]Source {source.source_number}:[/] {source.document_title} "
            f"({source.file_name}) similarity {source.similarity:.2f}"
        )


@app.command()
def history(
    user: UserOption,
    limit: Annotated[int, Option("--limit", "-n")] = 20,
    db_path: DbPathOption = None,
) -> None:
    """Show your most recent searches."""
    storage = DuckDBStorage(resolve_db_path(db_path))
    try:
        entries = storage.list_search_history(user_id=user, limit=limit)
    finally:
        storage.close()

    if not entries:
        console.print("[yellow]No searches yet.[/]")
        return
    table = Table(title="Search history")
    table.add_column("When")
    table.add_column("Query")
    table.add_column("Sources")
    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.query,
            ", ".join(entry.sources) if entry.sources else "all",
        )
    console.print(table)


@app.command()
def serve(
    host: Annotated[str, Option(help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, Option(help="Port to listen on.")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)
