"""
Configuration helpers resolved from the environment.
"""

from __future__ import annotations

import os
from pathlib import Path


DEFAULT_DB_PATH = "~/.docsearch/index.duckdb"
ENV_DB_PATH = "DOCSEARCH_DB_PATH"

ENV_GENERATION_MODEL = "DOCSEARCH_GENERATION_MODEL"
DEFAULT_GENERATION_MODEL = "gemini-2.5-flash"

DEFAULT_MAX_RESULTS = 20
DEFAULT_SIMILARITY_THRESHOLD = 0.7
# Answer synthesis casts a wider net than interactive search.
ANSWER_SIMILARITY_THRESHOLD = 0.15
ANSWER_MAX_RESULTS = 5
MAX_CHUNKS_PER_DOCUMENT = 3


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) DOCSEARCH_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def resolve_generation_model(override: str | None = None) -> str:
    """Return the Gemini model used for intent parsing and answers."""
    return override or os.getenv(ENV_GENERATION_MODEL, DEFAULT_GENERATION_MODEL)


def resolve_api_key(override: str | None = None) -> str:
    """Return the Google API key or raise ``ValueError`` when it is unset."""
    resolved_key = override or os.getenv("GOOGLE_API_KEY")
    if resolved_key is None:
        raise ValueError(
            "GOOGLE_API_KEY not found. "
            "Provide api_key or set the environment variable."
        )
    return resolved_key
