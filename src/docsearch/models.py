import re
from datetime import date
from typing import Annotated, Literal, TypeAlias

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator,
)

SortBy: TypeAlias = Literal["relevance", "newest", "oldest"]

_ISO_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


class IntentTimeFilter(BaseModel):
    """Absolute calendar bounds resolved from a relative time expression"""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    start_date: StrictStr | None = Field(
        default=None,
        alias="startDate",
        description="Inclusive start date, YYYY-MM-DD",
    )
    end_date: StrictStr | None = Field(
        default=None,
        alias="endDate",
        description="Inclusive end date, YYYY-MM-DD",
    )

    @field_validator("start_date", "end_date")
    @classmethod
    def _calendar_date(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not _ISO_DATE_RE.fullmatch(value):
            raise ValueError(f"expected YYYY-MM-DD, got {value!r}")
        date.fromisoformat(value)
        return value


class ParsedIntent(BaseModel):
    """Structured search parameters extracted from a natural-language query"""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    search_query: StrictStr | None = Field(
        default=None,
        alias="searchQuery",
        description="The semantic search query to use, or null if purely metadata-based",
    )
    sort_by: SortBy = Field(
        default="relevance",
        alias="sortBy",
        description="Result ordering",
    )
    time_filter: IntentTimeFilter | None = Field(
        default=None,
        alias="timeFilter",
        description="Creation date window, or null",
    )
    doc_types: list[StrictStr] | None = Field(
        default=None,
        alias="docTypes",
        description="Document type labels such as pdf or docx, or null",
    )
    limit: Annotated[StrictInt, Field(gt=0)] | None = Field(
        default=None,
        description="Number of results requested, or null",
    )
    is_metadata_query: StrictBool = Field(
        default=False,
        alias="isMetadataQuery",
        description="True if the query is about document metadata (latest, oldest, count) rather than content",
    )
    owner: StrictStr | None = Field(
        default=None,
        description="Person's name if mentioned as document owner/author",
    )

    @classmethod
    def fallback(cls, query: str) -> "ParsedIntent":
        """Treat the whole query as a plain content search"""
        return cls(search_query=query)


class AnswerSource(BaseModel):
    """A ranked chunk cited by a generated answer"""

    model_config = ConfigDict(populate_by_name=True)

    source_number: int = Field(alias="sourceNumber", description="1-based citation number")
    document_title: str = Field(alias="documentTitle")
    file_name: str = Field(alias="fileName")
    chunk_text: str = Field(alias="chunkText")
    similarity: float
    document_id: str = Field(alias="documentId")


class Answer(BaseModel):
    """Prose answer with the sources it was grounded on"""

    answer: str
    sources: list[AnswerSource] = Field(default_factory=list)
    question: str
