# =============================================================================
# Purpose:
#   Pydantic v2 models used by the book search service HTTP API.
#
# Responsibilities:
#   - Define the Book record shared by every search strategy and the exporter.
#   - Define the wire format for /search (proxy) and /api/books (orchestrator).
#   - Keep field names stable via camelCase aliases to match the browser UI.
# =============================================================================

import math
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .errors import ValidationError

# Supported search fields.
SearchType = Literal["title", "author", "publisher"]

# Strategy tags, in fallback order.
# - "sparql": linked-data endpoint returned matching records
# - "alternative": bibliography search page + catalog generator
# - "dummy": static placeholder records
# - "failed": nothing worked
SearchMethod = Literal["sparql", "alternative", "dummy", "failed"]


class Book(BaseModel):
    """
    One bibliographic record. Every field is a plain string; missing values are "".
    """
    id: str
    title: str
    author: str = ""
    publisher: str = ""
    publish_year: str = Field("", alias="publishYear")
    isbn: str = ""
    classification: str = ""
    subject: str = ""
    extent: str = ""
    language: str = ""
    call_number: str = Field("", alias="callNumber")

    model_config = {"populate_by_name": True}


@dataclass(frozen=True)
class SearchRequest:
    """
    One user action: a keyword on a field, for one page of results.
    """
    keyword: str
    search_type: str = "publisher"
    limit: int = 50
    page: int = 1


def require_keyword(keyword: Optional[str]) -> str:
    """Return the trimmed keyword; blank or missing raises ValidationError."""
    if not keyword or not keyword.strip():
        raise ValidationError("keyword is required")
    return keyword.strip()


def total_pages(total_count: int, limit: int) -> int:
    return math.ceil(total_count / limit) if limit > 0 else 0


class PaginatedBooks(BaseModel):
    """
    One page of results from the alternative source.
    """
    books: List[Book]
    total_count: int = Field(..., alias="totalCount", ge=0)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total_pages: int = Field(..., alias="totalPages", ge=0)
    note: Optional[str] = None

    model_config = {"populate_by_name": True}


class SearchResult(BaseModel):
    """
    Envelope returned by the unified search.

    `method` names the strategy that produced the books; `error` carries the
    user-facing message when the result is degraded (dummy) or empty (failed).
    """
    books: List[Book]
    method: SearchMethod
    total_count: int = Field(..., alias="totalCount", ge=0)
    page: int
    limit: int
    total_pages: int = Field(..., alias="totalPages", ge=0)
    error: Optional[str] = None
    note: Optional[str] = None

    model_config = {"populate_by_name": True}


class NlQuery(BaseModel):
    keyword: str
    search_type: str = Field(..., alias="searchType")
    sch_fld: str = Field(..., alias="schFld")

    model_config = {"populate_by_name": True}


class NlSearchResponse(BaseModel):
    """
    Response shape for GET /search (bibliography search proxy).
    """
    total_count: int = Field(..., alias="totalCount")
    actual_results: int = Field(..., alias="actualResults")
    page: int
    limit: int
    total_pages: int = Field(..., alias="totalPages")
    books: List[Book]
    source: str = "NL_SEOJI_SYSTEM"
    query: NlQuery
    note: Optional[str] = None

    model_config = {"populate_by_name": True}


class ExportRequest(BaseModel):
    """
    Body for POST /api/export: records already fetched by the browser.
    """
    books: List[Book]
    filename: Optional[str] = None


class MethodStatus(BaseModel):
    """
    Response for GET /api/status: which live strategies currently answer.
    """
    sparql: bool
    alternative: bool


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded", "down"]
    service: str
    publishers: Optional[Dict[str, int]] = None
