"""
SPARQL client for the national library's linked open data (LOD) endpoint.

The endpoint cannot do keyword search efficiently, so the client pulls a fixed
batch of book nodes and filters the bindings locally. Two degraded modes are
signalled through the records themselves:
  - no binding matches: up to 5 unfiltered samples, titles prefixed "[샘플]" and
    subjects annotated as not matching the keyword
  - no bindings at all: a single "no results" placeholder record
Callers should run is_placeholder() over the output before trusting it.
"""

import logging
from typing import Any, Dict, List
from urllib.parse import urlencode

import httpx

from .errors import SparqlQueryError, UpstreamError
from .models import Book
from .proxy import forward_sparql

logger = logging.getLogger(__name__)

RESULT_FORMAT = "application/sparql-results+json"
MAX_MATCHES = 10
MAX_SAMPLES = 5
NO_RESULTS_ID = "no-results"
SAMPLE_ID_PREFIX = "sample-book-"

BOOK_QUERY = """
PREFIX dc: <http://purl.org/dc/elements/1.1/>
PREFIX dcterms: <http://purl.org/dc/terms/>
PREFIX nlk: <http://lod.nl.go.kr/ontology/>

SELECT ?book ?title ?creator ?publisher ?subject ?year
WHERE {
  ?book a nlk:Book .
  OPTIONAL { ?book dcterms:title ?title }
  OPTIONAL { ?book dc:creator ?creator }
  OPTIONAL { ?book dc:publisher ?publisher }
  OPTIONAL { ?book dc:subject ?subject }
  OPTIONAL { ?book nlk:issuedYear ?year }
}
LIMIT 20
"""

CONNECTION_TEST_QUERY = "SELECT ?s ?p ?o WHERE { ?s ?p ?o . } LIMIT 1"

SCHEMA_QUERY = """
PREFIX rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#>

SELECT DISTINCT ?class
WHERE {
  ?instance rdf:type ?class .
}
LIMIT 20
"""

# searchType -> binding variable compared against the keyword
FILTER_FIELDS = {
    "title": ("title",),
    "author": ("creator",),
    "publisher": ("publisher",),
}
ANY_FIELD = ("title", "creator", "publisher", "subject")


def _value(binding: Dict[str, Any], name: str) -> str:
    return (binding.get(name) or {}).get("value") or ""


def binding_matches(binding: Dict[str, Any], keyword: str, search_type: str) -> bool:
    """Case-insensitive substring match on the field(s) selected by search_type."""
    needle = keyword.lower()
    fields = FILTER_FIELDS.get(search_type, ANY_FIELD)
    return any(needle in _value(binding, f).lower() for f in fields)


def is_placeholder(book: Book) -> bool:
    """True for the degraded-mode records (samples and the no-results marker)."""
    return book.id == NO_RESULTS_ID or book.id.startswith(SAMPLE_ID_PREFIX)


def _to_book(binding: Dict[str, Any], index: int) -> Book:
    uri = _value(binding, "book")
    return Book(
        id=uri.rstrip("/").split("/")[-1] or f"book-{index}",
        title=_value(binding, "title") or "제목 없음",
        author=_value(binding, "creator") or "저자 미상",
        publisher=_value(binding, "publisher") or "출판사 미상",
        publish_year=_value(binding, "year"),
        subject=_value(binding, "subject"),
        language="kor",
    )


def _to_sample(binding: Dict[str, Any], index: int, keyword: str) -> Book:
    book = _to_book(binding, index)
    return book.model_copy(update={
        "id": f"{SAMPLE_ID_PREFIX}{index}",
        "title": f"[샘플] {book.title}",
        "subject": f'검색어 "{keyword}"와 일치하지 않음 - 샘플 데이터: {book.subject}',
    })


def _no_results(keyword: str, search_type: str) -> Book:
    return Book(
        id=NO_RESULTS_ID,
        title=f'"{keyword}" 검색 결과 없음',
        author="SPARQL LOD 시스템",
        publisher="국립중앙도서관",
        publish_year="2024",
        classification="LOD",
        subject=f'{search_type} 검색에서 "{keyword}"와 일치하는 도서를 찾을 수 없습니다.',
        extent="SPARQL 검색 완료",
        language="kor",
        call_number="NO-RESULTS",
    )


class SparqlClient:
    """
    Thin wrapper over forward_sparql() that turns every failure into
    SparqlQueryError. No retries.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def run_query(self, query: str) -> Dict[str, Any]:
        body = urlencode({"query": query, "format": RESULT_FORMAT})
        try:
            return await forward_sparql(self.client, body)
        except UpstreamError as e:
            raise SparqlQueryError(f"SPARQL endpoint error ({e.status}): {e.hint or e.body[:200]}") from e
        except httpx.HTTPError as e:
            raise SparqlQueryError(f"SPARQL transport error: {e}") from e
        except ValueError as e:
            raise SparqlQueryError(f"SPARQL response is not valid JSON: {e}") from e

    async def search_by_keyword(self, keyword: str, search_type: str = "title") -> List[Book]:
        data = await self.run_query(BOOK_QUERY)
        bindings = ((data or {}).get("results") or {}).get("bindings") or []
        logger.info("SPARQL returned %d bindings for keyword=%r type=%s", len(bindings), keyword, search_type)

        matched = [b for b in bindings if binding_matches(b, keyword, search_type)]
        books = [_to_book(b, i) for i, b in enumerate(matched[:MAX_MATCHES])]

        if not books and bindings:
            logger.info("No binding matched %r, returning %d samples", keyword, min(len(bindings), MAX_SAMPLES))
            books = [_to_sample(b, i, keyword) for i, b in enumerate(bindings[:MAX_SAMPLES])]

        if not books:
            books = [_no_results(keyword, search_type)]
        return books

    async def test_connection(self) -> Dict[str, Any]:
        return await self.run_query(CONNECTION_TEST_QUERY)

    async def explore_schema(self) -> Dict[str, Any]:
        return await self.run_query(SCHEMA_QUERY)
