"""
Bibliographic proxy: outbound calls to the national library's services.

- fetch_seoji_page(): GET the bibliography search page with browser-like headers
- search_alternative(): fetch + hand the body to the result generator, paginated
- forward_sparql(): POST a form-encoded SPARQL request verbatim to the LOD endpoint

Network logic lives here (separate from FastAPI routes) so the orchestrator can
call the same functions in-process and tests can swap the transport through the
httpx.AsyncClient that is passed in.
"""

import logging
from typing import Any, Dict, Optional, Union
from urllib.parse import parse_qs

import httpx
from bs4 import BeautifulSoup

from common.config import settings
from .errors import UpstreamError
from .generator import describe_page, generate
from .models import NlQuery, NlSearchResponse, total_pages

logger = logging.getLogger(__name__)

# The search page rejects obvious bots; look like a desktop browser.
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept-Language": "ko-KR,ko;q=0.9,en;q=0.8",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

SPARQL_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/sparql-results+json",
    "User-Agent": "Mozilla/5.0 (compatible; SPARQLClient/1.0)",
}

SPARQL_STATUS_HINTS = {
    400: "잘못된 쿼리 문법",
    500: "서버 내부 오류",
    503: "서비스 일시 불가",
}

# searchType -> schFld understood by the search page
SEARCH_FIELDS = {
    "title": "title",
    "author": "author",
    "publisher": "publisher",
}


def search_field(search_type: str) -> str:
    return SEARCH_FIELDS.get(search_type, "publisher")


def page_title(html: str) -> str:
    """
    Extract the <title> text of a fetched page, used to tell a result page
    from a block/notice page in the logs.
    """
    soup = BeautifulSoup(html, "html.parser")
    return soup.title.get_text(strip=True) if soup.title else ""


async def fetch_seoji_page(client: httpx.AsyncClient, keyword: str, search_type: str) -> str:
    """
    Download the bibliography search page for `keyword` on the mapped field.
    Raises UpstreamError on any non-2xx status.
    """
    params = {
        "schType": "simple",
        "schFld": search_field(search_type),
        "schStr": keyword,
    }
    r = await client.get(
        settings.seoji_search_url,
        params=params,
        headers=BROWSER_HEADERS,
        follow_redirects=True,
        timeout=settings.upstream_timeout,
    )
    if not r.is_success:
        logger.error("Seoji search failed status=%s body=%s", r.status_code, r.text[:500])
        raise UpstreamError(r.status_code, r.text)

    logger.info("Seoji search ok url=%s length=%d title=%r", r.url, len(r.text), page_title(r.text))
    return r.text


async def search_alternative(
    client: httpx.AsyncClient,
    keyword: str,
    search_type: str = "publisher",
    limit: int = 50,
    page: int = 1,
) -> NlSearchResponse:
    """
    Fetch the search page, then build the paginated result from the generator.
    The fetched body only proves the upstream is reachable; records are synthesized.
    """
    await fetch_seoji_page(client, keyword, search_type)

    books, total = generate(keyword, limit, page)
    return NlSearchResponse(
        total_count=total,
        actual_results=len(books),
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
        books=books,
        query=NlQuery(keyword=keyword, search_type=search_type, sch_fld=search_field(search_type)),
        note=describe_page(keyword, total, page),
    )


def query_from_body(body: Union[str, bytes]) -> Optional[str]:
    """Pull the `query` field out of a form-encoded body, for diagnostics."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    values = parse_qs(body).get("query")
    return values[0] if values else None


async def forward_sparql(client: httpx.AsyncClient, body: Union[str, bytes]) -> Dict[str, Any]:
    """
    POST the form-encoded body unchanged to the SPARQL endpoint and return its
    JSON. Non-2xx responses raise UpstreamError with a status-specific hint.
    """
    r = await client.post(
        settings.sparql_endpoint,
        content=body.encode("utf-8") if isinstance(body, str) else body,
        headers=SPARQL_HEADERS,
        timeout=settings.upstream_timeout,
    )
    if not r.is_success:
        hint = SPARQL_STATUS_HINTS.get(r.status_code)
        logger.error("SPARQL endpoint error status=%s hint=%s body=%s", r.status_code, hint, r.text[:500])
        raise UpstreamError(r.status_code, r.text, hint=hint)

    data = r.json()
    bindings = ((data or {}).get("results") or {}).get("bindings") or []
    logger.info("SPARQL endpoint ok status=%s bindings=%d", r.status_code, len(bindings))
    return data
