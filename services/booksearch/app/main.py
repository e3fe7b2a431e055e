# =============================================================================
# File: main.py
# Purpose:
#   FastAPI surface for the book search service.
#
# Responsibilities:
#   - Bibliographic proxy: GET /search (bibliography search page) and
#     POST /sparql (LOD endpoint), both with permissive CORS.
#   - Browser UI: GET / plus the JSON routes it calls (/api/books, /api/status).
#   - Spreadsheet export of fetched or freshly collected records (/api/export).
# =============================================================================

import logging
from pathlib import Path
from typing import AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from common.config import settings
from app.alternative import AlternativeSource
from app.catalog import load_catalog
from app.errors import UpstreamError, ValidationError
from app.export import XLSX_MEDIA_TYPE, collect_all_pages, export_bytes, export_filename
from app.models import ExportRequest, HealthResponse, MethodStatus, SearchRequest, SearchResult, require_keyword
from app.proxy import forward_sparql, query_from_body, search_alternative
from app.sparql_client import SparqlClient
from app.unified_search import SearchSources, check_search_method_status, unified_book_search

# -----------------------------------------------------------------------------
# Logging & globals
# -----------------------------------------------------------------------------
log = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
SEARCH_TYPE_PATTERN = "^(title|author|publisher)$"

# -----------------------------------------------------------------------------
# App setup
# -----------------------------------------------------------------------------
app = FastAPI(title="booksearch-service", version="1.0.0")
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")


@app.on_event("startup")
async def startup():
    """Load the publisher table once so the first search doesn't pay for it."""
    load_catalog()

# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------
async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """
    One AsyncClient per request, closed when the request ends.
    Tests override this dependency with a client on an httpx.MockTransport.
    """
    async with httpx.AsyncClient(timeout=settings.upstream_timeout) as client:
        yield client


def get_sources(client: httpx.AsyncClient = Depends(get_http_client)) -> SearchSources:
    return SearchSources(sparql=SparqlClient(client), alternative=AlternativeSource(client))

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def cors_headers(methods: str) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type",
    }


def _error(status: int, message: str, headers: Optional[Dict[str, str]] = None, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status, headers=headers)


def _xlsx_response(books, filename: str) -> Response:
    # RFC 5987 so Korean file names survive the header
    disposition = f"attachment; filename=\"books.xlsx\"; filename*=UTF-8''{quote(filename)}"
    return Response(
        content=export_bytes(books),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": disposition},
    )

# -----------------------------------------------------------------------------
# Endpoints: service
# -----------------------------------------------------------------------------
@app.get("/")
async def index() -> FileResponse:
    """Serve the search page."""
    return FileResponse(STATIC_DIR / "index.html")


@app.get("/health")
async def health() -> JSONResponse:
    """
    Lightweight readiness endpoint.
    Cheap (no external calls) so container health checks are reliable.
    """
    return JSONResponse(HealthResponse(
        status="ok",
        service=settings.service_name,
        publishers=load_catalog().totals(),
    ).model_dump())

# -----------------------------------------------------------------------------
# Endpoints: bibliographic proxy
# -----------------------------------------------------------------------------
SEARCH_CORS = cors_headers("GET, OPTIONS")
SPARQL_CORS = cors_headers("POST, OPTIONS")
PROXY_CORS = {"/search": SEARCH_CORS, "/sparql": SPARQL_CORS}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query params on the proxy routes still get the CORS headers."""
    headers = PROXY_CORS.get(request.url.path)
    if headers is None:
        return await request_validation_exception_handler(request, exc)
    return _error(422, "잘못된 요청 매개변수입니다.", headers, details=jsonable_encoder(exc.errors()))


@app.options("/search")
async def search_preflight() -> Response:
    return Response(status_code=200, headers=SEARCH_CORS)


@app.get("/search")
async def search(
    keyword: Optional[str] = Query(None, description="Search keyword"),
    searchType: str = Query("publisher", description="publisher | title | author"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    page: int = Query(1, ge=1),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> JSONResponse:
    """
    Query the bibliography search page and return one page of records.
    400 when keyword is missing, 500 when the upstream page fails.
    """
    try:
        keyword = require_keyword(keyword)
    except ValidationError:
        return _error(400, "검색어가 필요합니다.", SEARCH_CORS)

    try:
        resp = await search_alternative(client, keyword, searchType, limit, page)
    except (UpstreamError, httpx.HTTPError) as e:
        log.error("Bibliography search failed keyword=%r: %s", keyword, e)
        return _error(500, f"서지정보 시스템 검색 중 오류가 발생했습니다: {e}", SEARCH_CORS)

    return JSONResponse(resp.model_dump(by_alias=True, exclude_none=True), headers=SEARCH_CORS)


@app.options("/sparql")
async def sparql_preflight() -> Response:
    return Response(status_code=200, headers=SPARQL_CORS)


@app.post("/sparql")
async def sparql(request: Request, client: httpx.AsyncClient = Depends(get_http_client)) -> JSONResponse:
    """
    Forward a form-encoded SPARQL request verbatim and relay the JSON result.
    Upstream errors keep their status code and carry the upstream body.
    """
    body = await request.body()
    query = query_from_body(body)
    log.info("SPARQL proxy request query=%r", (query or "")[:200])

    try:
        data = await forward_sparql(client, body)
    except UpstreamError as e:
        message = f"SPARQL 엔드포인트 오류 ({e.status})"
        if e.hint:
            message += f" - {e.hint}"
        return _error(e.status, message, SPARQL_CORS, details=e.body, query=query)
    except (httpx.HTTPError, ValueError) as e:
        log.exception("SPARQL proxy failed: %s", e)
        return _error(500, "SPARQL 프록시에서 오류가 발생했습니다", SPARQL_CORS,
                      details=str(e), type=type(e).__name__)

    return JSONResponse(data, headers=SPARQL_CORS)

# -----------------------------------------------------------------------------
# Endpoints: UI back end
# -----------------------------------------------------------------------------
@app.get("/api/books")
async def books(
    keyword: str = Query("", description="Search keyword"),
    searchType: str = Query("publisher", pattern=SEARCH_TYPE_PATTERN),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    page: int = Query(1, ge=1),
    sources: SearchSources = Depends(get_sources),
) -> JSONResponse:
    """Unified search: SPARQL -> alternative -> dummy, tagged with the method used."""
    try:
        keyword = require_keyword(keyword)
    except ValidationError:
        return _error(400, "검색어를 입력해주세요.")

    result = await unified_book_search(SearchRequest(keyword, searchType, limit, page), sources)
    return JSONResponse(result.model_dump(by_alias=True))


@app.get("/api/status")
async def status(sources: SearchSources = Depends(get_sources)) -> JSONResponse:
    result: MethodStatus = await check_search_method_status(sources)
    return JSONResponse(result.model_dump())


@app.get("/api/debug/sparql/test")
async def sparql_connection_test(client: httpx.AsyncClient = Depends(get_http_client)) -> JSONResponse:
    """Run a one-triple query to see whether the LOD endpoint answers at all."""
    try:
        return JSONResponse(await SparqlClient(client).test_connection())
    except Exception as e:
        log.exception("SPARQL connection test failed: %s", e)
        return _error(502, f"오류 발생: {e}")


@app.get("/api/debug/sparql/schema")
async def sparql_schema(client: httpx.AsyncClient = Depends(get_http_client)) -> JSONResponse:
    """List up to 20 distinct rdf:type classes known to the LOD endpoint."""
    try:
        return JSONResponse(await SparqlClient(client).explore_schema())
    except Exception as e:
        log.exception("SPARQL schema exploration failed: %s", e)
        return _error(502, f"오류 발생: {e}")


@app.post("/api/export")
async def export_posted(body: ExportRequest) -> Response:
    """Export records the browser already holds (current page or collected pages)."""
    if not body.books:
        return _error(400, "내보낼 데이터가 없습니다.")

    filename = body.filename or export_filename("도서")
    if not filename.endswith(".xlsx"):
        filename += ".xlsx"
    return _xlsx_response(body.books, filename)


@app.get("/api/export")
async def export_search(
    keyword: str = Query("", description="Search keyword"),
    searchType: str = Query("publisher", pattern=SEARCH_TYPE_PATTERN),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    page: int = Query(1, ge=1),
    allPages: bool = Query(False, description="Collect every page before exporting"),
    sources: SearchSources = Depends(get_sources),
) -> Response:
    """
    Search and export server-side. With allPages=true every page is fetched
    sequentially (with a short pause between pages) and exported as one sheet.
    """
    try:
        keyword = require_keyword(keyword)
    except ValidationError:
        return _error(400, "검색어를 입력해주세요.")

    # a full export starts from page 1, which then doubles as the first collected page
    request = SearchRequest(keyword, searchType, limit, 1 if allPages else page)
    first: SearchResult = await unified_book_search(request, sources)

    if allPages and first.total_pages > 1:
        async def search_page(req: SearchRequest) -> SearchResult:
            return await unified_book_search(req, sources)

        collected = await collect_all_pages(
            search_page, request, first.total_pages,
            delay=settings.export_page_delay_ms / 1000,
            first=first,
        )
        filename = export_filename(keyword, count=len(collected))
    else:
        collected = first.books
        filename = export_filename(keyword, page=page if first.total_pages > 1 else None)

    if not collected:
        return _error(404, "다운로드할 데이터를 수집하지 못했습니다.")
    return _xlsx_response(collected, filename)

# -----------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.service_port)
