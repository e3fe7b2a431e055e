import io
from urllib.parse import unquote

import httpx
import pytest
from openpyxl import load_workbook

from app.export import SHEET_NAME, XLSX_MEDIA_TYPE
from app.generator import generate
from common.config import settings


def test_health(api):
    """
    Health endpoint reports the service name and the publisher table.
    """
    r = api.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["service"] == settings.service_name
    assert body["publishers"]["민음사"] == 3200
    print("[TEST] /health ✅")


def test_index_page(api):
    r = api.get("/")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "도서 검색 시스템" in r.text


# -----------------------------------------------------------------------------
# GET /search
# -----------------------------------------------------------------------------
@pytest.mark.parametrize("params", [{}, {"keyword": ""}, {"keyword": "   "}])
def test_search_requires_keyword(api, upstream, params):
    r = api.get("/search", params=params)
    assert r.status_code == 400
    assert r.json() == {"error": "검색어가 필요합니다."}
    assert r.headers["access-control-allow-origin"] == "*"
    assert upstream.calls == []


def test_search_minumsa(api, upstream):
    r = api.get("/search", params={"keyword": "민음사", "searchType": "publisher", "limit": 50, "page": 1})

    assert r.status_code == 200
    body = r.json()
    assert body["totalCount"] == 3200
    assert body["actualResults"] == 50
    assert body["totalPages"] == 64
    assert body["source"] == "NL_SEOJI_SYSTEM"
    assert body["query"] == {"keyword": "민음사", "searchType": "publisher", "schFld": "publisher"}
    assert body["note"] == "민음사 출간 도서 3200건 중 1페이지 표시"
    assert len(body["books"]) == 50
    assert all(b["publisher"] == "민음사" for b in body["books"])
    assert "publishYear" in body["books"][0] and "callNumber" in body["books"][0]

    sent = upstream.calls_to(settings.seoji_search_url)[0]
    assert sent.url.params["schFld"] == "publisher"
    assert sent.url.params["schStr"] == "민음사"
    assert sent.url.params["schType"] == "simple"
    assert "Mozilla" in sent.headers["user-agent"]
    # no brotli decoder is installed, so it must not be requested
    assert "br" not in sent.headers["accept-encoding"]


def test_search_title_field_mapping(api, upstream):
    r = api.get("/search", params={"keyword": "해리포터", "searchType": "title"})
    assert r.status_code == 200
    assert upstream.calls_to(settings.seoji_search_url)[0].url.params["schFld"] == "title"


@pytest.mark.parametrize("failure", [(503, "Service Unavailable"), httpx.ConnectTimeout("timed out")])
def test_search_upstream_failure(api, upstream, failure):
    upstream.seoji = failure

    r = api.get("/search", params={"keyword": "민음사"})

    assert r.status_code == 500
    assert r.json()["error"].startswith("서지정보 시스템 검색 중 오류가 발생했습니다")


@pytest.mark.parametrize("params", [
    {"keyword": "민음사", "limit": "abc"},
    {"keyword": "민음사", "page": "0"},
])
def test_search_malformed_params_keep_cors(api, upstream, params):
    r = api.get("/search", params=params)

    assert r.status_code == 422
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.json()["error"] == "잘못된 요청 매개변수입니다."
    assert r.json()["details"]
    assert upstream.calls == []


@pytest.mark.parametrize("path,methods", [("/search", "GET, OPTIONS"), ("/sparql", "POST, OPTIONS")])
def test_preflight(api, path, methods):
    r = api.options(path)
    assert r.status_code == 200
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["access-control-allow-methods"] == methods
    assert r.headers["access-control-allow-headers"] == "Content-Type"


# -----------------------------------------------------------------------------
# POST /sparql
# -----------------------------------------------------------------------------
SPARQL_BODY = "query=SELECT+%3Fs+WHERE+%7B+%3Fs+%3Fp+%3Fo+%7D+LIMIT+1&format=json"


def test_sparql_forwards_body_verbatim(api, upstream):
    r = api.post("/sparql", content=SPARQL_BODY,
                 headers={"Content-Type": "application/x-www-form-urlencoded"})

    assert r.status_code == 200
    assert r.json() == upstream.sparql[1]
    assert r.headers["access-control-allow-origin"] == "*"

    sent = upstream.calls_to(settings.sparql_endpoint)[0]
    assert sent.method == "POST"
    assert sent.content.decode("utf-8") == SPARQL_BODY
    assert sent.headers["accept"] == "application/sparql-results+json"


@pytest.mark.parametrize("status,hint", [(400, "잘못된 쿼리 문법"), (500, "서버 내부 오류"), (503, "서비스 일시 불가")])
def test_sparql_upstream_error_keeps_status(api, upstream, status, hint):
    upstream.sparql = (status, "upstream said no")

    r = api.post("/sparql", content=SPARQL_BODY,
                 headers={"Content-Type": "application/x-www-form-urlencoded"})

    assert r.status_code == status
    body = r.json()
    assert body["error"] == f"SPARQL 엔드포인트 오류 ({status}) - {hint}"
    assert body["details"] == "upstream said no"
    assert body["query"] == "SELECT ?s WHERE { ?s ?p ?o } LIMIT 1"


def test_sparql_error_without_hint(api, upstream):
    upstream.sparql = (404, "not here")
    r = api.post("/sparql", content=SPARQL_BODY)
    assert r.status_code == 404
    assert r.json()["error"] == "SPARQL 엔드포인트 오류 (404)"


def test_sparql_transport_failure(api, upstream):
    upstream.sparql = httpx.ConnectError("connection refused")

    r = api.post("/sparql", content=SPARQL_BODY)

    assert r.status_code == 500
    body = r.json()
    assert body["error"] == "SPARQL 프록시에서 오류가 발생했습니다"
    assert body["type"] == "ConnectError"


def test_sparql_non_utf8_body_forwarded_unchanged(api, upstream):
    raw = b"query=\xff\xfe&format=json"

    r = api.post("/sparql", content=raw,
                 headers={"Content-Type": "application/x-www-form-urlencoded"})

    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"
    assert upstream.calls_to(settings.sparql_endpoint)[0].content == raw


def test_sparql_non_utf8_body_error_shape(api, upstream):
    upstream.sparql = (400, "bad query")

    r = api.post("/sparql", content=b"query=\xff\xfe")

    assert r.status_code == 400
    assert r.headers["access-control-allow-origin"] == "*"
    body = r.json()
    assert body["details"] == "bad query"
    assert "\ufffd" in body["query"]


# -----------------------------------------------------------------------------
# /api/books, /api/status, debug
# -----------------------------------------------------------------------------
def test_books_requires_keyword(api):
    r = api.get("/api/books", params={"keyword": " "})
    assert r.status_code == 400
    assert r.json()["error"] == "검색어를 입력해주세요."


def test_books_rejects_unknown_search_type(api):
    r = api.get("/api/books", params={"keyword": "민음사", "searchType": "isbn"})
    assert r.status_code == 422
    assert "detail" in r.json()


def test_books_commercial_publisher(api, upstream):
    r = api.get("/api/books", params={"keyword": "민음사", "searchType": "publisher", "limit": 50, "page": 2})

    assert r.status_code == 200
    body = r.json()
    assert body["method"] == "alternative"
    assert body["totalCount"] == 3200
    assert body["totalPages"] == 64
    assert body["page"] == 2
    assert len(body["books"]) == 50
    assert body["books"][0]["id"] == "nl-seoji-minum-51"
    assert body["error"] is None
    assert upstream.calls_to(settings.sparql_endpoint) == []


def test_books_sparql_hit(api):
    r = api.get("/api/books", params={"keyword": "데이터베이스", "searchType": "title"})

    body = r.json()
    assert body["method"] == "sparql"
    assert body["totalPages"] == 1
    assert [b["title"] for b in body["books"]] == ["데이터베이스 개론"]


def test_books_dummy_when_upstreams_down(api, upstream):
    upstream.sparql = (503, "down")
    upstream.seoji = (500, "down")

    r = api.get("/api/books", params={"keyword": "네이버웹툰", "searchType": "publisher"})

    body = r.json()
    assert r.status_code == 200
    assert body["method"] == "dummy"
    assert body["error"] == "API 연결 실패로 테스트 데이터를 표시합니다."
    assert len(body["books"]) == 2


def test_status(api, upstream):
    assert api.get("/api/status").json() == {"sparql": True, "alternative": True}

    upstream.seoji = httpx.ConnectError("refused")
    assert api.get("/api/status").json() == {"sparql": True, "alternative": False}


def test_debug_sparql_routes(api, upstream):
    assert api.get("/api/debug/sparql/test").status_code == 200
    assert api.get("/api/debug/sparql/schema").json() == upstream.sparql[1]

    upstream.sparql = (503, "down")
    r = api.get("/api/debug/sparql/test")
    assert r.status_code == 502
    assert r.json()["error"].startswith("오류 발생")


# -----------------------------------------------------------------------------
# /api/export
# -----------------------------------------------------------------------------
def _sheet_rows(content: bytes):
    ws = load_workbook(io.BytesIO(content))[SHEET_NAME]
    return list(ws.iter_rows(values_only=True))


def test_export_posted_books(api):
    books, _ = generate("창비", 7, 1)
    payload = {"books": [b.model_dump(by_alias=True) for b in books], "filename": "창비_도서목록_페이지1_2024-05-01"}

    r = api.post("/api/export", json=payload)

    assert r.status_code == 200
    assert r.headers["content-type"] == XLSX_MEDIA_TYPE
    disposition = r.headers["content-disposition"]
    assert unquote(disposition.split("filename*=UTF-8''")[1]) == "창비_도서목록_페이지1_2024-05-01.xlsx"
    rows = _sheet_rows(r.content)
    assert len(rows) == 8
    assert rows[1][0] == books[0].title


def test_export_posted_nothing(api):
    r = api.post("/api/export", json={"books": []})
    assert r.status_code == 400
    assert r.json()["error"] == "내보낼 데이터가 없습니다."


def test_export_all_pages(api, upstream):
    r = api.get("/api/export", params={"keyword": "기타출판", "limit": 200, "allPages": "true"})

    assert r.status_code == 200
    assert "전체500건" in unquote(r.headers["content-disposition"])
    rows = _sheet_rows(r.content)
    assert len(rows) == 501
    assert rows[-1][0] == "기타출판 출간 도서 500"
    # one request per page, page 1 not fetched twice
    assert len(upstream.calls_to(settings.seoji_search_url)) == 3
    print("[TEST] full export ✅")


def test_export_all_pages_searches_each_page_once(api, monkeypatch):
    from app import main
    pages = []
    search = main.unified_book_search

    async def recording(request, sources):
        pages.append(request.page)
        return await search(request, sources)

    monkeypatch.setattr(main, "unified_book_search", recording)

    # starting from a later page still exports everything from page 1
    r = api.get("/api/export", params={"keyword": "기타출판", "limit": 200, "page": 2, "allPages": "true"})

    assert r.status_code == 200
    assert pages == [1, 2, 3]
    assert len(_sheet_rows(r.content)) == 501


def test_export_current_page_only(api):
    r = api.get("/api/export", params={"keyword": "민음사", "limit": 20, "page": 3})

    assert r.status_code == 200
    assert "페이지3" in unquote(r.headers["content-disposition"])
    rows = _sheet_rows(r.content)
    assert len(rows) == 21


def test_export_nothing_collected(api, upstream, monkeypatch):
    from app import unified_search
    monkeypatch.setattr(unified_search, "dummy_books", lambda keyword: [])
    upstream.sparql = (503, "down")
    upstream.seoji = (503, "down")

    r = api.get("/api/export", params={"keyword": "기타출판"})
    assert r.status_code == 404
