import io
from datetime import date

import pandas as pd
import pytest
from openpyxl import load_workbook

from app.export import COLUMNS, SHEET_NAME, books_to_frame, collect_all_pages, export_bytes, export_filename
from app.generator import generate
from app.models import SearchRequest, SearchResult, total_pages

HEADERS = ["제목", "저자", "발행처", "발행년도", "ISBN", "분류번호", "주제", "형태사항", "언어", "청구기호"]


def test_frame_has_fixed_korean_columns():
    books, _ = generate("창비", 5, 1)
    df = books_to_frame(books)

    assert list(df.columns) == HEADERS
    assert len(df) == 5
    assert df.iloc[0]["발행처"] == "창비"
    assert df.iloc[0]["청구기호"] == books[0].call_number


def test_empty_frame_keeps_headers():
    assert list(books_to_frame([]).columns) == [header for _, header in COLUMNS]


def test_workbook_has_single_named_sheet():
    books, _ = generate("열린책들", 12, 1)

    wb = load_workbook(io.BytesIO(export_bytes(books)))

    assert wb.sheetnames == [SHEET_NAME]
    ws = wb[SHEET_NAME]
    assert [c.value for c in ws[1]] == HEADERS
    assert ws.max_row == 13
    assert ws.cell(row=2, column=1).value == books[0].title
    print("[TEST] xlsx export ✅")


@pytest.mark.parametrize("kwargs,expected", [
    ({}, "민음사_도서목록_2024-05-01.xlsx"),
    ({"page": 3}, "민음사_도서목록_페이지3_2024-05-01.xlsx"),
    ({"count": 3200}, "민음사_도서목록_전체3200건_2024-05-01.xlsx"),
])
def test_export_filename(kwargs, expected):
    assert export_filename("민음사", on=date(2024, 5, 1), **kwargs) == expected


@pytest.mark.asyncio
async def test_collect_all_pages_is_sequential():
    seen = []
    progress = []

    async def search(request: SearchRequest) -> SearchResult:
        seen.append(request.page)
        books, total = generate(request.keyword, request.limit, request.page)
        return SearchResult(
            books=books, method="alternative", total_count=total,
            page=request.page, limit=request.limit, total_pages=total_pages(total, request.limit),
        )

    request = SearchRequest("기타출판", "publisher", 200, 1)
    collected = await collect_all_pages(search, request, 3, delay=0,
                                        on_progress=lambda cur, tot: progress.append((cur, tot)))

    assert seen == [1, 2, 3]
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert len(collected) == 500
    assert collected[0].title == "기타출판 출간 도서 1"
    assert collected[-1].title == "기타출판 출간 도서 500"


@pytest.mark.asyncio
async def test_collect_all_pages_keeps_partial_pages():
    async def search(request: SearchRequest) -> SearchResult:
        books, _ = generate("창비", 2, 1) if request.page == 1 else ([], 0)
        return SearchResult(books=books, method="alternative", total_count=2,
                            page=request.page, limit=2, total_pages=2)

    collected = await collect_all_pages(search, SearchRequest("창비", limit=2), 2, delay=0)
    assert len(collected) == 2


@pytest.mark.asyncio
async def test_collect_all_pages_reuses_first_page():
    seen = []

    async def search(request: SearchRequest) -> SearchResult:
        seen.append(request.page)
        books, total = generate(request.keyword, request.limit, request.page)
        return SearchResult(books=books, method="alternative", total_count=total,
                            page=request.page, limit=request.limit, total_pages=3)

    request = SearchRequest("기타출판", "publisher", 200, 1)
    first = await search(request)
    seen.clear()

    collected = await collect_all_pages(search, request, 3, delay=0, first=first)

    assert seen == [2, 3]
    assert collected[:200] == first.books
    assert len(collected) == 500


def test_frame_reads_back_through_pandas():
    books, _ = generate("을유문화사", 4, 1)
    df = pd.read_excel(io.BytesIO(export_bytes(books)), sheet_name=SHEET_NAME, dtype=str)
    assert df["ISBN"].tolist() == [b.isbn for b in books]
