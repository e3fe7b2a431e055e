"""
Spreadsheet export.

- books_to_frame(): fixed column order with Korean headers
- export_books(): one sheet named "도서목록", written with pandas + openpyxl
- collect_all_pages(): sequential page loop used for "download everything"
"""

import asyncio
import io
import logging
from datetime import date
from typing import Awaitable, BinaryIO, Callable, List, Optional, Union

import pandas as pd

from .models import Book, SearchRequest, SearchResult

logger = logging.getLogger(__name__)

SHEET_NAME = "도서목록"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (Book attribute, column header) in export order
COLUMNS = [
    ("title", "제목"),
    ("author", "저자"),
    ("publisher", "발행처"),
    ("publish_year", "발행년도"),
    ("isbn", "ISBN"),
    ("classification", "분류번호"),
    ("subject", "주제"),
    ("extent", "형태사항"),
    ("language", "언어"),
    ("call_number", "청구기호"),
]


def books_to_frame(books: List[Book]) -> pd.DataFrame:
    rows = [{header: getattr(book, attr) for attr, header in COLUMNS} for book in books]
    return pd.DataFrame(rows, columns=[header for _, header in COLUMNS])


def export_books(books: List[Book], target: Union[str, BinaryIO]) -> None:
    """Write the records to `target` (a path or a binary buffer) as .xlsx."""
    df = books_to_frame(books)
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
    logger.info("Exported %d records", len(df))


def export_bytes(books: List[Book]) -> bytes:
    buffer = io.BytesIO()
    export_books(books, buffer)
    return buffer.getvalue()


def export_filename(
    keyword: str,
    count: Optional[int] = None,
    page: Optional[int] = None,
    on: Optional[date] = None,
) -> str:
    """
    keyword_도서목록_2024-05-01.xlsx            (single page result)
    keyword_도서목록_페이지3_2024-05-01.xlsx     (current page of many)
    keyword_도서목록_전체3200건_2024-05-01.xlsx  (all pages)
    """
    stamp = (on or date.today()).isoformat()
    if count is not None:
        middle = f"_전체{count}건"
    elif page is not None:
        middle = f"_페이지{page}"
    else:
        middle = ""
    return f"{keyword}_도서목록{middle}_{stamp}.xlsx"


async def collect_all_pages(
    search: Callable[[SearchRequest], Awaitable[SearchResult]],
    request: SearchRequest,
    total_pages: int,
    delay: float = 0.1,
    on_progress: Optional[Callable[[int, int], None]] = None,
    first: Optional[SearchResult] = None,
) -> List[Book]:
    """
    Fetch pages 1..total_pages one after another and concatenate their books.
    Sleeps `delay` seconds between pages to go easy on the upstream source.
    When `first` (an already fetched page 1) is given it is reused, not fetched again.
    There is no cancellation once started.
    """
    collected: List[Book] = []
    for page in range(1, total_pages + 1):
        if on_progress:
            on_progress(page, total_pages)
        if page == 1 and first is not None:
            collected.extend(first.books)
            continue
        if page > 1:
            await asyncio.sleep(delay)
        result = await search(SearchRequest(request.keyword, request.search_type, request.limit, page))
        collected.extend(result.books)
        logger.info("Collected page %d/%d: %d records (running total %d)",
                    page, total_pages, len(result.books), len(collected))
    return collected
