"""
Alternative source (bibliography search page + generator) and the static
dummy records used as the last resort before giving up.
"""

import logging
from typing import List

import httpx

from .models import Book, PaginatedBooks
from .proxy import search_alternative

logger = logging.getLogger(__name__)


class AlternativeSource:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def search(self, keyword: str, search_type: str = "publisher", limit: int = 50, page: int = 1) -> PaginatedBooks:
        """
        One page from the bibliography search proxy. Upstream failures propagate
        (UpstreamError / httpx.HTTPError); the orchestrator decides what to do.
        """
        resp = await search_alternative(self.client, keyword, search_type, limit, page)
        logger.info("Alternative source returned %d/%d records page=%d", len(resp.books), resp.total_count, page)
        return PaginatedBooks(
            books=resp.books,
            total_count=resp.total_count,
            page=page,
            limit=limit,
            total_pages=resp.total_pages,
            note=resp.note,
        )


def dummy_books(keyword: str) -> List[Book]:
    """
    Two test records, kept only if keyword occurs in their title, author or
    publisher (case-insensitive).
    """
    publisher = "네이버웹툰 유한회사" if "네이버" in keyword else None
    candidates = [
        Book(
            id="dummy-1",
            title=f"{keyword} 관련 도서 1 (테스트 데이터)",
            author="테스트 저자",
            publisher=publisher or "테스트 출판사",
            publish_year="2023",
            isbn="9788000000001",
            classification="813.7",
            subject="만화",
            extent="200p",
            language="kor",
            call_number="T813.7-1",
        ),
        Book(
            id="dummy-2",
            title=f"{keyword} 관련 도서 2 (테스트 데이터)",
            author="테스트 저자 2",
            publisher=publisher or "테스트 출판사 2",
            publish_year="2024",
            isbn="9788000000002",
            classification="813.7",
            subject="웹툰",
            extent="150p",
            language="kor",
            call_number="T813.7-2",
        ),
    ]
    needle = keyword.lower()
    return [
        b for b in candidates
        if needle in b.title.lower() or needle in b.author.lower() or needle in b.publisher.lower()
    ]
