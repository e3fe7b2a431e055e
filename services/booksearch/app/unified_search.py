# =============================================================================
# File: unified_search.py
# Purpose:
#   Unified search across the available sources, in fallback order.
#
# Responsibilities:
#   - Keep the strategies as an explicit ordered list; first hit wins.
#   - Tag every result with the strategy that produced it
#     (sparql | alternative | dummy | failed).
#   - Treat any exception inside a strategy as a miss; never propagate it.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from .alternative import AlternativeSource, dummy_books
from .models import Book, MethodStatus, SearchRequest, SearchResult
from .sparql_client import SparqlClient, is_placeholder

logger = logging.getLogger(__name__)

# Publishers the LOD endpoint has no data for; publisher searches on these skip SPARQL.
COMMERCIAL_PUBLISHERS = (
    "네이버웹툰", "네이버", "민음사", "문학동네", "창비", "창작과비평사",
    "랜덤하우스", "열린책들", "을유문화사", "북하우스", "시공사", "가나",
)

DUMMY_ERROR = "API 연결 실패로 테스트 데이터를 표시합니다."
FAILED_ERROR = "모든 검색 방법이 실패했습니다. 나중에 다시 시도해주세요."
STATUS_PROBE_KEYWORD = "테스트"


@dataclass
class SearchSources:
    """The live sources a strategy may call, bound to one HTTP client."""
    sparql: SparqlClient
    alternative: AlternativeSource


Strategy = Callable[[SearchRequest, SearchSources], Awaitable[Optional[SearchResult]]]


def is_commercial_search(request: SearchRequest) -> bool:
    if request.search_type != "publisher":
        return False
    keyword = request.keyword.lower()
    return any(p.lower() in keyword for p in COMMERCIAL_PUBLISHERS)


def matches_field(book: Book, keyword: str, search_type: str) -> bool:
    needle = keyword.lower()
    if search_type == "title":
        return needle in book.title.lower()
    if search_type == "author":
        return needle in book.author.lower()
    if search_type == "publisher":
        return needle in book.publisher.lower()
    return True


async def sparql_strategy(request: SearchRequest, sources: SearchSources) -> Optional[SearchResult]:
    if is_commercial_search(request):
        logger.info("Commercial publisher search %r, skipping SPARQL", request.keyword)
        return None

    books = await sources.sparql.search_by_keyword(request.keyword, request.search_type)
    # The client already filtered, but its degraded-mode records must not count as hits.
    actual = [
        b for b in books
        if not is_placeholder(b) and matches_field(b, request.keyword, request.search_type)
    ]
    if not actual:
        logger.info("SPARQL had no real match for %r", request.keyword)
        return None

    return SearchResult(
        books=actual,
        method="sparql",
        total_count=len(actual),
        page=request.page,
        limit=request.limit,
        total_pages=1,
    )


async def alternative_strategy(request: SearchRequest, sources: SearchSources) -> Optional[SearchResult]:
    result = await sources.alternative.search(request.keyword, request.search_type, request.limit, request.page)
    if not result.books:
        logger.info("Alternative source had nothing for %r page=%d", request.keyword, request.page)
        return None

    return SearchResult(
        books=result.books,
        method="alternative",
        total_count=result.total_count,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
        note=result.note,
    )


async def dummy_strategy(request: SearchRequest, sources: SearchSources) -> Optional[SearchResult]:
    books = dummy_books(request.keyword)
    if not books:
        return None
    return SearchResult(
        books=books,
        method="dummy",
        total_count=len(books),
        page=request.page,
        limit=request.limit,
        total_pages=1,
        error=DUMMY_ERROR,
    )


STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("sparql", sparql_strategy),
    ("alternative", alternative_strategy),
    ("dummy", dummy_strategy),
)


def failed_result(request: SearchRequest) -> SearchResult:
    return SearchResult(
        books=[],
        method="failed",
        total_count=0,
        page=request.page,
        limit=request.limit,
        total_pages=0,
        error=FAILED_ERROR,
    )


async def unified_book_search(
    request: SearchRequest,
    sources: SearchSources,
    strategies: Sequence[Tuple[str, Strategy]] = STRATEGIES,
) -> SearchResult:
    """
    Try each strategy in order and return the first non-empty result.
    A strategy that raises is logged and treated as a miss.
    """
    logger.info("Unified search keyword=%r type=%s page=%d limit=%d",
                request.keyword, request.search_type, request.page, request.limit)

    for name, strategy in strategies:
        try:
            result = await strategy(request, sources)
        except Exception as e:
            logger.warning("Strategy %s failed: %s", name, e)
            continue
        if result is not None:
            logger.info("Strategy %s hit: %d records (total=%d)", name, len(result.books), result.total_count)
            return result

    logger.error("All search strategies failed for %r", request.keyword)
    return failed_result(request)


async def check_search_method_status(sources: SearchSources) -> MethodStatus:
    """Probe each live source once with a test keyword; True means it answered."""
    status = {"sparql": False, "alternative": False}

    try:
        await sources.sparql.search_by_keyword(STATUS_PROBE_KEYWORD, "title")
        status["sparql"] = True
    except Exception as e:
        logger.warning("SPARQL status probe failed: %s", e)

    try:
        await sources.alternative.search(STATUS_PROBE_KEYWORD, "title", 1)
        status["alternative"] = True
    except Exception as e:
        logger.warning("Alternative status probe failed: %s", e)

    return MethodStatus(**status)
