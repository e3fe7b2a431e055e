"""
Publisher lookup table used by the result generator.

The table is data, not code: it lives in app/data/publishers.json (override with
PUBLISHER_CATALOG_PATH) and is validated with Pydantic when the process first
asks for it. Declared order matters: the first publisher whose key occurs in the
keyword wins, so "네이버웹툰" is checked before "민음사" and so on.

Models are frozen; load_catalog() is cached, so every request shares the same
read-only instance.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field

from common.config import settings

logger = logging.getLogger(__name__)

FROZEN = {"frozen": True, "populate_by_name": True}


class ExtentRule(BaseModel):
    """Page count = base + (index % cycle) * step."""
    base: int
    cycle: int = Field(..., ge=1)
    step: int

    model_config = FROZEN

    def pages(self, index: int) -> int:
        return self.base + (index % self.cycle) * self.step


class VolumeSeries(BaseModel):
    """
    Titles containing `match` are numbered as volumes 1..max_volume
    instead of getting the publisher's edition suffix.
    """
    match: str
    max_volume: int = Field(..., alias="maxVolume", ge=1)
    suffix: str

    model_config = FROZEN


class PublisherEntry(BaseModel):
    key: str  # substring looked up in the keyword (case-sensitive)
    publisher: str  # display name written into every record
    slug: str
    assumed_total: int = Field(..., alias="assumedTotal", ge=0)
    classification: str
    isbn_prefix: str = Field(..., alias="isbnPrefix")
    call_number_prefix: str = Field(..., alias="callNumberPrefix")
    extent: ExtentRule
    edition_suffix: str = Field(..., alias="editionSuffix")
    series_types: Tuple[str, ...] = Field((), alias="seriesTypes")
    volume_series: Optional[VolumeSeries] = Field(None, alias="volumeSeries")
    titles: Tuple[str, ...] = Field(..., min_length=1)
    authors: Tuple[str, ...] = Field(..., min_length=1)
    years: Tuple[str, ...] = Field(..., min_length=1)
    subjects: Tuple[str, ...] = Field(..., min_length=1)

    model_config = FROZEN


class GenericRule(BaseModel):
    """Settings for keywords that match no publisher."""
    assumed_total: int = Field(500, alias="assumedTotal", ge=0)
    author_cycle: int = Field(20, alias="authorCycle", ge=1)
    id_prefix: str = Field("seoji-other", alias="idPrefix")

    model_config = FROZEN


class PublisherCatalog(BaseModel):
    generic: GenericRule = GenericRule()
    publishers: Tuple[PublisherEntry, ...]

    model_config = FROZEN

    def find(self, keyword: str) -> Optional[PublisherEntry]:
        """First entry (in declared order) whose key is contained in keyword."""
        for entry in self.publishers:
            if entry.key in keyword:
                return entry
        return None

    def totals(self) -> dict:
        return {entry.publisher: entry.assumed_total for entry in self.publishers}


def parse_catalog(raw: str) -> PublisherCatalog:
    return PublisherCatalog.model_validate_json(raw)


@lru_cache(maxsize=1)
def load_catalog(path: Optional[str] = None) -> PublisherCatalog:
    """
    Read and validate the publisher table once per process.
    """
    source = Path(path or settings.publisher_catalog_path)
    catalog = parse_catalog(source.read_text(encoding="utf-8"))
    logger.info("Loaded publisher catalog path=%s publishers=%d", source, len(catalog.publishers))
    return catalog
