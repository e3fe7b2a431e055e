# Centralised configuration and logging setup for the book search service.

# What this module provides:
#   1) A Settings dataclass holding all env-driven configuration
#   2) get_settings(): reads env vars once, configures logging once
#   3) settings: a module-level singleton (import and use anywhere)

import os
import logging
from functools import lru_cache
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CATALOG_PATH = str(Path(__file__).resolve().parent.parent / "app" / "data" / "publishers.json")

# -----------------------------------------------------------------------------
# Settings dataclass (immutable)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Settings:
    # service identity
    service_name: str
    service_port: int
    log_level: str  # One of: DEBUG, INFO, WARNING, ERROR, CRITICAL

    # upstream bibliographic services
    sparql_endpoint: str
    seoji_search_url: str
    upstream_timeout: float

    # paging / export behaviour
    default_page_size: int
    max_page_size: int
    export_page_delay_ms: int

    # generator input table
    publisher_catalog_path: str

# -----------------------------------------------------------------------------
# Small helpers for robust environment variable parsing
# -----------------------------------------------------------------------------
def _env_str(key: str, default: str) -> str:
    """
    Read a string environment variable & fall back to default if unset or empty
    """
    val = os.getenv(key)
    return val.strip() if val and val.strip() else default

def _env_int(key: str, default: int) -> int:
    """
    Read an integer environment variable & fall back to default if unset or empty
    """
    raw = os.getenv(key)
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default

def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    try:
        return float(raw) if raw is not None else default
    except ValueError:
        return default

# -----------------------------------------------------------------------------
# Logging configuration
# -----------------------------------------------------------------------------
def setup_logging(level: str) -> None:
    """
    Configure the root logger ONCE per process (idempotent).
    Guard with a flag (_configured) so repeated imports don't attach duplicate handlers.
    """
    if getattr(setup_logging, "_configured", False):
        return

    lvl = getattr(logging, level.upper(), logging.INFO)  # Fallback to INFO on bad input
    # Example output:
    # 2025-10-25 12:34:56,789 INFO [app.unified_search] Strategy alternative hit ...
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        level=lvl,
    )
    # keep uvicorn loggers aligned
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)

    setup_logging._configured = True

# -----------------------------------------------------------------------------
# Read and cache settings once
# -----------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Read all environment variables, configure logging once, and return a
    frozen Settings object.
    """
    service_name = _env_str("SERVICE_NAME", "booksearch-service")
    service_port = _env_int("SERVICE_PORT", 8000)
    log_level    = _env_str("LOG_LEVEL", "INFO")

    sparql_endpoint  = _env_str("SPARQL_ENDPOINT", "http://lod.nl.go.kr/sparql")
    seoji_search_url = _env_str("SEOJI_SEARCH_URL", "https://www.nl.go.kr/seoji/contents/S80100000000.do")
    upstream_timeout = _env_float("UPSTREAM_TIMEOUT", 30.0)

    default_page_size    = _env_int("DEFAULT_PAGE_SIZE", 50)
    max_page_size        = _env_int("MAX_PAGE_SIZE", 1000)
    export_page_delay_ms = _env_int("EXPORT_PAGE_DELAY_MS", 100)

    publisher_catalog_path = _env_str("PUBLISHER_CATALOG_PATH", DEFAULT_CATALOG_PATH)

    setup_logging(log_level)
    # Output: %(asctime)s INFO [config] Loaded settings ...
    logging.getLogger("config").info(
        "Loaded settings service=%s port=%s sparql=%s seoji=%s timeout=%ss catalog=%s",
        service_name, service_port, sparql_endpoint, seoji_search_url, upstream_timeout, publisher_catalog_path
    )

    return Settings(
        service_name=service_name,
        service_port=service_port,
        log_level=log_level,
        sparql_endpoint=sparql_endpoint,
        seoji_search_url=seoji_search_url,
        upstream_timeout=upstream_timeout,
        default_page_size=default_page_size,
        max_page_size=max_page_size,
        export_page_delay_ms=export_page_delay_ms,
        publisher_catalog_path=publisher_catalog_path,
    )

# -----------------------------------------------------------------------------
# Public, module-level singleton
# -----------------------------------------------------------------------------
# Import this from anywhere in the service: from common.config import settings
settings = get_settings()
