"""
Error taxonomy for the book search service.

- ValidationError: the request itself is unusable (e.g. blank keyword) -> 400.
- UpstreamError: an external bibliographic service answered with a non-2xx status.
- SparqlQueryError: the SPARQL client could not produce bindings. The orchestrator
  treats it as a failed strategy and moves on to the next one.
"""

from typing import Optional


class BookSearchError(Exception):
    """Base class for all service errors."""


class ValidationError(BookSearchError):
    pass


class UpstreamError(BookSearchError):
    def __init__(self, status: int, body: str = "", hint: Optional[str] = None):
        self.status = status
        self.body = body
        self.hint = hint
        message = f"upstream responded with {status}"
        if hint:
            message += f" - {hint}"
        super().__init__(message)


class SparqlQueryError(BookSearchError):
    pass
