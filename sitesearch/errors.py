"""
Exception taxonomy for the indexing and search operations.
"""

from enum import Enum
from typing import Optional


class SearchEngineError(Exception):
    """Base class for errors surfaced to callers of the service operations."""
    pass


class FetchErrorKind(Enum):
    """Classification of page fetch failures."""
    CONNECTION_FAILED = "connection_failed"
    NON_HTML = "non_html"
    CANCELLED = "cancelled"


class FetchError(SearchEngineError):
    """Transport level failure while fetching a single page."""

    def __init__(self, url: str, kind: FetchErrorKind, message: Optional[str] = None):
        self.url = url
        self.kind = kind
        super().__init__(message or f"{kind.value}: {url}")


class OutOfScopeError(SearchEngineError):
    """URL does not belong to any configured site."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            "This page is located outside the sites specified in the configuration file"
        )


class AlreadyRunningError(SearchEngineError):
    def __init__(self):
        super().__init__("Indexing is already running")


class NotRunningError(SearchEngineError):
    def __init__(self):
        super().__init__("Indexing is not running")


class InvalidQueryError(SearchEngineError):
    """Search request rejected before touching the index."""
    pass
