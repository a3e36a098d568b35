"""Internal machinery: HTTP and pagination."""

from .http import (
    Auth,
    BearerAuth,
    HttpClient,
)
from .pagination import Page, PageDecoder, fetch_all_pages, resolve_next_link

__all__ = [
    "Auth",
    "BearerAuth",
    "HttpClient",
    "Page",
    "PageDecoder",
    "fetch_all_pages",
    "resolve_next_link",
]
