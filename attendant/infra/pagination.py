"""Follow opaque "next page" links until the upstream reports no more pages."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlsplit

from loguru import logger

from attendant.exceptions import DecodeError

from .http import HttpClient


@dataclass(frozen=True, slots=True)
class Page[T]:
    """One decoded page. ``next_page_link`` is the raw upstream value."""

    items: list[T]
    next_page_link: object = None


type PageDecoder[T] = Callable[[Any], Page[T]]


def resolve_next_link(current_url: str, link: object) -> str:
    """Resolve a next-page link against the page it came from.

    Returns an empty string when there are no more pages.

    Raises:
        DecodeError: The link is not a string or does not resolve to an
            http(s) URL.
    """
    if link is None or link == "":
        return ""
    if not isinstance(link, str):
        raise DecodeError(f"Next page link must be a string, got {type(link).__name__}")

    try:
        resolved = urljoin(current_url, link)
        parts = urlsplit(resolved)
        _ = parts.port
    except ValueError as e:
        raise DecodeError(f"Malformed next page link {link!r}: {e}") from e

    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise DecodeError(f"Malformed next page link {link!r}")
    return resolved


async def fetch_all_pages[T](
    http: HttpClient,
    first_url: str,
    decode: PageDecoder[T],
    *,
    params: dict[str, Any] | None = None,
) -> list[T]:
    """GET every page starting at ``first_url`` and concatenate the items.

    ``params`` apply to the first request only; next-page links already carry
    their query. Any error aborts the whole walk and nothing is returned.
    """
    log = logger.bind(component="pagination")
    items: list[T] = []
    url = http.url(first_url)
    page_params = params
    pages = 0

    while True:
        payload = await http.request("GET", url, params=page_params)
        page = decode(payload)
        items.extend(page.items)
        pages += 1

        next_url = resolve_next_link(url, page.next_page_link)
        if not next_url:
            break
        url, page_params = next_url, None

    log.debug("Fetched {items} items in {pages} pages", items=len(items), pages=pages)
    return items
