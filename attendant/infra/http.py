from __future__ import annotations

import json as json_mod
from typing import Any, Protocol, runtime_checkable

import aiohttp
from loguru import logger

from attendant.exceptions import DecodeError, TransportError, UpstreamStatusError

# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class BearerAuth:
    def __init__(self, token: str) -> None:
        self._token = token

    async def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }


# ─── Client ──────────────────────────────────────────────────────────


def is_absolute(url: str) -> bool:
    return url.startswith(("http://", "https://"))


class HttpClient:
    """Shared aiohttp session for one upstream.

    Safe to reuse from concurrent tasks once entered. ``timeout`` bounds a
    single request; cancelling the calling task aborts the request at once.
    """

    def __init__(
        self,
        base_url: str = "",
        auth: Auth | None = None,
        *,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._default_headers = default_headers or {}
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    @property
    def base_url(self) -> str:
        return self._base_url

    def url(self, path: str) -> str:
        if is_absolute(path):
            return path
        return f"{self._base_url}{path}"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _build_headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = dict(self._default_headers)
        if self._auth:
            headers.update(await self._auth.headers())
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty).

        Raises:
            TransportError: The request could not be completed.
            UpstreamStatusError: The upstream answered with status >= 400.
            DecodeError: The body is not valid JSON.
        """
        session = await self._ensure_session()
        request_headers = await self._build_headers(headers)
        url = self.url(path)
        self._log.debug("{method} {url}", method=method, url=url)

        try:
            async with session.request(
                method, url, headers=request_headers, json=json, params=params
            ) as resp:
                body = await resp.text()
                if resp.status >= 400:
                    self._log.debug(
                        "HTTP {status} from {url}: {body}",
                        status=resp.status, url=url, body=body[:500],
                    )
                    raise UpstreamStatusError(status=resp.status, body=body)
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        except TimeoutError as e:
            raise TransportError(f"{method} {url} timed out") from e

        if not body:
            return None
        try:
            return json_mod.loads(body)
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {url}: {e}") from e

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session and not self._session.closed:
            self._log.debug("Closing HTTP session")
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
