"""Cache backends for refreshed data.

A TTL of zero (or None) means the entry never expires; it is replaced by the
next successful refresh of the same key. Backends: process memory, one JSON
file per key on disk, or a shared Redis server. Writes are per key, so concurrent
refresh tasks never need a shared lock.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Final, Protocol

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from attendant.exceptions import ConfigurationError, TransportError

CACHE_VERSION: Final[int] = 1


class CacheService(Protocol):
    async def add_cache_item(self, key: str, value: Any, ttl: timedelta | None = None) -> None: ...

    async def get_cache_item(self, key: str) -> Any | None: ...


def _expiry(ttl: timedelta | None) -> datetime | None:
    if ttl is None or ttl <= timedelta(0):
        return None
    return datetime.now(UTC) + ttl


@dataclass(slots=True)
class _Entry:
    value: Any
    expires: datetime | None

    def expired(self) -> bool:
        return self.expires is not None and datetime.now(UTC) >= self.expires


class MemoryCache:
    """Process-local cache."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    async def add_cache_item(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        self._entries[key] = _Entry(value=value, expires=_expiry(ttl))

    async def get_cache_item(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired():
            del self._entries[key]
            return None
        return entry.value

    def keys(self) -> list[str]:
        return list(self._entries)


class DiskCache:
    """One JSON file per key; values must be JSON-serializable."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._log = logger.bind(component="cache")

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _write(self, key: str, value: Any, expires: datetime | None) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        document = {
            "version": CACHE_VERSION,
            "created": datetime.now(UTC).isoformat(),
            "expires": expires.isoformat() if expires else None,
            "value": value,
        }
        tmp = self._path(key).with_suffix(".tmp")
        tmp.write_text(json.dumps(document))
        tmp.replace(self._path(key))

    def _read(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            document = json.loads(path.read_text())
        except ValueError:
            self._log.warning("Cache file {path} corrupted, ignoring", path=str(path))
            return None
        if not isinstance(document, dict) or document.get("version") != CACHE_VERSION:
            return None
        expires = document.get("expires")
        if expires and datetime.now(UTC) >= datetime.fromisoformat(expires):
            return None
        return document.get("value")

    async def add_cache_item(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        await asyncio.to_thread(self._write, key, value, _expiry(ttl))
        self._log.debug("Stored key={key}", key=key)

    async def get_cache_item(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, key)


class RedisCache:
    """Values stored as JSON strings; expiry is delegated to Redis."""

    def __init__(self, client: Redis) -> None:
        self._client = client
        self._log = logger.bind(component="cache")

    @classmethod
    def connect(cls, address: str, *, database: int = 0, password: str | None = None) -> RedisCache:
        host, _, port = address.rpartition(":")
        if not host or not port.isdigit():
            raise ConfigurationError(f"Redis address must be host:port, got {address!r}")
        return cls(Redis(host=host, port=int(port), db=database, password=password))

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as e:
            raise TransportError(f"Failed to ping redis server: {e}") from e

    async def add_cache_item(self, key: str, value: Any, ttl: timedelta | None = None) -> None:
        expiry = ttl if ttl is not None and ttl > timedelta(0) else None
        try:
            await self._client.set(key, json.dumps(value), ex=expiry)
        except RedisError as e:
            raise TransportError(f"Failed to store {key}: {e}") from e
        self._log.debug("Stored key={key}", key=key)

    async def get_cache_item(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            raise TransportError(f"Failed to read {key}: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self._log.warning("Cache entry {key} corrupted, ignoring", key=key)
            return None

    async def close(self) -> None:
        await self._client.aclose()
