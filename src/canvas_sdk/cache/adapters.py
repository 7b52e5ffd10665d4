"""
Cache adapters for CacheMiddleware.

All adapters implement the async `CacheAdapter` contract so that the
middleware does not care where entries live:

- InMemoryAdapter: process-local aiocache memory store (default)
- FileSystemAdapter: gzip-compressed JSON files on disk
- AiocacheAdapter: any aiocache backend (memory, redis, memcached)

Entry values are the plain dicts produced by `ResponseSerializer`.
aiocache expires its own entries; FileSystemAdapter detects expired files when read.
"""

import gzip
import hashlib
import json
import logging
import os
import re
import time
import uuid
from abc import ABC
from abc import abstractmethod
from pathlib import Path
from typing import Any
from typing import Optional

from aiocache import Cache
from aiocache import SimpleMemoryCache
from aiocache.base import BaseCache

logger = logging.getLogger("canvas_sdk.cache")

CacheData = dict[str, Any]


def pattern_to_regex(pattern: str) -> re.Pattern:
    """Translate a `*`-wildcard pattern into an anchored regex."""
    return re.compile("^" + re.escape(pattern).replace(r"\*", ".*") + "$")


class CacheAdapter(ABC):
    """Interface for cache backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheData]:
        """Return the cached data, or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, data: CacheData, ttl: int = 0) -> None:
        """Store `data`; ttl in seconds, 0 means no expiry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete one entry; True if something was removed."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry and reset statistics."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        """True if the entry exists and is not expired."""

    @abstractmethod
    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete entries whose key matches a `*`-wildcard pattern."""

    @abstractmethod
    async def get_stats(self) -> dict[str, int]:
        """Return `{"hits", "misses", "size", "entries"}`."""


def _entry_size(data: CacheData) -> int:
    return len(json.dumps(data, default=str))


class FileSystemAdapter(CacheAdapter):
    """
    Persistent cache storing one gzip-compressed JSON file per entry.

    Files are sharded as `<dir>/<ab>/<cd>/<md5>.cache`; the original key is
    stored inside the file so that pattern deletion can match it.
    Writes go through a temp file and an atomic rename.
    """

    SUFFIX = ".cache"

    def __init__(self, cache_dir: str | Path, compression: bool = True):
        self.cache_dir = Path(cache_dir)
        self.compression = compression
        self._hits = 0
        self._misses = 0
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> Optional[CacheData]:
        path = self._path(key)
        record = self._read(path)
        if record is None or self._expired(record):
            if record is not None:
                path.unlink(missing_ok=True)
            self._misses += 1
            return None

        self._hits += 1
        return record.get("value")

    async def set(self, key: str, data: CacheData, ttl: int = 0) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        now = time.time()
        record = {
            "key": key,
            "value": data,
            "expires": now + ttl if ttl > 0 else 0,
            "created": now,
        }
        content = json.dumps(record).encode("utf-8")
        if self.compression:
            content = gzip.compress(content, compresslevel=6)

        tmp_path = path.with_name(f"{path.name}.tmp.{uuid.uuid4().hex}")
        try:
            tmp_path.write_bytes(content)
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink(missing_ok=True)
            return True
        return False

    async def clear(self) -> None:
        for path in self._files():
            path.unlink(missing_ok=True)
        self._hits = 0
        self._misses = 0

    async def has(self, key: str) -> bool:
        record = self._read(self._path(key))
        return record is not None and not self._expired(record)

    async def delete_by_pattern(self, pattern: str) -> int:
        regex = pattern_to_regex(pattern)
        deleted = 0
        for path in self._files():
            record = self._read(path)
            if record is not None and regex.match(str(record.get("key", ""))):
                path.unlink(missing_ok=True)
                deleted += 1
        return deleted

    async def get_stats(self) -> dict[str, int]:
        files = list(self._files())
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": sum(path.stat().st_size for path in files),
            "entries": len(files),
        }

    def clean_expired(self) -> int:
        """Remove expired and unreadable files; returns how many were removed."""
        cleaned = 0
        for path in self._files():
            record = self._read(path)
            if record is None or self._expired(record):
                path.unlink(missing_ok=True)
                cleaned += 1
        return cleaned

    def _path(self, key: str) -> Path:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        return self.cache_dir / digest[:2] / digest[2:4] / f"{digest}{self.SUFFIX}"

    def _files(self):
        return (path for path in self.cache_dir.rglob(f"*{self.SUFFIX}") if path.is_file())

    def _read(self, path: Path) -> Optional[dict[str, Any]]:
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            if self.compression:
                content = gzip.decompress(content)
            record = json.loads(content)
        except (OSError, ValueError) as e:
            logger.debug(f"Dropping unreadable cache file {path}: {e}")
            path.unlink(missing_ok=True)
            return None
        return record if isinstance(record, dict) else None

    @staticmethod
    def _expired(record: dict[str, Any]) -> bool:
        expires = record.get("expires") or 0
        return expires > 0 and expires < time.time()


class AiocacheAdapter(CacheAdapter):
    """
    Adapter over an aiocache backend.

    aiocache has no key listing, so the adapter remembers the keys it wrote
    in order to support `delete_by_pattern`, `clear` and entry counts.

    Args:
        cache (BaseCache | None): aiocache instance; in-memory when omitted.
        namespace (str): Namespace for the default in-memory cache.
    """

    def __init__(self, cache: Optional[BaseCache] = None, namespace: str = "canvas"):
        self._cache = cache or Cache(Cache.MEMORY, namespace=namespace)
        self._keys: dict[str, int] = {}
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[CacheData]:
        data = await self._cache.get(key)
        if data is None:
            self._keys.pop(key, None)
            self._misses += 1
            return None
        self._hits += 1
        return data

    async def set(self, key: str, data: CacheData, ttl: int = 0) -> None:
        await self._cache.set(key, data, ttl=ttl if ttl > 0 else None)
        self._keys[key] = _entry_size(data)

    async def delete(self, key: str) -> bool:
        self._keys.pop(key, None)
        return bool(await self._cache.delete(key))

    async def clear(self) -> None:
        for key in list(self._keys):
            await self._cache.delete(key)
        self._keys.clear()
        self._hits = 0
        self._misses = 0

    async def has(self, key: str) -> bool:
        return bool(await self._cache.exists(key))

    async def delete_by_pattern(self, pattern: str) -> int:
        regex = pattern_to_regex(pattern)
        deleted = 0
        for key in [k for k in self._keys if regex.match(k)]:
            self._keys.pop(key, None)
            if await self._cache.delete(key):
                deleted += 1
        return deleted

    async def get_stats(self) -> dict[str, int]:
        for key in list(self._keys):
            if not await self._cache.exists(key):
                self._keys.pop(key, None)
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": sum(self._keys.values()),
            "entries": len(self._keys),
        }


class InMemoryAdapter(AiocacheAdapter):
    """
    Process-local cache on aiocache's SimpleMemoryCache.

    Each instance gets its own namespace so that separate adapters never see
    each other's entries.

    Args:
        max_entries (int): Oldest entry is evicted (FIFO) once this many are
            stored; 0 means unlimited.
    """

    def __init__(self, max_entries: int = 1000):
        super().__init__(SimpleMemoryCache(namespace=f"canvas-{uuid.uuid4().hex}:"))
        self.max_entries = max_entries

    async def set(self, key: str, data: CacheData, ttl: int = 0) -> None:
        if key not in self._keys and self.max_entries > 0:
            while len(self._keys) >= self.max_entries:
                await self.delete(next(iter(self._keys)))
        await super().set(key, data, ttl)
