"""
Read-through cache with tag-based invalidation.

Cached read results register the tags they depend on when they are
written, so a whole family of entries (for example every search page)
can be evicted in one call without pattern matching on keys.

Two stores share one async interface:
- DatabaseCache keeps entries in the application database, so the API
  server, the scheduler and the `newsdesk scrape` command all see the
  same entries and the same evictions.
- MemoryCache keeps entries in the current process only.

Values must be JSON-serializable; callers cache dumped models and
validate them again on the way out.
"""

import hashlib
import json
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsdesk.models.database import DBCacheEntry, DBCacheTag

logger = structlog.get_logger(__name__)

# Key prefixes and fixed keys shared with the read side
ARTICLES_SEARCH_PREFIX = "articles_search_"
ALL_SOURCES_KEY = "all_sources"
ALL_CATEGORIES_KEY = "all_categories"
ALL_AUTHORS_KEY = "all_authors"

# Tags
ARTICLES_SEARCH_TAG = "articles_search"

_MISSING = object()


def user_feed_tag(user_id: int) -> str:
    return f"user_feed:{user_id}"


def params_hash(params: Mapping[str, Any]) -> str:
    """
    md5 of the parameter set encoded the way PHP's json_encode does it.

    Compact separators, escaped forward slashes, ASCII-only output and
    `[]` for an empty set keep the digests stable across deployments
    that share cache keys with the existing PHP read API.
    """
    if params:
        encoded = json.dumps(dict(params), separators=(",", ":"), ensure_ascii=True)
        encoded = encoded.replace("/", "\\/")
    else:
        encoded = "[]"
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def search_cache_key(params: Mapping[str, Any]) -> str:
    return f"{ARTICLES_SEARCH_PREFIX}{params_hash(params)}"


def feed_cache_key(user_id: int, params: Mapping[str, Any]) -> str:
    return f"user_feed_{user_id}_{params_hash(params)}"


def default_feed_cache_key(user_id: int, params: Mapping[str, Any]) -> str:
    return f"user_feed_{user_id}_default_{params_hash(params)}"


class TaggedCache(ABC):
    """
    Interface shared by the cache stores.

    Expired entries read as absent. Every `sweep_interval` writes the
    store drops all expired entries, so keys that are never read again
    do not accumulate.
    """

    def __init__(self, clock: Callable[[], float], sweep_interval: int = 100):
        self._clock = clock
        self.sweep_interval = sweep_interval
        self._writes = 0

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def _store(self, key: str, value: Any, expires_at: float, tags: frozenset[str]) -> None:
        pass

    @abstractmethod
    async def forget(self, key: str) -> bool:
        """Remove a single key. Returns True if something was removed."""
        pass

    @abstractmethod
    async def invalidate_tags(self, *tags: str) -> int:
        """Remove every entry carrying any of `tags`. Returns the count removed."""
        pass

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop every expired entry. Returns the count removed."""
        pass

    @abstractmethod
    async def flush(self) -> None:
        pass

    async def has(self, key: str) -> bool:
        return await self.get(key, _MISSING) is not _MISSING

    async def put(self, key: str, value: Any, ttl: float, tags: Iterable[str] = ()) -> None:
        """Store a value for `ttl` seconds, replacing any previous entry."""
        await self._store(key, value, self._clock() + ttl, frozenset(tags))

        self._writes += 1
        if self._writes % self.sweep_interval == 0:
            removed = await self.purge_expired()
            if removed:
                logger.debug("Expired cache entries swept", removed=removed)

    async def remember(
        self,
        key: str,
        ttl: float,
        factory: Callable[[], Awaitable[Any]],
        tags: Iterable[str] = (),
    ) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        value = await self.get(key, _MISSING)
        if value is not _MISSING:
            return value

        value = await factory()
        await self.put(key, value, ttl, tags)
        return value


@dataclass
class _Entry:
    value: Any
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)


class MemoryCache(TaggedCache):
    """In-process TTL cache with a tag index."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: int = 100):
        super().__init__(clock, sweep_interval)
        self._entries: dict[str, _Entry] = {}
        self._tag_index: dict[str, set[str]] = defaultdict(set)

    def _drop(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tag_index[tag]
        return True

    async def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.expires_at <= self._clock():
            self._drop(key)
            return default
        return entry.value

    async def _store(self, key: str, value: Any, expires_at: float, tags: frozenset[str]) -> None:
        self._drop(key)
        self._entries[key] = _Entry(value=value, expires_at=expires_at, tags=tags)
        for tag in tags:
            self._tag_index[tag].add(key)

    async def forget(self, key: str) -> bool:
        return self._drop(key)

    async def invalidate_tags(self, *tags: str) -> int:
        keys: set[str] = set()
        for tag in tags:
            keys |= self._tag_index.get(tag, set())

        removed = sum(1 for key in keys if self._drop(key))
        logger.debug("Cache tags invalidated", tags=list(tags), removed=removed)
        return removed

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._drop(key)
        return len(expired)

    async def flush(self) -> None:
        self._entries.clear()
        self._tag_index.clear()

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if entry.expires_at > now)


class DatabaseCache(TaggedCache):
    """
    Cache stored in the `cache_entries` and `cache_tags` tables.

    Expiry uses wall-clock time so separate processes agree on it. Tag
    rows are removed with their entry by the foreign key cascade.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], float] = time.time,
        sweep_interval: int = 100,
    ):
        super().__init__(clock, sweep_interval)
        self.session_factory = session_factory

    async def get(self, key: str, default: Any = None) -> Any:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DBCacheEntry.value, DBCacheEntry.expires_at).where(DBCacheEntry.key == key)
            )
            row = result.one_or_none()

        if row is None or row.expires_at <= self._clock():
            return default
        return json.loads(row.value)

    async def _store(self, key: str, value: Any, expires_at: float, tags: frozenset[str]) -> None:
        encoded = json.dumps(value)
        async with self.session_factory() as session:
            try:
                await session.execute(delete(DBCacheEntry).where(DBCacheEntry.key == key))
                await session.execute(
                    insert(DBCacheEntry).values(key=key, value=encoded, expires_at=expires_at)
                )
                if tags:
                    await session.execute(
                        insert(DBCacheTag), [{"tag": tag, "key": key} for tag in sorted(tags)]
                    )
                await session.commit()
            except IntegrityError:
                # Same key written concurrently by another process; keep that one
                await session.rollback()
                logger.debug("Concurrent cache write ignored", key=key)

    async def forget(self, key: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(DBCacheEntry).where(DBCacheEntry.key == key))
            await session.commit()
        return result.rowcount > 0

    async def invalidate_tags(self, *tags: str) -> int:
        if not tags:
            return 0
        tagged = select(DBCacheTag.key).where(DBCacheTag.tag.in_(tags))
        async with self.session_factory() as session:
            result = await session.execute(
                delete(DBCacheEntry).where(DBCacheEntry.key.in_(tagged))
            )
            await session.commit()

        logger.debug("Cache tags invalidated", tags=list(tags), removed=result.rowcount)
        return result.rowcount

    async def purge_expired(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(DBCacheEntry).where(DBCacheEntry.expires_at <= self._clock())
            )
            await session.commit()
        return result.rowcount

    async def flush(self) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(DBCacheTag))
            await session.execute(delete(DBCacheEntry))
            await session.commit()


def build_cache(
    store: str,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    sweep_interval: int = 100,
) -> TaggedCache:
    """Cache for the configured store name."""
    if store == "database":
        if session_factory is None:
            raise ValueError("The database cache store needs a session factory")
        return DatabaseCache(session_factory, sweep_interval=sweep_interval)
    if store == "memory":
        return MemoryCache(sweep_interval=sweep_interval)
    raise ValueError(f"Unknown cache store: {store}")


# Global cache instance
_global_cache: Optional[TaggedCache] = None


def set_cache(cache: TaggedCache) -> None:
    global _global_cache
    _global_cache = cache


def get_cache() -> TaggedCache:
    """Get the global cache instance (in-process until the app installs one)."""
    global _global_cache
    if _global_cache is None:
        _global_cache = MemoryCache()
    return _global_cache
