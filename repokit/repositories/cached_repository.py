"""
Read-through caching for repository reads.

Caches successful ``get_by_id``/``get_all`` responses in a TTL cache.
Any write chain started through the repository clears the table's cache
once its terminal call has run.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import structlog
from cachetools import TTLCache  # type: ignore[import-untyped]

from ..config import settings
from .base_repository import BaseRepository
from .query import DataRepository, QuerySpec, RepositoryQuery, Row
from .response import RepositoryResponse

logger = structlog.get_logger(__name__)


class CacheStrategy(str, Enum):
    """How reads consult the cache."""

    NONE = "none"
    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"


class InvalidatingQuery(RepositoryQuery):
    """Write chain that clears a cache after each terminal call."""

    def __init__(self, inner: RepositoryQuery, on_complete: Callable[[], None]):
        super().__init__(inner.table_name, inner.spec)
        self._inner = inner
        self._on_complete = on_complete

    def _with_spec(self, spec: QuerySpec) -> "InvalidatingQuery":
        return InvalidatingQuery(self._inner._with_spec(spec), self._on_complete)

    async def _finish(self, call: Awaitable[RepositoryResponse]) -> RepositoryResponse:
        try:
            return await call
        finally:
            self._on_complete()

    async def execute(self) -> RepositoryResponse[List[Row]]:
        return await self._finish(self._inner.execute())

    async def single(self) -> RepositoryResponse[Row]:
        return await self._finish(self._inner.single())

    async def maybe_single(self) -> RepositoryResponse[Optional[Row]]:
        return await self._finish(self._inner.maybe_single())


class CachedRepository(BaseRepository):
    """
    BaseRepository with a per-table TTL cache.

    Attributes:
        cache: TTL cache keyed by ``table:operation[:arg]``
        strategy: Cache strategy for reads
        hits: Number of cache hits
        misses: Number of cache misses
    """

    def __init__(
        self,
        source: DataRepository,
        strategy: Union[CacheStrategy, str] = CacheStrategy.CACHE_FIRST,
        ttl: Optional[int] = None,
        max_size: Optional[int] = None,
        clear_on_mutation: bool = True,
        **options: Any,
    ):
        """
        Initialize repository.

        Args:
            source: Repository executing the query chains
            strategy: Cache strategy for reads
            ttl: Entry lifetime in seconds (default: CACHE_TTL_SECONDS)
            max_size: Maximum cached entries (default: CACHE_MAX_SIZE)
            clear_on_mutation: Clear the cache after every write
            **options: RepositoryOptions overrides
        """
        super().__init__(source, **options)
        self.strategy = CacheStrategy(strategy)
        self.clear_on_mutation = clear_on_mutation
        self.cache: TTLCache = TTLCache(
            maxsize=max_size or settings.CACHE_MAX_SIZE,
            ttl=ttl if ttl is not None else settings.CACHE_TTL_SECONDS,
        )
        self.hits = 0
        self.misses = 0

        logger.debug(
            "Initialized cached repository",
            table=self.table_name,
            strategy=self.strategy.value,
            ttl=self.cache.ttl,
            max_size=self.cache.maxsize,
        )

    def cache_key(self, operation: str, arg: Any = None) -> str:
        if arg is None:
            return f"{self.table_name}:{operation}"
        return f"{self.table_name}:{operation}:{arg}"

    async def _with_caching(
        self,
        key: str,
        fetch: Callable[[], Awaitable[RepositoryResponse]],
    ) -> RepositoryResponse:
        if self.strategy is CacheStrategy.NONE:
            return await fetch()

        if self.strategy is CacheStrategy.CACHE_FIRST:
            cached = self.cache.get(key)
            if cached is not None:
                self.hits += 1
                logger.debug("Cache HIT", key=key)
                return cached
            self.misses += 1
            logger.debug("Cache MISS", key=key)

        response = await fetch()
        if response.is_success():
            self.cache[key] = response
        elif self.strategy is CacheStrategy.NETWORK_FIRST and key in self.cache:
            logger.warning("Serving cached response after failed read", key=key)
            return self.cache[key]
        return response

    async def get_by_id(self, id: Any) -> RepositoryResponse[Optional[Row]]:
        return await self._with_caching(
            self.cache_key("get_by_id", id), lambda: super(CachedRepository, self).get_by_id(id)
        )

    async def get_all(self) -> RepositoryResponse[List[Row]]:
        return await self._with_caching(
            self.cache_key("get_all"), lambda: super(CachedRepository, self).get_all()
        )

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one cache entry, or the whole cache when no key is given."""
        if key is None:
            count = len(self.cache)
            self.cache.clear()
            logger.debug("Cleared cache", table=self.table_name, entries=count)
        else:
            self.cache.pop(key, None)

    def _writing(self, query: RepositoryQuery) -> RepositoryQuery:
        if not self.clear_on_mutation:
            return query
        return InvalidatingQuery(query, self.invalidate)

    def insert(self, data: Union[Row, Sequence[Row]]) -> RepositoryQuery:
        return self._writing(super().insert(data))

    def update(self, data: Row) -> RepositoryQuery:
        return self._writing(super().update(data))

    def upsert(
        self, data: Union[Row, Sequence[Row]], on_conflict: str = "id"
    ) -> RepositoryQuery:
        return self._writing(super().upsert(data, on_conflict=on_conflict))

    def delete(self) -> RepositoryQuery:
        return self._writing(super().delete())

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with hit/miss counters and current size
        """
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": len(self.cache),
            "max_size": self.cache.maxsize,
            "hit_rate": round(self.hits / total * 100, 2) if total else 0,
        }
