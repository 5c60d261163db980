"""
Standard CRUD, query and batch operations for any table.

Built directly on the query builder contract so it works for untyped
tables as well as entity tables. Every operation logs the underlying
error with the entity name and returns a generic, entity-scoped message
("Failed to retrieve organization"); backend detail never reaches the
caller.
"""

from typing import Any, Awaitable, Callable, Iterator, List, Mapping, Optional, Sequence, TypeVar

import structlog

from ..config import settings
from ..domain.exceptions import QueryExecutionError
from .query import DataRepository, Row
from .response import (
    CREATE_ERROR,
    DELETE_ERROR,
    QUERY_ERROR,
    UPDATE_ERROR,
    RepositoryResponse,
    fail_with,
    ok,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")
Item = TypeVar("Item")

_ERROR_CODES = {
    "create": CREATE_ERROR,
    "update": UPDATE_ERROR,
    "upsert": UPDATE_ERROR,
    "delete": DELETE_ERROR,
}


def chunked(items: Sequence[Item], size: int) -> Iterator[Sequence[Item]]:
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _unwrap(response: RepositoryResponse[T]) -> T:
    if response.is_error():
        raise QueryExecutionError(response.error)
    return response.data


class StandardOperations:
    """
    Error-handled operations over one repository.

    Attributes:
        repository: Repository issuing the query chains
        entity_name: Name used in log events and caller-facing messages
        id_field: Identifier column
        chunk_size: Batch chunk size
    """

    def __init__(
        self,
        repository: DataRepository,
        entity_name: str = "Entity",
        id_field: str = "id",
        chunk_size: Optional[int] = None,
    ):
        self.repository = repository
        self.entity_name = entity_name
        self.id_field = id_field
        self.chunk_size = chunk_size or settings.BATCH_CHUNK_SIZE

    def handle_error(self, error: Exception, verb: str) -> RepositoryResponse[Any]:
        """Log the underlying error and return the generic failure response."""
        logger.error(
            "Repository operation failed",
            entity=self.entity_name,
            table=self.repository.table_name,
            operation=verb,
            error=getattr(error, "message", None) or str(error),
            error_code=getattr(error, "code", None),
        )
        code = _ERROR_CODES.get(verb.split()[-1], QUERY_ERROR)
        return fail_with(code, f"Failed to {verb} {self.entity_name.lower()}")

    async def _guard(
        self, verb: str, call: Callable[[], Awaitable[RepositoryResponse[T]]]
    ) -> RepositoryResponse[T]:
        try:
            return await call()
        except Exception as e:
            return self.handle_error(e, verb)

    # CRUD

    async def get_by_id(self, id: Any) -> RepositoryResponse[Optional[Row]]:
        async def call():
            query = self.repository.select().eq(self.id_field, id)
            return ok(_unwrap(await query.maybe_single()))

        return await self._guard("retrieve", call)

    async def get_all(self) -> RepositoryResponse[List[Row]]:
        async def call():
            return ok(_unwrap(await self.repository.select().execute()))

        return await self._guard("retrieve", call)

    async def create(self, data: Row) -> RepositoryResponse[Row]:
        async def call():
            rows = _unwrap(await self.repository.insert(data).execute())
            return ok(rows[0] if rows else None)

        return await self._guard("create", call)

    async def update(self, id: Any, data: Row) -> RepositoryResponse[Row]:
        async def call():
            query = self.repository.update(data).eq(self.id_field, id)
            rows = _unwrap(await query.execute())
            return ok(rows[0] if rows else None)

        return await self._guard("update", call)

    async def delete(self, id: Any) -> RepositoryResponse[bool]:
        async def call():
            _unwrap(await self.repository.delete().eq(self.id_field, id).execute())
            return ok(True)

        return await self._guard("delete", call)

    async def exists(self, id: Any) -> bool:
        """Check whether a row with the given ID exists; errors count as absent."""
        try:
            query = self.repository.select(self.id_field).eq(self.id_field, id)
            return _unwrap(await query.maybe_single()) is not None
        except Exception as e:
            self.handle_error(e, "check existence of")
            return False

    async def count(self, column: Optional[str] = None, value: Any = None) -> int:
        """
        Count rows, optionally those where ``column`` equals ``value``.

        Uses the backend's exact count when it reports one and the length
        of the returned rows otherwise. Errors count as zero.
        """
        try:
            query = self.repository.select(self.id_field, count="exact")
            if column is not None:
                query = query.eq(column, value)
            response = await query.execute()
            rows = _unwrap(response)
            if response.count is not None:
                return response.count
            return len(rows or [])
        except Exception as e:
            self.handle_error(e, "count")
            return 0

    # Queries

    async def get_by_ids(self, ids: Sequence[Any]) -> RepositoryResponse[List[Row]]:
        async def call():
            query = self.repository.select().in_(self.id_field, ids)
            return ok(_unwrap(await query.execute()))

        return await self._guard("retrieve", call)

    async def find_by(self, field: str, value: Any) -> RepositoryResponse[List[Row]]:
        async def call():
            return ok(_unwrap(await self.repository.select().eq(field, value).execute()))

        return await self._guard("find", call)

    async def search(self, field: str, term: str) -> RepositoryResponse[List[Row]]:
        """Case-insensitive substring search on one column."""

        async def call():
            query = self.repository.select().ilike(field, f"%{term}%")
            return ok(_unwrap(await query.execute()))

        return await self._guard("search", call)

    # Batches

    async def batch_create(self, items: Sequence[Row]) -> RepositoryResponse[List[Row]]:
        """Insert rows in chunks of ``chunk_size``."""
        if not items:
            return ok([])

        async def call():
            created: List[Row] = []
            for chunk in chunked(list(items), self.chunk_size):
                created.extend(_unwrap(await self.repository.insert(list(chunk)).execute()))
            logger.debug("Batch created", entity=self.entity_name, count=len(created))
            return ok(created)

        return await self._guard("batch create", call)

    async def batch_update(self, items: Sequence[Row]) -> RepositoryResponse[List[Row]]:
        """
        Update rows one by one, each identified by its id field.

        Rows whose update fails are skipped; a missing id fails the batch
        before anything is written.
        """
        if not items:
            return ok([])

        async def call():
            missing = [item for item in items if item.get(self.id_field) is None]
            if missing:
                raise ValueError(f"{len(missing)} items missing IDs for batch update")

            updated: List[Row] = []
            for chunk in chunked(list(items), self.chunk_size):
                for item in chunk:
                    changes = {k: v for k, v in item.items() if k != self.id_field}
                    query = self.repository.update(changes).eq(self.id_field, item[self.id_field])
                    response = await query.execute()
                    if response.is_error():
                        logger.warning(
                            "Skipping failed batch update item",
                            entity=self.entity_name,
                            id=item[self.id_field],
                            error=response.get_error_message(),
                        )
                        continue
                    updated.extend(response.data[:1])
            logger.debug("Batch updated", entity=self.entity_name, count=len(updated))
            return ok(updated)

        return await self._guard("batch update", call)

    async def batch_delete(self, ids: Sequence[Any]) -> RepositoryResponse[bool]:
        if not ids:
            return ok(True)

        async def call():
            for chunk in chunked(list(ids), self.chunk_size):
                _unwrap(await self.repository.delete().in_(self.id_field, chunk).execute())
            logger.debug("Batch deleted", entity=self.entity_name, count=len(ids))
            return ok(True)

        return await self._guard("batch delete", call)

    async def batch_upsert(self, items: Sequence[Mapping[str, Any]]) -> RepositoryResponse[List[Row]]:
        """Insert rows without an id and upsert rows that carry one."""
        if not items:
            return ok([])

        async def call():
            new_items = [dict(item) for item in items if item.get(self.id_field) is None]
            keyed_items = [dict(item) for item in items if item.get(self.id_field) is not None]

            results: List[Row] = []
            for chunk in chunked(new_items, self.chunk_size):
                results.extend(_unwrap(await self.repository.insert(list(chunk)).execute()))
            for chunk in chunked(keyed_items, self.chunk_size):
                query = self.repository.upsert(list(chunk), on_conflict=self.id_field)
                results.extend(_unwrap(await query.execute()))
            logger.debug("Batch upserted", entity=self.entity_name, count=len(results))
            return ok(results)

        return await self._guard("batch upsert", call)
