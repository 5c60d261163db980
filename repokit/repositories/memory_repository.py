"""
In-memory implementation of the repository contract.

Stands in for the Supabase adapter in tests. Each terminal call evaluates
its QuerySpec snapshot against a shared per-table row list in a fixed
order: filters, ordering, pagination, column projection. Writes mutate
the shared list directly and synthesize identifiers the way a database
default would.

There is no locking: concurrent writers race and the last write wins.
"""

import copy
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import structlog

from .filtering import filter_rows, paginate_rows, sort_rows
from .query import (
    DataRepository,
    Operation,
    QuerySpec,
    RepositoryQuery,
    Row,
    Terminal,
    apply_cardinality,
    project_rows,
)
from .response import QUERY_ERROR, RepositoryResponse, fail, ok

logger = structlog.get_logger(__name__)

MockKey = Tuple[Operation, Optional[Terminal]]


class InMemoryDataStore:
    """
    Named tables of rows shared by in-memory repositories.

    Attributes:
        tables: Mapping of table name to its mutable row list
    """

    def __init__(self, tables: Optional[Mapping[str, Iterable[Row]]] = None):
        self.tables: Dict[str, List[Row]] = {}
        for name, rows in (tables or {}).items():
            self.tables[name] = [copy.deepcopy(dict(row)) for row in rows]

    def table(self, name: str) -> List[Row]:
        """Get the row list for a table, creating it when absent."""
        return self.tables.setdefault(name, [])

    def clear(self, name: Optional[str] = None) -> None:
        """Empty one table, or every table when no name is given."""
        if name is None:
            for rows in self.tables.values():
                rows.clear()
        else:
            self.table(name).clear()


class InMemoryQuery(RepositoryQuery):
    """Query chain evaluated by its InMemoryRepository."""

    def __init__(self, repository: "InMemoryRepository", spec: QuerySpec):
        super().__init__(repository.table_name, spec)
        self._repository = repository

    def _with_spec(self, spec: QuerySpec) -> "InMemoryQuery":
        return InMemoryQuery(self._repository, spec)

    async def execute(self) -> RepositoryResponse[List[Row]]:
        return self._repository.run(self.spec, Terminal.EXECUTE)

    async def single(self) -> RepositoryResponse[Row]:
        return self._repository.run(self.spec, Terminal.SINGLE)

    async def maybe_single(self) -> RepositoryResponse[Optional[Row]]:
        return self._repository.run(self.spec, Terminal.MAYBE_SINGLE)


class InMemoryRepository(DataRepository):
    """
    Repository over an in-process table.

    Besides the query contract it offers test accessors to seed, inspect
    and clear the table, and per-operation response overrides that force
    a result without touching the stored rows.
    """

    def __init__(
        self,
        table_name: str,
        initial_data: Optional[Iterable[Row]] = None,
        store: Optional[InMemoryDataStore] = None,
        id_field: str = "id",
    ):
        """
        Initialize repository.

        Args:
            table_name: Logical table name
            initial_data: Rows seeded into the table (restored by ``reset``)
            store: Shared store; a private one is created when omitted
            id_field: Column holding the row identifier
        """
        self.table_name = table_name
        self.store = store if store is not None else InMemoryDataStore()
        self.id_field = id_field
        self._seed = [copy.deepcopy(dict(row)) for row in initial_data or []]
        self._mock_responses: Dict[MockKey, RepositoryResponse] = {}

        self.last_operation: Optional[Operation] = None
        self.last_data: Any = None
        self.write_calls: List[Tuple[Operation, Any]] = []

        if self._seed:
            self.add_items(self._seed)

    @property
    def rows(self) -> List[Row]:
        return self.store.table(self.table_name)

    # Chain starters

    def _start(self, operation: Operation, **fields: Any) -> InMemoryQuery:
        self.last_operation = operation
        self.last_data = fields.get("payload")
        return InMemoryQuery(self, QuerySpec(operation=operation, **fields))

    def select(self, columns: str = "*", count: Optional[str] = None) -> InMemoryQuery:
        return self._start(Operation.SELECT, columns=columns, count=count)

    def insert(self, data: Union[Row, Sequence[Row]]) -> InMemoryQuery:
        return self._start(Operation.INSERT, payload=data)

    def update(self, data: Row) -> InMemoryQuery:
        return self._start(Operation.UPDATE, payload=data)

    def upsert(
        self, data: Union[Row, Sequence[Row]], on_conflict: str = "id"
    ) -> InMemoryQuery:
        return self._start(Operation.UPSERT, payload=data, on_conflict=on_conflict)

    def delete(self) -> InMemoryQuery:
        return self._start(Operation.DELETE)

    # Response overrides

    def mock_response(
        self,
        operation: Union[Operation, str],
        response: RepositoryResponse,
        terminal: Optional[Union[Terminal, str]] = None,
    ) -> None:
        """
        Force the response of an operation.

        Args:
            operation: Operation to override (select, insert, ...)
            response: Response returned instead of evaluating the query
            terminal: Restrict the override to one terminal call
        """
        key = (Operation(operation), Terminal(terminal) if terminal else None)
        self._mock_responses[key] = response

    def mock_error(
        self,
        operation: Union[Operation, str],
        error: Any,
        terminal: Optional[Union[Terminal, str]] = None,
    ) -> None:
        self.mock_response(operation, fail(error, default_code=QUERY_ERROR), terminal)

    def mock_success(
        self,
        operation: Union[Operation, str],
        data: Any,
        terminal: Optional[Union[Terminal, str]] = None,
    ) -> None:
        self.mock_response(operation, ok(data), terminal)

    def clear_mocks(self) -> None:
        self._mock_responses.clear()

    def _mocked(self, operation: Operation, terminal: Terminal) -> Optional[RepositoryResponse]:
        response = self._mock_responses.get((operation, terminal))
        if response is None:
            response = self._mock_responses.get((operation, None))
        return response

    # Test accessors

    def add_items(self, items: Union[Row, Iterable[Row]]) -> List[Row]:
        """Append rows directly, synthesizing missing identifiers."""
        if isinstance(items, Mapping):
            items = [items]
        added = [self._with_identifier(item) for item in items]
        self.rows.extend(added)
        return [dict(row) for row in added]

    def clear_items(self) -> None:
        self.store.clear(self.table_name)

    def find_by_id(self, id: Any) -> Optional[Row]:
        for row in self.rows:
            if row.get(self.id_field) == id:
                return dict(row)
        return None

    def snapshot(self) -> List[Row]:
        return copy.deepcopy(self.rows)

    def reset(self) -> None:
        """Restore seed rows and drop overrides and call history."""
        self.clear_items()
        self.add_items(copy.deepcopy(self._seed))
        self.clear_mocks()
        self.write_calls.clear()
        self.last_operation = None
        self.last_data = None

    # Evaluation

    def run(self, spec: QuerySpec, terminal: Terminal) -> RepositoryResponse:
        """Evaluate a QuerySpec snapshot for a terminal call."""
        if spec.operation.is_write:
            self.write_calls.append((spec.operation, copy.deepcopy(spec.payload)))

        mocked = self._mocked(spec.operation, terminal)
        if mocked is not None:
            logger.debug(
                "Returning mocked response",
                table=self.table_name,
                operation=spec.operation.value,
                terminal=terminal.value,
            )
            return mocked

        try:
            rows, count = self._evaluate(spec)
        except Exception as e:
            logger.warning(
                "In-memory query failed",
                table=self.table_name,
                operation=spec.operation.value,
                error=str(e),
            )
            return fail(e, default_code=QUERY_ERROR)

        return apply_cardinality(rows, terminal, count)

    def _evaluate(self, spec: QuerySpec) -> Tuple[List[Row], Optional[int]]:
        if spec.operation is Operation.SELECT:
            matched = filter_rows(self.rows, spec.filters)
            count = len(matched) if spec.count else None
            ordered = sort_rows(matched, spec.order)
            page = paginate_rows(ordered, spec.offset, spec.limit)
            return project_rows(page, spec.columns), count

        if spec.operation is Operation.INSERT:
            written = self.add_items(self._payload_rows(spec.payload))
        elif spec.operation is Operation.UPSERT:
            written = self._upsert(self._payload_rows(spec.payload), spec.on_conflict or self.id_field)
        elif spec.operation is Operation.UPDATE:
            written = self._update(spec)
        else:
            written = self._delete(spec)

        count = len(written) if spec.count else None
        return project_rows(written, spec.columns), count

    def _with_identifier(self, row: Mapping[str, Any]) -> Row:
        stored = copy.deepcopy(dict(row))
        if stored.get(self.id_field) is None:
            stored[self.id_field] = str(uuid.uuid4())
        return stored

    @staticmethod
    def _payload_rows(payload: Any) -> List[Row]:
        if payload is None:
            return []
        if isinstance(payload, Mapping):
            return [dict(payload)]
        return [dict(row) for row in payload]

    def _upsert(self, payload: List[Row], on_conflict: str) -> List[Row]:
        keys = [key.strip() for key in on_conflict.split(",") if key.strip()]
        written = []
        for incoming in payload:
            index = self._find_conflict(incoming, keys)
            if index is None:
                written.extend(self.add_items(incoming))
            else:
                merged = {**self.rows[index], **copy.deepcopy(incoming)}
                self.rows[index] = merged
                written.append(dict(merged))
        return written

    def _find_conflict(self, incoming: Row, keys: List[str]) -> Optional[int]:
        if not keys or any(incoming.get(key) is None for key in keys):
            return None
        for index, row in enumerate(self.rows):
            if all(row.get(key) == incoming.get(key) for key in keys):
                return index
        return None

    def _update(self, spec: QuerySpec) -> List[Row]:
        matched = {id(row) for row in filter_rows(self.rows, spec.filters)}
        changes = copy.deepcopy(dict(spec.payload or {}))
        written = []
        for index, row in enumerate(self.rows):
            if id(row) in matched:
                updated = {**row, **changes}
                self.rows[index] = updated
                written.append(dict(updated))
        return written

    def _delete(self, spec: QuerySpec) -> List[Row]:
        matched = {id(row) for row in filter_rows(self.rows, spec.filters)}
        removed = [dict(row) for row in self.rows if id(row) in matched]
        self.rows[:] = [row for row in self.rows if id(row) not in matched]
        return removed


# Global store shared by repositories built through the factory
_memory_store: Optional[InMemoryDataStore] = None


def get_memory_store() -> InMemoryDataStore:
    """
    Get or create the global in-memory data store.

    Returns:
        Shared InMemoryDataStore instance
    """
    global _memory_store
    if _memory_store is None:
        _memory_store = InMemoryDataStore()
        logger.info("Initialized in-memory data store")
    return _memory_store
