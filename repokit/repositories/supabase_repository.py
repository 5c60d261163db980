"""
Supabase implementation of the repository contract.

Each terminal call replays the chain's QuerySpec onto a fresh PostgREST
request builder obtained from the injected Supabase client, executes it,
and routes the outcome through the response normalizer. Nothing raised by
the client escapes a terminal call.
"""

import inspect
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Union

import structlog

from .query import (
    DataRepository,
    FailedQuery,
    Filter,
    FilterOperator,
    Operation,
    OrFilter,
    QuerySpec,
    RepositoryQuery,
    Row,
    Terminal,
    apply_cardinality,
)
from .response import QUERY_ERROR, RepositoryResponse, fail

logger = structlog.get_logger(__name__)

# Rows fetched by single-row terminals: enough to detect "more than one".
_CARDINALITY_PROBE = 2


def _wire_value(value: Any) -> Any:
    """Render a filter value the way PostgREST expects it in a query string."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _is_value(value: Optional[bool]) -> str:
    if value is None:
        return "null"
    return "true" if value else "false"


class SupabaseQuery(RepositoryQuery):
    """Query chain executed through a Supabase/PostgREST client."""

    def __init__(self, repository: "SupabaseRepository", spec: QuerySpec):
        super().__init__(repository.table_name, spec)
        self._repository = repository

    def _with_spec(self, spec: QuerySpec) -> "SupabaseQuery":
        return SupabaseQuery(self._repository, spec)

    async def execute(self) -> RepositoryResponse[List[Row]]:
        return await self._run(Terminal.EXECUTE)

    async def single(self) -> RepositoryResponse[Row]:
        return await self._run(Terminal.SINGLE)

    async def maybe_single(self) -> RepositoryResponse[Optional[Row]]:
        return await self._run(Terminal.MAYBE_SINGLE)

    async def _run(self, terminal: Terminal) -> RepositoryResponse:
        spec = self.spec
        try:
            builder = self._build(terminal)
            result = builder.execute()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            response = fail(e, default_code=QUERY_ERROR)
            logger.error(
                "Query execution failed",
                table=self.table_name,
                operation=spec.operation.value,
                terminal=terminal.value,
                error_code=response.error.code,
                error=response.error.message,
            )
            return response

        rows = self._rows(result)
        response = apply_cardinality(rows, terminal, getattr(result, "count", None))
        if response.is_error():
            logger.error(
                "Query returned unexpected cardinality",
                table=self.table_name,
                operation=spec.operation.value,
                terminal=terminal.value,
                error_code=response.error.code,
                rows=len(rows),
            )
        elif self._repository.enable_logging:
            logger.debug(
                "Query executed",
                table=self.table_name,
                operation=spec.operation.value,
                terminal=terminal.value,
                rows=len(rows),
            )
        return response

    @staticmethod
    def _rows(result: Any) -> List[Row]:
        data = getattr(result, "data", result)
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

    def _build(self, terminal: Terminal) -> Any:
        """Translate the QuerySpec onto a fresh PostgREST request builder."""
        spec = self.spec
        table = self._repository.table_builder()
        count = spec.count

        if spec.operation is Operation.SELECT:
            builder = table.select(spec.columns or "*", count=count)
        elif spec.operation is Operation.INSERT:
            builder = table.insert(spec.payload, count=count)
        elif spec.operation is Operation.UPSERT:
            builder = table.upsert(spec.payload, count=count, on_conflict=spec.on_conflict or "")
        elif spec.operation is Operation.UPDATE:
            builder = table.update(spec.payload, count=count)
        else:
            builder = table.delete(count=count)

        if spec.operation not in (Operation.INSERT, Operation.UPSERT):
            for predicate in spec.filters:
                builder = self._apply_filter(builder, predicate)

        if spec.operation is not Operation.SELECT:
            # Writes return every column unless the chain selected some.
            if spec.columns:
                builder = builder.select(spec.columns)
            return builder

        for key in spec.order:
            builder = builder.order(key.field, desc=not key.ascending)

        limit = spec.limit
        if terminal is not Terminal.EXECUTE:
            limit = _CARDINALITY_PROBE if limit is None else min(limit, _CARDINALITY_PROBE)

        offset = spec.offset
        if limit is not None and limit > 0 and offset is not None:
            builder = builder.range(offset, offset + limit - 1)
        else:
            if limit is not None:
                builder = builder.limit(limit)
            if offset is not None:
                builder = builder.offset(offset)
        return builder

    @staticmethod
    def _apply_filter(builder: Any, predicate: Union[Filter, OrFilter]) -> Any:
        if isinstance(predicate, OrFilter):
            return builder.or_(predicate.expression)

        operator = predicate.operator
        if operator is FilterOperator.IS:
            return builder.is_(predicate.field, _is_value(predicate.value))
        if operator is FilterOperator.IN:
            return builder.in_(predicate.field, [_wire_value(v) for v in predicate.value])

        method = getattr(builder, operator.value)
        return method(predicate.field, _wire_value(predicate.value))


class SupabaseRepository(DataRepository):
    """
    Repository backed by a Supabase table or view.

    The client is probed once at construction; if the table reference
    cannot be built, every chain started from this repository is a
    FailedQuery carrying the normalized error.
    """

    def __init__(
        self,
        client: Any,
        table_name: str,
        schema: str = "public",
        enable_logging: bool = False,
    ):
        """
        Initialize repository.

        Args:
            client: Supabase client (sync or async)
            table_name: Table or view name
            schema: Postgres schema exposed through PostgREST
            enable_logging: Log every successful terminal call at debug level
        """
        self.client = client
        self.table_name = table_name
        self.schema = schema
        self.enable_logging = enable_logging
        self._construction_error: Optional[RepositoryResponse] = None

        try:
            self.table_builder()
        except Exception as e:
            self._construction_error = fail(e, default_code=QUERY_ERROR)
            logger.error(
                "Failed to initialize table reference",
                table=table_name,
                schema=schema,
                error=self._construction_error.error.message,
            )

    def table_builder(self) -> Any:
        """Return a fresh request builder for this repository's table."""
        if self.schema and self.schema != "public":
            return self.client.schema(self.schema).table(self.table_name)
        return self.client.table(self.table_name)

    def _start(self, operation: Operation, **fields: Any) -> RepositoryQuery:
        if self._construction_error is not None:
            return FailedQuery(self.table_name, self._construction_error)
        return SupabaseQuery(self, QuerySpec(operation=operation, **fields))

    def select(self, columns: str = "*", count: Optional[str] = None) -> RepositoryQuery:
        return self._start(Operation.SELECT, columns=columns, count=count)

    def insert(self, data: Union[Row, Sequence[Row]]) -> RepositoryQuery:
        return self._start(Operation.INSERT, payload=data)

    def update(self, data: Row) -> RepositoryQuery:
        return self._start(Operation.UPDATE, payload=data)

    def upsert(
        self, data: Union[Row, Sequence[Row]], on_conflict: str = "id"
    ) -> RepositoryQuery:
        return self._start(Operation.UPSERT, payload=data, on_conflict=on_conflict)

    def delete(self) -> RepositoryQuery:
        return self._start(Operation.DELETE)
