"""
Fake Supabase/PostgREST client for adapter tests.

Mimics the request-builder surface the adapter uses (``table``,
``schema``, filter methods, ``order``/``limit``/``offset``/``range``,
``execute``) and evaluates queries over in-process rows. Every builder
call is recorded so tests can assert the translation.
"""

import copy
import itertools
from typing import Any, Dict, List, Optional

from repokit.repositories.filtering import filter_rows, paginate_rows, sort_rows
from repokit.repositories.query import Filter, FilterOperator, OrderBy, OrFilter, project_rows

_ids = itertools.count(1000)


class FakeAPIResponse:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeFilterBuilder:
    """Write builder: filters, select and execute."""

    def __init__(self, client: "FakeSupabaseClient", table: str, operation: str, **fields: Any):
        self.client = client
        self.table = table
        self.operation = operation
        self.payload = fields.get("payload")
        self.columns = fields.get("columns")
        self.count = fields.get("count")
        self.on_conflict = fields.get("on_conflict")
        self.filters: List[Any] = []
        self.order_by: List[OrderBy] = []
        self.limit_value: Optional[int] = None
        self.offset_value: Optional[int] = None
        client.calls.append((operation, table, dict(fields)))

    def _record(self, name: str, *args: Any) -> None:
        self.client.calls.append((name, self.table, args))

    def _add(self, name: str, column: str, value: Any) -> "FakeFilterBuilder":
        self._record(name, column, value)
        self.filters.append(Filter(column, FilterOperator(name), value))
        return self

    def eq(self, column, value):
        return self._add("eq", column, value)

    def neq(self, column, value):
        return self._add("neq", column, value)

    def gt(self, column, value):
        return self._add("gt", column, value)

    def gte(self, column, value):
        return self._add("gte", column, value)

    def lt(self, column, value):
        return self._add("lt", column, value)

    def lte(self, column, value):
        return self._add("lte", column, value)

    def like(self, column, pattern):
        return self._add("like", column, pattern)

    def ilike(self, column, pattern):
        return self._add("ilike", column, pattern)

    def in_(self, column, values):
        self._record("in", column, list(values))
        self.filters.append(Filter(column, FilterOperator.IN, tuple(values)))
        return self

    def is_(self, column, value):
        self._record("is", column, value)
        expected = None if value == "null" else value == "true"
        self.filters.append(Filter(column, FilterOperator.IS, expected))
        return self

    def or_(self, expression):
        self._record("or", expression)
        self.filters.append(OrFilter(expression))
        return self

    def select(self, *columns):
        self._record("select", *columns)
        self.columns = ",".join(columns)
        return self

    def execute(self):
        self.client.executions += 1
        if self.client.execute_error is not None:
            raise self.client.execute_error
        result = self._evaluate()
        if self.client.async_mode:
            return self._later(result)
        return result

    @staticmethod
    async def _later(result):
        return result

    def _evaluate(self) -> FakeAPIResponse:
        rows = self.client.rows(self.table)

        if self.operation == "select":
            matched = filter_rows(rows, self.filters)
            count = len(matched) if self.count else None
            ordered = sort_rows(matched, self.order_by)
            page = paginate_rows(ordered, self.offset_value, self.limit_value)
            return FakeAPIResponse(project_rows(page, self.columns), count)

        if self.operation in ("insert", "upsert"):
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            written = []
            for item in payload:
                row = copy.deepcopy(item)
                existing = None
                if self.operation == "upsert" and row.get(self.on_conflict) is not None:
                    existing = next(
                        (r for r in rows if r.get(self.on_conflict) == row[self.on_conflict]),
                        None,
                    )
                if existing is not None:
                    existing.update(row)
                    written.append(dict(existing))
                    continue
                row.setdefault("id", next(_ids))
                rows.append(row)
                written.append(dict(row))
            return FakeAPIResponse(project_rows(written, self.columns), len(written) if self.count else None)

        matched = filter_rows(rows, self.filters)
        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeAPIResponse(project_rows([dict(row) for row in matched], self.columns))

        remaining = [row for row in rows if all(row is not m for m in matched)]
        rows[:] = remaining
        return FakeAPIResponse(project_rows([dict(row) for row in matched], self.columns))


class FakeSelectBuilder(FakeFilterBuilder):
    """Read builder adding select, order and pagination."""

    def select(self, columns="*", count=None):
        self.columns = columns
        self.count = count
        return self

    def order(self, column, desc=False):
        self._record("order", column, desc)
        self.order_by.append(OrderBy(column, not desc))
        return self

    def limit(self, count):
        self._record("limit", count)
        self.limit_value = count
        return self

    def offset(self, count):
        self._record("offset", count)
        self.offset_value = count
        return self

    def range(self, start, end):
        self._record("range", start, end)
        self.offset_value = start
        self.limit_value = end - start + 1
        return self


class FakeTable:
    def __init__(self, client: "FakeSupabaseClient", name: str):
        self.client = client
        self.name = name

    def select(self, columns="*", count=None):
        return FakeSelectBuilder(self.client, self.name, "select", columns=columns, count=count)

    def insert(self, json, count=None):
        return FakeFilterBuilder(self.client, self.name, "insert", payload=json, count=count)

    def upsert(self, json, count=None, on_conflict=""):
        return FakeFilterBuilder(
            self.client, self.name, "upsert", payload=json, count=count, on_conflict=on_conflict
        )

    def update(self, json, count=None):
        return FakeFilterBuilder(self.client, self.name, "update", payload=json, count=count)

    def delete(self, count=None):
        return FakeFilterBuilder(self.client, self.name, "delete", count=count)


class FakeSupabaseClient:
    """
    In-process stand-in for ``supabase.Client``.

    Args:
        tables: Initial rows per table
        async_mode: ``execute`` returns a coroutine, like the async client
        table_error: Raised by ``table()``
        execute_error: Raised by every ``execute()``
    """

    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        async_mode: bool = False,
        table_error: Optional[Exception] = None,
        execute_error: Optional[Exception] = None,
    ):
        self.tables = copy.deepcopy(tables or {})
        self.async_mode = async_mode
        self.table_error = table_error
        self.execute_error = execute_error
        self.calls: List[Any] = []
        self.schemas: List[str] = []
        self.executions = 0

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def table(self, name: str) -> FakeTable:
        if self.table_error is not None:
            raise self.table_error
        return FakeTable(self, name)

    def schema(self, name: str) -> "FakeSupabaseClient":
        self.schemas.append(name)
        return self
