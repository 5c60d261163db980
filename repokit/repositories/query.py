"""
Query builder contract shared by every backend.

A query is an immutable QuerySpec: each chain call returns a new builder
carrying a new spec, so a chain can be forked or reused without one
branch's filters leaking into another. Terminal calls (``execute``,
``single``, ``maybe_single``) consume a QuerySpec snapshot and return a
RepositoryResponse.

The cardinality and column-projection helpers at the bottom of this
module are shared by the live adapter and the in-memory double so that
both apply the same rules to the rows they obtain.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .response import NOT_FOUND, QUERY_ERROR, RepositoryResponse, fail_with, ok

Row = Dict[str, Any]


class FilterOperator(str, Enum):
    """Column filter operators."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    IS = "is"


class Operation(str, Enum):
    """Statement a query chain was started with."""

    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"

    @property
    def is_write(self) -> bool:
        return self is not Operation.SELECT


class Terminal(str, Enum):
    """Terminal call that executes a chain."""

    EXECUTE = "execute"
    SINGLE = "single"
    MAYBE_SINGLE = "maybe_single"


@dataclass(frozen=True)
class Filter:
    """A single column predicate."""

    field: str
    operator: FilterOperator
    value: Any = None


@dataclass(frozen=True)
class OrFilter:
    """Raw PostgREST ``or`` expression, e.g. ``"name.eq.a,age.gt.3"``."""

    expression: str


Predicate = Union[Filter, OrFilter]


@dataclass(frozen=True)
class OrderBy:
    """Sort key. NULLs sort last ascending and first descending."""

    field: str
    ascending: bool = True


@dataclass(frozen=True)
class QuerySpec:
    """
    Accumulated intent of a query chain.

    Attributes:
        operation: Statement the chain started with
        columns: Column selection; None means every column
        count: Count mode requested with the selection ("exact")
        payload: Row(s) to write for insert/update/upsert
        on_conflict: Conflict target for upsert
        filters: AND-ed predicates in call order
        order: Sort keys in priority order
        limit: Maximum rows returned
        offset: Rows skipped after filtering and ordering
    """

    operation: Operation = Operation.SELECT
    columns: Optional[str] = None
    count: Optional[str] = None
    payload: Any = None
    on_conflict: Optional[str] = None
    filters: Tuple[Predicate, ...] = ()
    order: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None

    def with_filter(self, predicate: Predicate) -> "QuerySpec":
        return replace(self, filters=self.filters + (predicate,))

    def with_order(self, order_by: OrderBy) -> "QuerySpec":
        return replace(self, order=self.order + (order_by,))


class RepositoryQuery(ABC):
    """
    Fluent, immutable query builder.

    Chain methods return a new builder of the same class; subclasses only
    implement ``_with_spec`` and the three terminal calls.
    """

    def __init__(self, table_name: str, spec: QuerySpec):
        self.table_name = table_name
        self.spec = spec

    @abstractmethod
    def _with_spec(self, spec: QuerySpec) -> "RepositoryQuery":
        """Return a builder of the same kind carrying ``spec``."""

    def _filter(self, column: str, operator: FilterOperator, value: Any) -> "RepositoryQuery":
        return self._with_spec(self.spec.with_filter(Filter(column, operator, value)))

    def select(self, columns: str = "*", count: Optional[str] = None) -> "RepositoryQuery":
        return self._with_spec(
            replace(self.spec, columns=columns, count=count or self.spec.count)
        )

    def eq(self, column: str, value: Any) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.EQ, value)

    def neq(self, column: str, value: Any) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.NEQ, value)

    def gt(self, column: str, value: Any) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.GT, value)

    def gte(self, column: str, value: Any) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.GTE, value)

    def lt(self, column: str, value: Any) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.LT, value)

    def lte(self, column: str, value: Any) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.LTE, value)

    def like(self, column: str, pattern: str) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.LIKE, pattern)

    def ilike(self, column: str, pattern: str) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.ILIKE, pattern)

    def in_(self, column: str, values: Iterable[Any]) -> "RepositoryQuery":
        return self._filter(column, FilterOperator.IN, tuple(values))

    def is_(self, column: str, value: Optional[bool]) -> "RepositoryQuery":
        """Match NULL (``None``) or a boolean identity."""
        if isinstance(value, str) and value.lower() == "null":
            value = None
        return self._filter(column, FilterOperator.IS, value)

    def match(self, query: Mapping[str, Any]) -> "RepositoryQuery":
        """Add an ``eq`` filter for every column/value pair."""
        builder: RepositoryQuery = self
        for column, value in query.items():
            builder = builder.eq(column, value)
        return builder

    def or_(self, expression: str) -> "RepositoryQuery":
        return self._with_spec(self.spec.with_filter(OrFilter(expression)))

    def order(self, column: str, ascending: bool = True) -> "RepositoryQuery":
        return self._with_spec(self.spec.with_order(OrderBy(column, ascending)))

    def limit(self, count: int) -> "RepositoryQuery":
        return self._with_spec(replace(self.spec, limit=max(0, count)))

    def offset(self, count: int) -> "RepositoryQuery":
        return self._with_spec(replace(self.spec, offset=max(0, count)))

    def range(self, start: int, end: int) -> "RepositoryQuery":
        """Inclusive range; same as ``offset(start).limit(end - start + 1)``."""
        start = max(0, start)
        return self._with_spec(
            replace(self.spec, offset=start, limit=max(0, end - start + 1))
        )

    @abstractmethod
    async def execute(self) -> RepositoryResponse[List[Row]]:
        """Run the query and return every resulting row."""

    @abstractmethod
    async def single(self) -> RepositoryResponse[Row]:
        """Run the query and require exactly one row."""

    @abstractmethod
    async def maybe_single(self) -> RepositoryResponse[Optional[Row]]:
        """Run the query and accept zero or one row."""


class DataRepository(ABC):
    """
    Table-level entry point for query chains.

    Every method starts a new chain; nothing is sent to a backend until a
    terminal call is awaited.
    """

    table_name: str

    @abstractmethod
    def select(self, columns: str = "*", count: Optional[str] = None) -> RepositoryQuery:
        """Start a read chain."""

    @abstractmethod
    def insert(self, data: Union[Row, Sequence[Row]]) -> RepositoryQuery:
        """Start an insert chain for one or many rows."""

    @abstractmethod
    def update(self, data: Row) -> RepositoryQuery:
        """Start an update chain; filters select the rows to change."""

    @abstractmethod
    def upsert(
        self, data: Union[Row, Sequence[Row]], on_conflict: str = "id"
    ) -> RepositoryQuery:
        """Start an insert-or-update chain keyed by ``on_conflict``."""

    @abstractmethod
    def delete(self) -> RepositoryQuery:
        """Start a delete chain; filters select the rows to remove."""


class FailedQuery(RepositoryQuery):
    """
    Builder that could not be constructed.

    Chain calls are no-ops and every terminal call returns the same
    normalized error.
    """

    def __init__(self, table_name: str, response: RepositoryResponse):
        super().__init__(table_name, QuerySpec())
        self.response = response

    def _with_spec(self, spec: QuerySpec) -> "FailedQuery":
        return self

    async def execute(self) -> RepositoryResponse[List[Row]]:
        return self.response

    async def single(self) -> RepositoryResponse[Row]:
        return self.response

    async def maybe_single(self) -> RepositoryResponse[Optional[Row]]:
        return self.response


def apply_cardinality(
    rows: List[Row], terminal: Terminal, count: Optional[int] = None
) -> RepositoryResponse:
    """
    Turn a row list into the response a terminal call promises.

    ``execute`` returns the list; ``single`` requires exactly one row;
    ``maybe_single`` accepts zero (data None) or one row. More than one row
    is an error for both single-row terminals.
    """
    if terminal is Terminal.EXECUTE:
        return ok(rows, count=count)

    if len(rows) > 1:
        return fail_with(
            QUERY_ERROR,
            "Multiple rows returned",
            details={"rows": len(rows)},
        )

    if not rows:
        if terminal is Terminal.MAYBE_SINGLE:
            return ok(None)
        return fail_with(NOT_FOUND, "No rows found", details={"rows": 0})

    return ok(rows[0])


@dataclass(frozen=True)
class ColumnSelection:
    """One entry of a select list: output key and source column."""

    key: str
    source: str


def split_top_level(text: str) -> List[str]:
    """Split on top-level commas, keeping parenthesized groups whole."""
    parts: List[str] = []
    depth = 0
    current = ""
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def parse_columns(columns: Optional[str]) -> Optional[List[ColumnSelection]]:
    """
    Parse a select list into plain column selections.

    Returns None when every column is requested. Embedded relations such
    as ``author:profiles(id, name)`` are a backend capability and are
    skipped here; ``alias:column`` and ``column::cast`` are understood.
    """
    parts = split_top_level(columns) if columns else []
    if not parts:
        return None

    selections: List[ColumnSelection] = []
    wildcard = False
    for part in parts:
        if part == "*":
            wildcard = True
            continue
        if "(" in part:
            continue
        head = part.split("::")[0]
        if ":" in head:
            alias, _, source = head.partition(":")
        else:
            alias, source = head, head
        selections.append(ColumnSelection(key=alias.strip(), source=source.strip()))

    if not selections:
        return None
    if wildcard:
        selections.insert(0, ColumnSelection(key="*", source="*"))
    return selections


def project_rows(rows: List[Row], columns: Optional[str]) -> List[Row]:
    """Keep only the selected columns of every row."""
    selections = parse_columns(columns)
    if selections is None:
        return [dict(row) for row in rows]

    projected = []
    for row in rows:
        out: Row = {}
        for selection in selections:
            if selection.source == "*":
                out.update(row)
            else:
                out[selection.key] = row.get(selection.source)
        projected.append(out)
    return projected
