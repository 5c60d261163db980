"""
In-process evaluation of query specs.

Implements the row-level semantics the in-memory repository needs to
mirror a PostgREST backend: column predicates with SQL NULL behavior,
``or`` expressions, stable multi-key ordering with PostgreSQL NULL
placement, and pagination.
"""

import locale
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .query import (
    Filter,
    FilterOperator,
    OrderBy,
    OrFilter,
    Predicate,
    Row,
    split_top_level,
)

RowPredicate = Callable[[Row], bool]

_NUMBER_TYPES = (int, float, Decimal)


class FilterExpressionError(ValueError):
    """Raised when an ``or`` expression cannot be evaluated."""


def _to_number(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return Decimal(value)
    except InvalidOperation:
        return value


def _coerce(field_value: Any, value: Any) -> Any:
    """Convert a filter value to the type of the stored field when possible."""
    if isinstance(value, str):
        if isinstance(field_value, bool):
            lowered = value.lower()
            if lowered in ("true", "false"):
                return lowered == "true"
            return value
        if isinstance(field_value, _NUMBER_TYPES):
            return _to_number(value)
        if isinstance(field_value, datetime):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return value
    if isinstance(value, datetime) and isinstance(field_value, str):
        return value.isoformat()
    if isinstance(value, _NUMBER_TYPES) and not isinstance(value, bool):
        if isinstance(field_value, str):
            return str(value)
    return value


def _is_nan(value: Any) -> bool:
    if isinstance(value, Decimal):
        return value.is_nan()
    return isinstance(value, float) and math.isnan(value)


def compare_values(left: Any, right: Any) -> int:
    """
    Three-way comparison of two non-null values.

    Numbers compare numerically, strings with the current locale's
    collation, other same-kind values natively, and anything else by
    string coercion.

    NaN sorts above every other number and equals itself, as in
    PostgreSQL.
    """
    if isinstance(left, _NUMBER_TYPES) and isinstance(right, _NUMBER_TYPES):
        left_nan, right_nan = _is_nan(left), _is_nan(right)
        if left_nan or right_nan:
            return int(left_nan) - int(right_nan)
        if isinstance(left, float) or isinstance(right, float):
            left, right = float(left), float(right)
        return (left > right) - (left < right)

    if isinstance(left, str) and isinstance(right, str):
        return locale.strcoll(left, right)

    if isinstance(left, (datetime, date)) and type(left) is type(right):
        return (left > right) - (left < right)

    return locale.strcoll(str(left), str(right))


def _equals(field_value: Any, value: Any) -> bool:
    value = _coerce(field_value, value)
    if isinstance(field_value, _NUMBER_TYPES) and isinstance(value, _NUMBER_TYPES):
        return compare_values(field_value, value) == 0
    return field_value == value


def _pattern_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a LIKE pattern (``%`` and ``_`` wildcards) to a regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _comparison(check: Callable[[int], bool]) -> Callable[[Any, Any], bool]:
    def predicate(field_value: Any, value: Any) -> bool:
        return check(compare_values(field_value, _coerce(field_value, value)))

    return predicate


def _like(field_value: Any, value: Any) -> bool:
    return _pattern_to_regex(str(value)).search(str(field_value)) is not None


def _in(field_value: Any, values: Iterable[Any]) -> bool:
    return any(_equals(field_value, value) for value in values)


# NULL fields never satisfy these operators; IS is handled separately.
_VALUE_OPERATORS: Dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQ: _equals,
    FilterOperator.NEQ: lambda field_value, value: not _equals(field_value, value),
    FilterOperator.GT: _comparison(lambda result: result > 0),
    FilterOperator.GTE: _comparison(lambda result: result >= 0),
    FilterOperator.LT: _comparison(lambda result: result < 0),
    FilterOperator.LTE: _comparison(lambda result: result <= 0),
    FilterOperator.LIKE: _like,
    FilterOperator.ILIKE: _like,
    FilterOperator.IN: _in,
}


def _column_predicate(condition: Filter) -> RowPredicate:
    if condition.operator is FilterOperator.IS:
        expected = condition.value

        def is_predicate(row: Row) -> bool:
            field_value = row.get(condition.field)
            if expected is None:
                return field_value is None
            return isinstance(field_value, bool) and field_value is expected

        return is_predicate

    operator = _VALUE_OPERATORS[condition.operator]

    def value_predicate(row: Row) -> bool:
        field_value = row.get(condition.field)
        if field_value is None or condition.value is None:
            return False
        return operator(field_value, condition.value)

    return value_predicate


def _parse_scalar(raw: str) -> Any:
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        return raw[1:-1]
    return raw


def _parse_term(term: str) -> Filter:
    """Parse one ``column.operator.value`` term of an ``or`` expression."""
    pieces = term.split(".", 2)
    if len(pieces) != 3:
        raise FilterExpressionError(f"Malformed filter term: {term}")

    column, operator_name, raw = pieces
    if "(" in column:
        raise FilterExpressionError(f"Nested groups are not supported: {term}")
    try:
        operator = FilterOperator(operator_name)
    except ValueError:
        raise FilterExpressionError(
            f"Unsupported operator '{operator_name}' in term: {term}"
        ) from None

    if operator is FilterOperator.IN:
        if not (raw.startswith("(") and raw.endswith(")")):
            raise FilterExpressionError(f"IN term needs a parenthesized list: {term}")
        values = tuple(_parse_scalar(item) for item in split_top_level(raw[1:-1]))
        return Filter(column, operator, values)

    if operator is FilterOperator.IS:
        lowered = raw.lower()
        if lowered not in ("null", "true", "false"):
            raise FilterExpressionError(f"IS term needs null/true/false: {term}")
        value = None if lowered == "null" else lowered == "true"
        return Filter(column, operator, value)

    value = _parse_scalar(raw)
    if operator in (FilterOperator.LIKE, FilterOperator.ILIKE):
        value = value.replace("*", "%")
    return Filter(column, operator, value)


def parse_or_expression(expression: str) -> List[Filter]:
    """
    Parse a PostgREST ``or`` expression into its alternative filters.

    Raises:
        FilterExpressionError: If a term is malformed or uses an
            unsupported construct such as nested ``and(...)``
    """
    terms = split_top_level(expression)
    if not terms:
        raise FilterExpressionError("Empty or expression")
    return [_parse_term(term) for term in terms]


def compile_predicate(predicate: Predicate) -> RowPredicate:
    """Compile a filter or ``or`` expression into a row predicate."""
    if isinstance(predicate, OrFilter):
        alternatives = [
            _column_predicate(term) for term in parse_or_expression(predicate.expression)
        ]
        return lambda row: any(check(row) for check in alternatives)
    return _column_predicate(predicate)


def filter_rows(rows: Iterable[Row], predicates: Sequence[Predicate]) -> List[Row]:
    """Keep rows satisfying every predicate, preserving their order."""
    checks = [compile_predicate(predicate) for predicate in predicates]
    return [row for row in rows if all(check(row) for check in checks)]


def _row_comparator(order: Sequence[OrderBy]) -> Callable[[Row, Row], int]:
    def compare(left: Row, right: Row) -> int:
        for key in order:
            a = left.get(key.field)
            b = right.get(key.field)
            if a is None and b is None:
                continue
            if a is None:
                return 1 if key.ascending else -1
            if b is None:
                return -1 if key.ascending else 1
            result = compare_values(a, b)
            if result:
                return result if key.ascending else -result
        return 0

    return compare


def sort_rows(rows: List[Row], order: Sequence[OrderBy]) -> List[Row]:
    """Stable sort; ties keep insertion order."""
    if not order:
        return list(rows)
    return sorted(rows, key=cmp_to_key(_row_comparator(order)))


def paginate_rows(rows: List[Row], offset: Optional[int], limit: Optional[int]) -> List[Row]:
    """Slice by offset, then by limit."""
    start = offset or 0
    if limit is None:
        return rows[start:]
    return rows[start:start + limit]
