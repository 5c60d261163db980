"""
Read-only repository over a database view.
"""

from typing import Any, Sequence, Union

import structlog

from .base_repository import BaseRepository
from .query import DataRepository, FailedQuery, RepositoryQuery, Row
from .response import READ_ONLY, fail_with

logger = structlog.get_logger(__name__)


class ViewRepository(BaseRepository):
    """
    Repository for database views.

    Reads behave like any BaseRepository. Write chains never reach the
    backend: they are FailedQuery instances whose terminal calls return a
    ``read_only`` error.
    """

    def __init__(self, source: DataRepository, **options: Any):
        super().__init__(source, **options)

    def _reject(self, operation: str) -> RepositoryQuery:
        logger.warning("Write attempted on view", view=self.table_name, operation=operation)
        return FailedQuery(
            self.table_name,
            fail_with(
                READ_ONLY,
                f"{operation.capitalize()} operation not supported on view '{self.table_name}'",
                details={"view": self.table_name, "operation": operation},
            ),
        )

    def insert(self, data: Union[Row, Sequence[Row]]) -> RepositoryQuery:
        return self._reject("insert")

    def update(self, data: Row) -> RepositoryQuery:
        return self._reject("update")

    def upsert(
        self, data: Union[Row, Sequence[Row]], on_conflict: str = "id"
    ) -> RepositoryQuery:
        return self._reject("upsert")

    def delete(self) -> RepositoryQuery:
        return self._reject("delete")
