"""
Base repository with convenience reads and instrumentation.

Wraps any DataRepository (Supabase adapter or in-memory double) and adds
``get_by_id``/``get_all``, configurable options, timing of every
operation and uniform error logging. Query chains are forwarded to the
wrapped repository unchanged.
"""

import time
from dataclasses import dataclass, fields, replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

import structlog

from ..config import settings
from ..domain.exceptions import RepositoryConfigurationError
from ..metrics import track_operation, track_operation_error
from .query import DataRepository, RepositoryQuery, Row
from .response import REPOSITORY_ERROR, RepositoryResponse, fail

logger = structlog.get_logger(__name__)

R = TypeVar("R", bound=RepositoryResponse)


@dataclass(frozen=True)
class RepositoryOptions:
    """
    Repository behavior switches.

    Attributes:
        id_field: Column used by id lookups
        default_select: Column list used when a read names none
        soft_delete: Model deletes as a timestamp update
        deleted_at_column: Column set by soft deletes
        enable_logging: Log every operation outcome at debug level
    """

    id_field: str = "id"
    default_select: str = "*"
    soft_delete: bool = False
    deleted_at_column: str = "deleted_at"
    enable_logging: bool = False


class BaseRepository(DataRepository):
    """
    Repository wrapper shared by view, cached and entity repositories.

    Every public read goes through ``monitor_performance`` so no exception
    escapes; failures come back as error responses.
    """

    def __init__(self, source: DataRepository, **options: Any):
        """
        Initialize repository.

        Args:
            source: Repository executing the query chains
            **options: RepositoryOptions overrides
        """
        self.source = source
        self.table_name = source.table_name
        self.options = RepositoryOptions(enable_logging=settings.REPOSITORY_LOGGING)
        if options:
            self.set_options(**options)

        if self.options.enable_logging:
            logger.debug(
                "Created repository",
                repository=type(self).__name__,
                table=self.table_name,
            )

    def set_options(self, **options: Any) -> None:
        """
        Merge options into the current configuration.

        Raises:
            RepositoryConfigurationError: If an option name is unknown
        """
        known = {f.name for f in fields(RepositoryOptions)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise RepositoryConfigurationError(f"unknown repository options: {', '.join(unknown)}")

        self.options = replace(self.options, **options)
        if self.options.enable_logging:
            logger.debug(
                "Set repository options",
                repository=type(self).__name__,
                table=self.table_name,
                options=options,
            )

    # Query chains

    def select(self, columns: Optional[str] = None, count: Optional[str] = None) -> RepositoryQuery:
        return self.source.select(columns or self.options.default_select, count=count)

    def insert(self, data: Union[Row, Sequence[Row]]) -> RepositoryQuery:
        return self.source.insert(data)

    def update(self, data: Row) -> RepositoryQuery:
        return self.source.update(data)

    def upsert(
        self, data: Union[Row, Sequence[Row]], on_conflict: str = "id"
    ) -> RepositoryQuery:
        return self.source.upsert(data, on_conflict=on_conflict)

    def delete(self) -> RepositoryQuery:
        return self.source.delete()

    # Convenience reads

    async def get_by_id(self, id: Any) -> RepositoryResponse[Optional[Row]]:
        """
        Get a record by ID.

        Args:
            id: Value of the id field

        Returns:
            Response with the row, or ``data=None`` when no row matches
        """
        return await self.monitor_performance(
            "get_by_id",
            lambda: self.select().eq(self.options.id_field, id).maybe_single(),
            id=id,
        )

    async def get_all(self) -> RepositoryResponse[List[Row]]:
        """Get every record of the table."""
        return await self.monitor_performance("get_all", lambda: self.select().execute())

    # Instrumentation

    async def monitor_performance(
        self,
        operation: str,
        call: Callable[[], Awaitable[R]],
        **context: Any,
    ) -> R:
        """
        Time an operation and log its failure.

        Args:
            operation: Operation name used in logs and metrics
            call: Zero-argument coroutine factory issuing the operation
            **context: Extra log fields (ids, filters)

        Returns:
            The operation's response; an exception becomes an error response
        """
        repository = type(self).__name__
        start = time.perf_counter()
        try:
            response = await call()
        except Exception as e:
            duration = time.perf_counter() - start
            track_operation(repository, self.table_name, operation, duration)
            track_operation_error(repository, self.table_name, operation)
            self.handle_error(operation, e, duration_ms=round(duration * 1000, 2), **context)
            return fail(e, default_code=REPOSITORY_ERROR)

        duration = time.perf_counter() - start
        duration_ms = round(duration * 1000, 2)
        track_operation(repository, self.table_name, operation, duration)

        if response.is_error():
            track_operation_error(repository, self.table_name, operation)
            self.handle_error(operation, response.error, duration_ms=duration_ms, **context)
        elif duration_ms > settings.SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "Slow repository operation",
                repository=repository,
                table=self.table_name,
                operation=operation,
                duration_ms=duration_ms,
            )
        elif self.options.enable_logging:
            logger.debug(
                "Repository operation completed",
                repository=repository,
                table=self.table_name,
                operation=operation,
                duration_ms=duration_ms,
            )
        return response

    def handle_error(self, operation: str, error: Any, **context: Any) -> None:
        """Log a failed operation tagged with repository class and table."""
        message = getattr(error, "message", None) or str(error)
        logger.error(
            "Repository operation failed",
            repository=type(self).__name__,
            table=self.table_name,
            operation=operation,
            error=message,
            error_code=getattr(error, "code", None),
            **context,
        )
