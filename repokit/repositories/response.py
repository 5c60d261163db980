"""
Uniform response objects and error normalization.

Every backend outcome and every exception caught inside the repository
layer is turned into a RepositoryResponse here. ``fail`` is the only place
where heterogeneous error shapes are inspected; an ErrorInfo passed back
in is returned unchanged so errors are never wrapped twice.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

import structlog
from postgrest.exceptions import APIError

from ..domain.exceptions import RepositoryException

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UNKNOWN_ERROR = "unknown_error"
REPOSITORY_ERROR = "repository_error"
QUERY_ERROR = "query_error"
VALIDATION_ERROR = "validation_error"
NOT_FOUND = "not_found"
CREATE_ERROR = "create_error"
UPDATE_ERROR = "update_error"
DELETE_ERROR = "delete_error"
READ_ONLY = "read_only"


@dataclass(frozen=True)
class ErrorInfo:
    """Canonical error shape surfaced to callers."""

    code: str
    message: str
    details: Optional[Any] = None
    original: Optional[Any] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class RepositoryResponse(Generic[T]):
    """
    Result of a terminal repository call.

    Exactly one of ``data``/``error`` is meaningful: an empty list is
    successful data, and ``data=None`` with no error is the successful
    "no row" outcome of ``maybe_single``.

    Attributes:
        data: Rows, a single row, an entity, or None
        error: Normalized error, None on success
        count: Exact row count when the query asked for one
    """

    data: Optional[T] = None
    error: Optional[ErrorInfo] = None
    count: Optional[int] = None

    def is_success(self) -> bool:
        return self.error is None

    def is_error(self) -> bool:
        return self.error is not None

    def get_error_message(self) -> str:
        return self.error.message if self.error else ""


def ok(data: T, count: Optional[int] = None) -> RepositoryResponse[T]:
    """Build a successful response."""
    return RepositoryResponse(data=data, error=None, count=count)


def fail(error: Any, default_code: str = REPOSITORY_ERROR) -> RepositoryResponse[Any]:
    """
    Build an error response from any error shape.

    Args:
        error: ErrorInfo, exception, string, mapping or arbitrary object
        default_code: Code used when the input carries none

    Returns:
        Response with ``data=None`` and a normalized ErrorInfo
    """
    return RepositoryResponse(data=None, error=normalize_error(error, default_code))


def fail_with(
    code: str,
    message: str,
    details: Optional[Any] = None,
    original: Optional[Any] = None,
) -> RepositoryResponse[Any]:
    """Build an error response from explicit fields."""
    return fail(ErrorInfo(code=code, message=message, details=details, original=original))


def normalize_error(error: Any, default_code: str = REPOSITORY_ERROR) -> ErrorInfo:
    """
    Coerce an error of any shape into an ErrorInfo.

    Recognized variants, in order: ErrorInfo, repository exceptions,
    PostgREST API errors, other exceptions, strings, mappings (flat or
    nested under ``error``), objects exposing ``message``. Anything else
    becomes ``unknown_error``.
    """
    if isinstance(error, ErrorInfo):
        return error

    if isinstance(error, RepositoryException):
        return ErrorInfo(
            code=error.code,
            message=error.message,
            details=error.details or None,
            original=error,
        )

    if isinstance(error, APIError):
        details = error.details
        if error.hint:
            details = {"details": error.details, "hint": error.hint}
        return ErrorInfo(
            code=error.code or default_code,
            message=error.message or str(error),
            details=details,
            original=error,
        )

    if isinstance(error, BaseException):
        return ErrorInfo(
            code=default_code,
            message=str(error) or type(error).__name__,
            original=error,
        )

    if isinstance(error, str):
        return ErrorInfo(code=default_code, message=error or "Unknown error")

    if isinstance(error, Mapping):
        nested = error.get("error")
        if nested is not None and not isinstance(nested, str):
            return normalize_error(nested, default_code)
        if "message" in error or "code" in error or isinstance(nested, str):
            return ErrorInfo(
                code=str(error.get("code") or default_code),
                message=str(error.get("message") or nested or "Unknown error"),
                details=error.get("details"),
                original=error,
            )

    message = getattr(error, "message", None)
    if isinstance(message, str):
        return ErrorInfo(
            code=str(getattr(error, "code", None) or default_code),
            message=message,
            details=getattr(error, "details", None),
            original=error,
        )

    logger.debug("Unrecognized error shape", error_type=type(error).__name__)
    return ErrorInfo(
        code=UNKNOWN_ERROR,
        message=str(error) if error is not None else "Unknown error",
        original=error,
    )
