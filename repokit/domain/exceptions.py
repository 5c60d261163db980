"""
Custom exceptions for the repository layer.

These exceptions are raised and caught inside the layer; callers only
ever see normalized error responses. The single exception allowed to
escape is RepositoryConfigurationError, raised while wiring repositories.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..repositories.response import ErrorInfo


class RepositoryException(Exception):
    """Base exception for all repository layer errors."""

    code = "repository_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class QueryExecutionError(RepositoryException):
    """Raised when a query builder returned an error response."""

    def __init__(self, error: "ErrorInfo"):
        self.error = error
        self.code = error.code
        super().__init__(message=error.message, details=error.details)


class EntityValidationError(RepositoryException):
    """Raised when an entity fails local validation."""

    code = "validation_error"

    def __init__(self, entity_type: str, errors: Dict[str, str]):
        message = f"{entity_type} validation failed"
        super().__init__(message=message, details=errors)


class RepositoryConfigurationError(RepositoryException):
    """Raised when a repository cannot be constructed from settings."""

    code = "configuration_error"

    def __init__(self, reason: str):
        super().__init__(message=f"Repository misconfigured: {reason}")
