"""Domain layer: entities and exceptions."""

from .entities import Entity, EntityType, Event, Hub, Location, Organization, Profile
from .exceptions import (
    EntityValidationError,
    QueryExecutionError,
    RepositoryConfigurationError,
    RepositoryException,
)

__all__ = [
    "Entity",
    "EntityType",
    "Event",
    "Hub",
    "Location",
    "Organization",
    "Profile",
    "EntityValidationError",
    "QueryExecutionError",
    "RepositoryConfigurationError",
    "RepositoryException",
]
