"""
Repository layer.

Query chains run against Supabase or an in-memory table and always
resolve to a RepositoryResponse.
"""

from .base_repository import BaseRepository, RepositoryOptions
from .cached_repository import CachedRepository, CacheStrategy
from .entity_queries import (
    find_organizations_by_name,
    find_profile_by_email,
    get_events_by_creator,
    get_featured_hubs,
    get_hub_by_tag_id,
    get_upcoming_events,
)
from .entity_repository import EntityMapper, EntityRepository
from .factory import (
    create_cached_repository,
    create_data_repository,
    create_entity_repository,
    create_repository,
    create_standard_operations,
    create_testing_repository,
    create_view_repository,
)
from .memory_repository import InMemoryDataStore, InMemoryRepository
from .query import DataRepository, RepositoryQuery
from .response import ErrorInfo, RepositoryResponse, fail, fail_with, ok
from .standard_operations import StandardOperations
from .supabase_repository import SupabaseRepository
from .view_repository import ViewRepository

__all__ = [
    "BaseRepository",
    "RepositoryOptions",
    "CachedRepository",
    "CacheStrategy",
    "find_organizations_by_name",
    "find_profile_by_email",
    "get_events_by_creator",
    "get_featured_hubs",
    "get_hub_by_tag_id",
    "get_upcoming_events",
    "EntityMapper",
    "EntityRepository",
    "create_cached_repository",
    "create_data_repository",
    "create_entity_repository",
    "create_repository",
    "create_standard_operations",
    "create_testing_repository",
    "create_view_repository",
    "InMemoryDataStore",
    "InMemoryRepository",
    "DataRepository",
    "RepositoryQuery",
    "ErrorInfo",
    "RepositoryResponse",
    "fail",
    "fail_with",
    "ok",
    "StandardOperations",
    "SupabaseRepository",
    "ViewRepository",
]
