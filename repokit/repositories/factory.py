"""
Repository construction.

Chooses the Supabase adapter or the in-memory double from the
REPOSITORY_BACKEND setting, unless a client or store is passed in.
"""

from typing import Any, Iterable, Optional, Union

import structlog

from ..config import settings
from ..domain.entities import EntityType
from ..infrastructure.supabase_client import get_supabase_client
from .base_repository import BaseRepository
from .cached_repository import CacheStrategy, CachedRepository
from .entity_repository import EntityRepository, TagLookup
from .mappers import MAPPERS
from .memory_repository import InMemoryDataStore, InMemoryRepository, get_memory_store
from .query import DataRepository, Row
from .standard_operations import StandardOperations
from .supabase_repository import SupabaseRepository
from .view_repository import ViewRepository

logger = structlog.get_logger(__name__)

TESTING_SCHEMA = "testing"


def create_data_repository(
    table_name: str,
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    schema: Optional[str] = None,
    initial_data: Optional[Iterable[Row]] = None,
) -> DataRepository:
    """
    Create the query-executing repository for a table.

    Args:
        table_name: Table or view name
        client: Supabase client; forces the Supabase adapter
        store: In-memory store; forces the in-memory double
        schema: Postgres schema (default: SUPABASE_SCHEMA)
        initial_data: Rows seeded into the in-memory table

    Returns:
        SupabaseRepository or InMemoryRepository

    Raises:
        RepositoryConfigurationError: If Supabase is selected but not configured
    """
    use_memory = store is not None or (client is None and settings.use_memory_backend)
    if use_memory:
        logger.debug("Creating in-memory repository", table=table_name)
        return InMemoryRepository(
            table_name,
            initial_data=initial_data,
            store=store if store is not None else get_memory_store(),
        )

    logger.debug("Creating Supabase repository", table=table_name, schema=schema)
    return SupabaseRepository(
        client if client is not None else get_supabase_client(),
        table_name,
        schema=schema or settings.SUPABASE_SCHEMA,
        enable_logging=settings.REPOSITORY_LOGGING,
    )


def create_repository(
    table_name: str,
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    schema: Optional[str] = None,
    initial_data: Optional[Iterable[Row]] = None,
    **options: Any,
) -> BaseRepository:
    """Create a BaseRepository for a table."""
    source = create_data_repository(table_name, client, store, schema, initial_data)
    return BaseRepository(source, **options)


def create_testing_repository(
    table_name: str,
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    initial_data: Optional[Iterable[Row]] = None,
    **options: Any,
) -> BaseRepository:
    """Create a BaseRepository bound to the ``testing`` schema."""
    return create_repository(
        table_name,
        client=client,
        store=store,
        schema=TESTING_SCHEMA,
        initial_data=initial_data,
        **options,
    )


def create_view_repository(
    view_name: str,
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    schema: Optional[str] = None,
    **options: Any,
) -> ViewRepository:
    source = create_data_repository(view_name, client, store, schema)
    return ViewRepository(source, **options)


def create_cached_repository(
    table_name: str,
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    strategy: Union[CacheStrategy, str] = CacheStrategy.CACHE_FIRST,
    ttl: Optional[int] = None,
    **options: Any,
) -> CachedRepository:
    source = create_data_repository(table_name, client, store)
    return CachedRepository(source, strategy=strategy, ttl=ttl, **options)


def create_entity_repository(
    entity_type: Union[EntityType, str],
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    table_name: Optional[str] = None,
    tag_lookup: Optional[TagLookup] = None,
    **options: Any,
) -> EntityRepository:
    """
    Create the EntityRepository for an entity kind.

    Args:
        entity_type: Entity kind (person, organization, event, hub)
        client: Supabase client; forces the Supabase adapter
        store: In-memory store; forces the in-memory double
        table_name: Override of the mapper's default table
        tag_lookup: Async collaborator used by ``get_with_tags``
        **options: RepositoryOptions overrides
    """
    mapper = MAPPERS[EntityType(entity_type)]
    source = create_data_repository(table_name or mapper.table_name, client, store)
    return EntityRepository(source, mapper, tag_lookup=tag_lookup, **options)


def create_standard_operations(
    table_name: str,
    entity_name: str = "Entity",
    client: Any = None,
    store: Optional[InMemoryDataStore] = None,
    **kwargs: Any,
) -> StandardOperations:
    """Create StandardOperations over a BaseRepository for a table."""
    return StandardOperations(create_repository(table_name, client, store), entity_name, **kwargs)
