"""
Entity-specific reads.

Each helper takes the EntityRepository for the matching entity kind and
returns typed entities; failures come back as ``query_error`` responses.
"""

from datetime import datetime, timezone
from typing import List, Optional

from ..domain.entities import Event, Hub, Organization, Profile
from .entity_repository import EntityRepository
from .response import RepositoryResponse


async def find_profile_by_email(
    profiles: EntityRepository[Profile], email: str
) -> RepositoryResponse[Optional[Profile]]:
    return await profiles.query_entities(
        "find_profile_by_email",
        lambda q: q.eq("email", email),
        one=True,
        email=email,
    )


async def find_organizations_by_name(
    organizations: EntityRepository[Organization], name: str
) -> RepositoryResponse[List[Organization]]:
    """Organizations whose name contains ``name``, case-insensitively."""
    return await organizations.query_entities(
        "find_organizations_by_name",
        lambda q: q.ilike("name", f"%{name}%"),
        name=name,
    )


async def get_events_by_creator(
    events: EntityRepository[Event], creator_id: str
) -> RepositoryResponse[List[Event]]:
    return await events.query_entities(
        "get_events_by_creator",
        lambda q: q.eq("creator_id", creator_id),
        creator_id=creator_id,
    )


async def get_upcoming_events(
    events: EntityRepository[Event],
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RepositoryResponse[List[Event]]:
    """
    Events starting at or after ``now``, soonest first.

    Args:
        events: Event repository
        limit: Maximum number of events
        now: Reference time (default: current UTC time)
    """
    since = (now or datetime.now(timezone.utc)).isoformat()

    def build(query):
        query = query.gte("start_time", since).order("start_time")
        return query.limit(limit) if limit is not None else query

    return await events.query_entities("get_upcoming_events", build)


async def get_featured_hubs(hubs: EntityRepository[Hub]) -> RepositoryResponse[List[Hub]]:
    return await hubs.query_entities(
        "get_featured_hubs",
        lambda q: q.eq("is_featured", True).order("name"),
    )


async def get_hub_by_tag_id(
    hubs: EntityRepository[Hub], tag_id: str
) -> RepositoryResponse[Optional[Hub]]:
    return await hubs.query_entities(
        "get_hub_by_tag_id",
        lambda q: q.eq("tag_id", tag_id),
        one=True,
        tag_id=tag_id,
    )
