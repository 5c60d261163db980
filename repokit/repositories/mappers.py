"""
Row/entity mappers for the concrete entity kinds.

``to_entity`` functions tolerate missing columns and fill entity
defaults. ``from_entity`` functions emit only writable columns: the
identifier and timestamps are written when set, embedded relations
(a profile's ``location``) are never written back.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ..domain.entities import EntityType, Event, Hub, Location, Organization, Profile
from .entity_repository import EntityMapper, FieldErrors, parse_datetime, require_name
from .query import Row

PROFILE_SELECT = "*, location:locations(*)"


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _base_record(entity: Any) -> Row:
    record: Row = {}
    if entity.id is not None:
        record["id"] = entity.id
    if entity.created_at is not None:
        record["created_at"] = format_datetime(entity.created_at)
    if entity.updated_at is not None:
        record["updated_at"] = format_datetime(entity.updated_at)
    return record


def _looks_like_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


# Profiles

def _location_from_record(record: Any) -> Optional[Location]:
    if not isinstance(record, dict):
        return None
    return Location(
        id=record.get("id"),
        full_name=record.get("full_name") or "",
        city=record.get("city") or "",
        region=record.get("region") or "",
        country=record.get("country") or "",
    )


def profile_to_entity(record: Row) -> Profile:
    first_name = record.get("first_name") or ""
    last_name = record.get("last_name") or ""
    return Profile(
        id=record.get("id"),
        name=f"{first_name} {last_name}".strip(),
        first_name=first_name,
        last_name=last_name,
        email=record.get("email") or "",
        bio=record.get("bio") or "",
        headline=record.get("headline") or "",
        avatar_url=record.get("avatar_url") or "",
        company=record.get("company") or "",
        website_url=record.get("website_url") or "",
        twitter_url=record.get("twitter_url") or "",
        linkedin_url=record.get("linkedin_url") or "",
        timezone=record.get("timezone") or "UTC",
        is_approved=bool(record.get("is_approved") or False),
        location_id=record.get("location_id"),
        location=_location_from_record(record.get("location")),
        created_at=parse_datetime(record.get("created_at")),
        updated_at=parse_datetime(record.get("updated_at")),
    )


def profile_from_entity(entity: Profile) -> Row:
    record = _base_record(entity)
    record.update(
        first_name=entity.first_name,
        last_name=entity.last_name,
        email=entity.email,
        bio=entity.bio,
        headline=entity.headline,
        avatar_url=entity.avatar_url,
        company=entity.company,
        website_url=entity.website_url,
        twitter_url=entity.twitter_url,
        linkedin_url=entity.linkedin_url,
        timezone=entity.timezone,
        is_approved=entity.is_approved,
        location_id=entity.location_id,
    )
    return record


def validate_profile(profile: Profile) -> FieldErrors:
    errors: Dict[str, str] = {}
    if not profile.first_name.strip():
        errors["first_name"] = "First name is required"
    if profile.email and "@" not in profile.email:
        errors["email"] = "Email must be a valid address"
    return errors


# Organizations

def organization_to_entity(record: Row) -> Organization:
    return Organization(
        id=record.get("id"),
        name=record.get("name") or "",
        description=record.get("description") or "",
        website_url=record.get("website_url") or "",
        logo_url=record.get("logo_url") or "",
        logo_api_url=record.get("logo_api_url") or "",
        is_verified=bool(record.get("is_verified") or False),
        location_id=record.get("location_id"),
        created_at=parse_datetime(record.get("created_at")),
        updated_at=parse_datetime(record.get("updated_at")),
    )


def organization_from_entity(entity: Organization) -> Row:
    record = _base_record(entity)
    record.update(
        name=entity.name,
        description=entity.description,
        website_url=entity.website_url,
        logo_url=entity.logo_url,
        logo_api_url=entity.logo_api_url,
        is_verified=entity.is_verified,
        location_id=entity.location_id,
    )
    return record


def validate_organization(organization: Organization) -> FieldErrors:
    errors = require_name(organization)
    if organization.website_url and not _looks_like_url(organization.website_url):
        errors["website_url"] = "Website URL must start with http:// or https://"
    return errors


# Events

def event_to_entity(record: Row) -> Event:
    title = record.get("title") or ""
    return Event(
        id=record.get("id"),
        name=title,
        title=title,
        description=record.get("description") or "",
        start_time=parse_datetime(record.get("start_time")),
        end_time=parse_datetime(record.get("end_time")),
        timezone=record.get("timezone") or "UTC",
        location_id=record.get("location_id"),
        address=record.get("address") or "",
        is_online=bool(record.get("is_online") or False),
        meeting_link=record.get("meeting_link") or "",
        creator_id=record.get("creator_id"),
        is_paid=bool(record.get("is_paid") or False),
        price=_parse_decimal(record.get("price")),
        currency=record.get("currency") or "USD",
        capacity=record.get("capacity"),
        created_at=parse_datetime(record.get("created_at")),
        updated_at=parse_datetime(record.get("updated_at")),
    )


def event_from_entity(entity: Event) -> Row:
    record = _base_record(entity)
    record.update(
        title=entity.title or entity.name,
        description=entity.description,
        start_time=format_datetime(entity.start_time),
        end_time=format_datetime(entity.end_time),
        timezone=entity.timezone,
        location_id=entity.location_id,
        address=entity.address,
        is_online=entity.is_online,
        meeting_link=entity.meeting_link,
        creator_id=entity.creator_id,
        is_paid=entity.is_paid,
        price=str(entity.price),
        currency=entity.currency,
        capacity=entity.capacity,
    )
    return record


def validate_event(event: Event) -> FieldErrors:
    errors: Dict[str, str] = {}
    if not (event.title or event.name).strip():
        errors["title"] = "Title is required"
    if event.start_time is None:
        errors["start_time"] = "Start time is required"
    elif event.end_time is not None and event.end_time < event.start_time:
        errors["end_time"] = "End time must be after start time"
    if event.capacity is not None and event.capacity < 0:
        errors["capacity"] = "Capacity cannot be negative"
    if event.is_paid and event.price <= 0:
        errors["price"] = "Paid events need a positive price"
    return errors


# Hubs

def hub_to_entity(record: Row) -> Hub:
    return Hub(
        id=record.get("id"),
        name=record.get("name") or "",
        description=record.get("description") or None,
        tag_id=record.get("tag_id") or None,
        is_featured=bool(record.get("is_featured") or False),
        created_at=parse_datetime(record.get("created_at")),
        updated_at=parse_datetime(record.get("updated_at")),
    )


def hub_from_entity(entity: Hub) -> Row:
    record = _base_record(entity)
    record.update(
        name=entity.name,
        description=entity.description,
        tag_id=entity.tag_id,
        is_featured=entity.is_featured,
    )
    return record


PROFILE_MAPPER = EntityMapper(
    entity_type=EntityType.PERSON,
    entity_class=Profile,
    table_name="profiles",
    to_entity=profile_to_entity,
    from_entity=profile_from_entity,
    validate=validate_profile,
    select=PROFILE_SELECT,
)

ORGANIZATION_MAPPER = EntityMapper(
    entity_type=EntityType.ORGANIZATION,
    entity_class=Organization,
    table_name="organizations",
    to_entity=organization_to_entity,
    from_entity=organization_from_entity,
    validate=validate_organization,
)

EVENT_MAPPER = EntityMapper(
    entity_type=EntityType.EVENT,
    entity_class=Event,
    table_name="events",
    to_entity=event_to_entity,
    from_entity=event_from_entity,
    validate=validate_event,
)

HUB_MAPPER = EntityMapper(
    entity_type=EntityType.HUB,
    entity_class=Hub,
    table_name="hubs",
    to_entity=hub_to_entity,
    from_entity=hub_from_entity,
)

MAPPERS = {
    EntityType.PERSON: PROFILE_MAPPER,
    EntityType.ORGANIZATION: ORGANIZATION_MAPPER,
    EntityType.EVENT: EVENT_MAPPER,
    EntityType.HUB: HUB_MAPPER,
}
