"""
Domain entities served by the repository layer.

Entities are immutable snapshots of backend rows. Related data is either
embedded by value (a profile's location) or looked up on demand (tags);
entities never hold references back to other entities.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple


class EntityType(str, Enum):
    """Discriminator for entity kinds."""

    PERSON = "person"
    ORGANIZATION = "organization"
    EVENT = "event"
    HUB = "hub"


@dataclass(frozen=True)
class Entity:
    """
    Base entity with identity and discriminator.

    Subclasses override the entity_type default and add their own
    attributes; every attribute has a default so partial entities can be
    built for validation.
    """

    id: Optional[str] = None
    name: str = ""
    entity_type: EntityType = EntityType.PERSON
    tags: Tuple[Any, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Location:
    """Location snapshot embedded in other entities."""

    id: Optional[str] = None
    full_name: str = ""
    city: str = ""
    region: str = ""
    country: str = ""


@dataclass(frozen=True)
class Profile(Entity):
    """A person's profile."""

    entity_type: EntityType = EntityType.PERSON
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    bio: str = ""
    headline: str = ""
    avatar_url: str = ""
    company: str = ""
    website_url: str = ""
    twitter_url: str = ""
    linkedin_url: str = ""
    timezone: str = "UTC"
    is_approved: bool = False
    location_id: Optional[str] = None
    location: Optional[Location] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Organization(Entity):
    """An organization."""

    entity_type: EntityType = EntityType.ORGANIZATION
    description: str = ""
    website_url: str = ""
    logo_url: str = ""
    logo_api_url: str = ""
    is_verified: bool = False
    location_id: Optional[str] = None


@dataclass(frozen=True)
class Event(Entity):
    """A scheduled event. The entity name mirrors the title."""

    entity_type: EntityType = EntityType.EVENT
    title: str = ""
    description: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: str = "UTC"
    location_id: Optional[str] = None
    address: str = ""
    is_online: bool = False
    meeting_link: str = ""
    creator_id: Optional[str] = None
    is_paid: bool = False
    price: Decimal = Decimal("0")
    currency: str = "USD"
    capacity: Optional[int] = None


@dataclass(frozen=True)
class Hub(Entity):
    """A hub grouping content around a tag."""

    entity_type: EntityType = EntityType.HUB
    description: Optional[str] = None
    tag_id: Optional[str] = None
    is_featured: bool = False
