"""
Tests for EntityRepository and the entity-specific reads.
"""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from repokit.domain.entities import EntityType, Event, Hub, Organization, Profile
from repokit.repositories.entity_queries import (
    find_organizations_by_name,
    find_profile_by_email,
    get_events_by_creator,
    get_featured_hubs,
    get_hub_by_tag_id,
    get_upcoming_events,
)
from repokit.repositories.entity_repository import EntityRepository
from repokit.repositories.mappers import EVENT_MAPPER, HUB_MAPPER, ORGANIZATION_MAPPER, PROFILE_MAPPER
from repokit.repositories.memory_repository import InMemoryRepository
from repokit.repositories.response import fail, ok


@pytest.fixture
def organization_rows():
    return [
        {"id": "org-1", "name": "Acme Robotics", "website_url": "https://acme.test", "is_verified": True},
        {"id": "org-2", "name": "Globex", "description": "Energy"},
        {"id": "org-3", "name": "acme labs", "deleted_at": "2024-05-01T00:00:00+00:00"},
    ]


@pytest.fixture
def org_source(organization_rows):
    return InMemoryRepository("organizations", initial_data=organization_rows)


@pytest.fixture
def organizations(org_source):
    return EntityRepository(org_source, ORGANIZATION_MAPPER)


@pytest.mark.asyncio
class TestCreateEntity:
    """Test validated inserts."""

    async def test_create_from_mapping(self, organizations, org_source):
        response = await organizations.create_entity({"name": "Initech", "website_url": "https://initech.test"})

        assert response.is_success()
        assert isinstance(response.data, Organization)
        assert response.data.id
        assert response.data.entity_type is EntityType.ORGANIZATION
        assert org_source.find_by_id(response.data.id)["name"] == "Initech"

    async def test_create_from_entity_forces_type(self, organizations):
        response = await organizations.create_entity(Organization(name="Hooli", entity_type=EntityType.HUB))

        assert response.data.entity_type is EntityType.ORGANIZATION

    async def test_validation_short_circuits(self, organizations, org_source):
        """Invalid entities never reach the backend."""
        response = await organizations.create_entity({"description": "no name"})

        assert response.error.code == "validation_error"
        assert response.error.details == {"name": "Name is required"}
        assert org_source.write_calls == []

    async def test_unknown_fields_are_validation_errors(self, organizations, org_source):
        response = await organizations.create_entity({"name": "X", "colour": "red"})

        assert response.error.code == "validation_error"
        assert response.error.details == {"colour": "Unknown field"}
        assert org_source.write_calls == []

    async def test_backend_error_is_returned(self, organizations, org_source):
        org_source.mock_error("insert", {"code": "23505", "message": "duplicate key"})

        response = await organizations.create_entity({"name": "Dup"})

        assert response.error.code == "23505"

    async def test_mapper_failure_is_create_error(self, org_source):
        def broken(entity):
            raise KeyError("column")

        mapper = replace(ORGANIZATION_MAPPER, from_entity=broken)
        repo = EntityRepository(org_source, mapper)

        response = await repo.create_entity({"name": "X"})

        assert response.error.code == "create_error"
        assert response.error.message == "Failed to create organization"


@pytest.mark.asyncio
class TestUpdateEntity:
    """Test read-merge-validate-write updates."""

    async def test_update_merges(self, organizations, org_source):
        response = await organizations.update_entity("org-2", {"description": "Power"})

        assert response.data.name == "Globex"
        assert response.data.description == "Power"
        assert org_source.find_by_id("org-2")["description"] == "Power"

    async def test_update_missing_is_not_found(self, organizations, org_source):
        response = await organizations.update_entity("org-9", {"name": "X"})

        assert response.error.code == "not_found"
        assert org_source.write_calls == []

    async def test_merged_entity_is_validated(self, organizations, org_source):
        response = await organizations.update_entity("org-1", {"name": ""})

        assert response.error.code == "validation_error"
        assert org_source.write_calls == []

    async def test_lookup_error_is_returned(self, organizations, org_source):
        org_source.mock_error("select", "down")

        response = await organizations.update_entity("org-1", {"name": "X"})

        assert response.error.message == "down"


@pytest.mark.asyncio
class TestReads:
    """Test entity reads."""

    async def test_get_entity(self, organizations):
        response = await organizations.get_entity("org-1")

        assert response.data == Organization(
            id="org-1",
            name="Acme Robotics",
            website_url="https://acme.test",
            is_verified=True,
        )

    async def test_get_entity_missing(self, organizations):
        response = await organizations.get_entity("nope")

        assert response.is_success()
        assert response.data is None

    async def test_list_entities(self, organizations):
        response = await organizations.list_entities()

        assert [org.id for org in response.data] == ["org-1", "org-2", "org-3"]

    async def test_search(self, organizations):
        response = await organizations.search("name", "ACME")

        assert [org.id for org in response.data] == ["org-1", "org-3"]

    async def test_find_by_and_find_one_by(self, organizations):
        many = await organizations.find_by("is_verified", True)
        one = await organizations.find_one_by("name", "Globex")

        assert [org.id for org in many.data] == ["org-1"]
        assert one.data.id == "org-2"

    async def test_find_organizations_by_name(self, organizations):
        response = await find_organizations_by_name(organizations, "acme")

        assert len(response.data) == 2

    async def test_query_error_is_returned(self, organizations, org_source):
        org_source.mock_error("select", "down")

        response = await organizations.list_entities()

        assert response.error.message == "down"


@pytest.mark.asyncio
class TestSoftDelete:
    """Test soft and hard deletes."""

    async def test_soft_delete_stamps_and_hides(self, org_source):
        repo = EntityRepository(org_source, ORGANIZATION_MAPPER, soft_delete=True)

        deleted = await repo.delete_entity("org-1")
        listed = await repo.list_entities()
        fetched = await repo.get_entity("org-1")

        assert deleted.data is True
        assert org_source.find_by_id("org-1")["deleted_at"]
        assert [org.id for org in listed.data] == ["org-2"]
        assert fetched.data is None

    async def test_soft_delete_twice_is_not_found(self, org_source):
        repo = EntityRepository(org_source, ORGANIZATION_MAPPER, soft_delete=True)

        response = await repo.delete_entity("org-3")

        assert response.error.code == "not_found"

    async def test_hard_delete(self, organizations, org_source):
        response = await organizations.delete_entity("org-2")

        assert response.data is True
        assert org_source.find_by_id("org-2") is None

    async def test_hard_delete_missing(self, organizations):
        response = await organizations.delete_entity("nope")

        assert response.error.code == "not_found"


@pytest.mark.asyncio
class TestGetWithTags:
    """Test tag enrichment."""

    async def test_tags_are_merged(self, org_source):
        async def tags(entity_type, id):
            assert entity_type is EntityType.ORGANIZATION
            return ok([{"id": "t1", "name": "robots"}])

        repo = EntityRepository(org_source, ORGANIZATION_MAPPER, tag_lookup=tags)

        response = await repo.get_with_tags("org-1")

        assert response.data.tags == ({"id": "t1", "name": "robots"},)

    async def test_tag_failure_yields_empty_tags(self, org_source):
        async def tags(entity_type, id):
            return fail("tag service down")

        repo = EntityRepository(org_source, ORGANIZATION_MAPPER, tag_lookup=tags)

        response = await repo.get_with_tags("org-1")

        assert response.is_success()
        assert response.data.tags == ()

    async def test_tag_exception_yields_empty_tags(self, org_source):
        async def tags(entity_type, id):
            raise ConnectionError("unreachable")

        repo = EntityRepository(org_source, ORGANIZATION_MAPPER, tag_lookup=tags)

        response = await repo.get_with_tags("org-1")

        assert response.data.name == "Acme Robotics"
        assert response.data.tags == ()

    async def test_base_failure_is_returned_untouched(self, org_source):
        calls = []

        async def tags(entity_type, id):
            calls.append(id)
            return ok([])

        org_source.mock_error("select", {"code": "42P01", "message": "missing relation"})
        repo = EntityRepository(org_source, ORGANIZATION_MAPPER, tag_lookup=tags)

        response = await repo.get_with_tags("org-1")

        assert response.error.code == "42P01"
        assert calls == []


@pytest.mark.asyncio
class TestEntitySpecificReads:
    """Test profile, event and hub helpers."""

    async def test_find_profile_by_email(self):
        source = InMemoryRepository(
            "profiles",
            initial_data=[
                {
                    "id": "p1",
                    "first_name": "Ada",
                    "last_name": "Lovelace",
                    "email": "ada@example.com",
                    "location": {"id": "l1", "full_name": "London, UK", "city": "London"},
                }
            ],
        )
        profiles = EntityRepository(source, PROFILE_MAPPER)

        response = await find_profile_by_email(profiles, "ada@example.com")

        assert isinstance(response.data, Profile)
        assert response.data.name == "Ada Lovelace"
        assert response.data.location.city == "London"

    async def test_create_profile_requires_first_name(self):
        source = InMemoryRepository("profiles")
        profiles = EntityRepository(source, PROFILE_MAPPER)

        response = await profiles.create_entity({"last_name": "Only"})

        assert response.error.details == {"first_name": "First name is required"}
        assert source.write_calls == []

    async def test_events(self):
        source = InMemoryRepository(
            "events",
            initial_data=[
                {"id": "e1", "title": "Past", "start_time": "2020-01-01T10:00:00+00:00", "creator_id": "u1"},
                {"id": "e2", "title": "Later", "start_time": "2030-06-01T10:00:00+00:00", "creator_id": "u2"},
                {"id": "e3", "title": "Soon", "start_time": "2030-01-01T10:00:00+00:00", "creator_id": "u1"},
            ],
        )
        events = EntityRepository(source, EVENT_MAPPER)
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)

        upcoming = await get_upcoming_events(events, now=now)
        first_upcoming = await get_upcoming_events(events, limit=1, now=now)
        by_creator = await get_events_by_creator(events, "u1")

        assert [event.title for event in upcoming.data] == ["Soon", "Later"]
        assert [event.id for event in first_upcoming.data] == ["e3"]
        assert [event.id for event in by_creator.data] == ["e1", "e3"]
        assert upcoming.data[0].name == "Soon"

    async def test_create_event_validates_times(self):
        events = EntityRepository(InMemoryRepository("events"), EVENT_MAPPER)

        response = await events.create_entity(
            Event(
                title="Backwards",
                start_time=datetime(2030, 1, 2, tzinfo=timezone.utc),
                end_time=datetime(2030, 1, 1, tzinfo=timezone.utc),
            )
        )

        assert response.error.details == {"end_time": "End time must be after start time"}

    async def test_create_event(self):
        events = EntityRepository(InMemoryRepository("events"), EVENT_MAPPER)

        response = await events.create_entity(
            {"title": "Launch", "start_time": datetime(2030, 1, 1, tzinfo=timezone.utc), "price": Decimal("5")}
        )

        assert response.data.name == "Launch"
        assert response.data.price == Decimal("5")
        assert response.data.start_time == datetime(2030, 1, 1, tzinfo=timezone.utc)

    async def test_create_event_from_wire_values(self):
        source = InMemoryRepository("events")
        events = EntityRepository(source, EVENT_MAPPER)

        response = await events.create_entity(
            {
                "title": "Launch",
                "start_time": "2030-01-01T09:00:00Z",
                "end_time": "2030-01-01T11:00:00+00:00",
                "is_paid": True,
                "price": "12.50",
                "capacity": "40",
            }
        )

        assert response.is_success()
        assert response.data.start_time == datetime(2030, 1, 1, 9, tzinfo=timezone.utc)
        assert response.data.price == Decimal("12.50")
        assert response.data.capacity == 40
        assert source.find_by_id(response.data.id)["start_time"] == "2030-01-01T09:00:00+00:00"

    async def test_unparseable_wire_values_fail_before_writing(self):
        source = InMemoryRepository("events")
        events = EntityRepository(source, EVENT_MAPPER)

        response = await events.create_entity({"title": "Launch", "start_time": "next tuesday", "price": "abc"})

        assert response.error.code == "validation_error"
        assert response.error.details == {
            "start_time": "Invalid datetime value",
            "price": "Invalid decimal value",
        }
        assert source.write_calls == []

    async def test_update_event_from_wire_values(self):
        source = InMemoryRepository(
            "events", initial_data=[{"id": "e1", "title": "Launch", "start_time": "2030-01-01T09:00:00+00:00"}]
        )
        events = EntityRepository(source, EVENT_MAPPER)

        response = await events.update_entity("e1", {"end_time": "2030-01-01T10:30:00Z"})

        assert response.is_success()
        assert response.data.end_time == datetime(2030, 1, 1, 10, 30, tzinfo=timezone.utc)

    async def test_hubs(self):
        source = InMemoryRepository(
            "hubs",
            initial_data=[
                {"id": "h1", "name": "Zeta", "is_featured": True, "tag_id": "t1"},
                {"id": "h2", "name": "Alpha", "is_featured": True, "tag_id": "t2"},
                {"id": "h3", "name": "Beta", "is_featured": False, "tag_id": "t3"},
            ],
        )
        hubs = EntityRepository(source, HUB_MAPPER)

        featured = await get_featured_hubs(hubs)
        by_tag = await get_hub_by_tag_id(hubs, "t3")
        missing = await get_hub_by_tag_id(hubs, "t9")

        assert [hub.name for hub in featured.data] == ["Alpha", "Zeta"]
        assert by_tag.data == Hub(id="h3", name="Beta", tag_id="t3")
        assert missing.data is None


def test_entity_reads_are_exported_from_package():
    import repokit.repositories as repositories

    assert repositories.find_profile_by_email is find_profile_by_email
    assert repositories.get_upcoming_events is get_upcoming_events
    assert {
        "find_organizations_by_name",
        "get_events_by_creator",
        "get_featured_hubs",
        "get_hub_by_tag_id",
    } <= set(repositories.__all__)
