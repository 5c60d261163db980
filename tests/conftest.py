"""
Test configuration and fixtures
"""

import pytest

from repokit.repositories.memory_repository import InMemoryDataStore, InMemoryRepository


@pytest.fixture
def people_rows():
    """Five people with mixed NULL columns."""
    return [
        {"id": 1, "name": "alice", "age": 31, "team": "red", "manager_id": None},
        {"id": 2, "name": "Bob", "age": 25, "team": "blue", "manager_id": 1},
        {"id": 3, "name": "carol", "age": None, "team": "red", "manager_id": 1},
        {"id": 4, "name": "dave", "age": 42, "team": "green", "manager_id": None},
        {"id": 5, "name": "Eve", "age": 25, "team": "blue", "manager_id": 4},
    ]


@pytest.fixture
def timeline_rows():
    """Three rows with increasing created_at timestamps."""
    return [
        {"id": 1, "name": "a", "created_at": "2024-01-01T00:00:00+00:00"},
        {"id": 2, "name": "b", "created_at": "2024-02-01T00:00:00+00:00"},
        {"id": 3, "name": "c", "created_at": "2024-03-01T00:00:00+00:00"},
    ]


@pytest.fixture
def store():
    """Fresh shared in-memory store."""
    return InMemoryDataStore()


@pytest.fixture
def people_repo(people_rows, store):
    """In-memory repository seeded with people."""
    return InMemoryRepository("people", initial_data=people_rows, store=store)
