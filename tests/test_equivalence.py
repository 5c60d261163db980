"""
Equivalence of the in-memory repository and the Supabase adapter.

Identical chains run against identically seeded backends must agree on
success/error and on the returned data.
"""

import pytest

from repokit.repositories.memory_repository import InMemoryRepository
from repokit.repositories.supabase_repository import SupabaseRepository

from .fakes import FakeSupabaseClient

CHAINS = {
    "all": lambda r: r.select().execute(),
    "eq_and_eq": lambda r: r.select().eq("team", "blue").eq("age", 25).execute(),
    "neq_skips_null": lambda r: r.select().neq("age", 25).execute(),
    "is_null": lambda r: r.select().is_("manager_id", None).execute(),
    "in": lambda r: r.select().in_("id", [2, 4, 8]).execute(),
    "ilike": lambda r: r.select().ilike("name", "%e%").execute(),
    "or": lambda r: r.select().or_("team.eq.green,age.lt.30").execute(),
    "order_desc_nulls_first": lambda r: r.select().order("age", ascending=False).execute(),
    "range_head": lambda r: r.select().order("id").range(0, 2).execute(),
    "range_tail": lambda r: r.select().order("id").range(4, 10).execute(),
    "projection": lambda r: r.select("id, label:name").gt("age", 26).execute(),
    "count": lambda r: r.select("*", count="exact").eq("team", "red").limit(1).execute(),
    "single_one": lambda r: r.select().eq("id", 3).single(),
    "single_none": lambda r: r.select().eq("id", 42).single(),
    "single_many": lambda r: r.select().eq("team", "red").single(),
    "maybe_none": lambda r: r.select().eq("id", 42).maybe_single(),
    "maybe_many": lambda r: r.select().gt("age", 1).maybe_single(),
    "maybe_offset": lambda r: r.select().order("id").offset(4).maybe_single(),
    "update": lambda r: r.update({"team": "black"}).eq("team", "blue").execute(),
    "update_missing": lambda r: r.update({"team": "black"}).eq("id", 42).single(),
    "delete": lambda r: r.delete().lt("age", 30).execute(),
    "upsert_existing": lambda r: r.upsert({"id": 1, "name": "ALICE"}).single(),
    "update_select": lambda r: r.update({"team": "x"}).eq("id", 1).select("id").execute(),
    "insert_select": lambda r: r.insert({"id": 6, "name": "frank", "age": 19}).select("id, name").single(),
    "delete_select": lambda r: r.delete().eq("team", "blue").select("name").execute(),
}


@pytest.mark.asyncio
@pytest.mark.parametrize("name", sorted(CHAINS))
async def test_backends_agree(name, people_rows):
    """Same chain, same seed, same observable response."""
    memory = InMemoryRepository("people", initial_data=people_rows)
    live = SupabaseRepository(FakeSupabaseClient({"people": people_rows}), "people")

    expected = await CHAINS[name](memory)
    actual = await CHAINS[name](live)

    assert actual.is_success() == expected.is_success()
    assert actual.data == expected.data
    assert actual.count == expected.count
    if expected.is_error():
        assert actual.error.code == expected.error.code
        assert actual.error.message == expected.error.message
