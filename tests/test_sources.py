import asyncio
from datetime import date

import pytest

from recordserver.core.errors import RecordAlreadyExistsError, RecordNotFoundError, ValidationError
from recordserver.core.records import (
    AddRecord,
    AddToRelatedRecords,
    AttributeFilter,
    AttributeSort,
    FindRecord,
    FindRecords,
    FindRelatedRecord,
    FindRelatedRecords,
    Identity,
    Record,
    RemoveFromRelatedRecords,
    RemoveRecord,
    ReplaceRelatedRecord,
    ReplaceRelatedRecords,
    UpdateRecord,
)
from recordserver.source.memory import MemorySource
from recordserver.source.sql import SQLSource


@pytest.fixture(params=["memory", "sql"])
async def active_source(request, schema):
    if request.param == "memory":
        source = MemorySource(schema)
    else:
        source = SQLSource(schema, "sqlite+aiosqlite:///:memory:")
    await source.activate()
    yield source
    await source.deactivate()


def planet(id, name, **attributes):
    return Record("planet", id, {"name": name, **attributes})


def moon(id, name, planet_id=None):
    relationships = {"planet": Identity("planet", planet_id)} if planet_id else {}
    return Record("moon", id, {"name": name}, relationships)


def ids(linkage):
    return {identity.id for identity in linkage or []}


async def find(source, type, id):
    return await source.query(FindRecord(Identity(type, id)))


async def test_add_and_find(active_source):
    added = await active_source.update(AddRecord(Record("planet", attributes={"name": "Jupiter"})))

    assert added.id
    found = await find(active_source, "planet", added.id)
    assert found.attributes == {"name": "Jupiter"}
    assert found.relationships == {"moons": []}


async def test_add_existing_identity_fails(active_source):
    await active_source.update(AddRecord(planet("p1", "Jupiter")))

    with pytest.raises(RecordAlreadyExistsError):
        await active_source.update(AddRecord(planet("p1", "Saturn")))


async def test_attribute_kinds_survive_storage(active_source):
    await active_source.update(AddRecord(Record("typedModel", "t1", {
        "someText": "abc",
        "someNumber": 3,
        "someBoolean": True,
        "someDate": date(2020, 1, 2),
    })))

    found = await find(active_source, "typedModel", "t1")

    assert found.attributes == {"someText": "abc", "someNumber": 3, "someBoolean": True, "someDate": date(2020, 1, 2)}


async def test_hasone_linkage_updates_inverse(active_source):
    await active_source.update(AddRecord(planet("p1", "Jupiter")))
    await active_source.update(AddRecord(moon("m1", "Io", "p1")))

    jupiter = await find(active_source, "planet", "p1")
    io = await find(active_source, "moon", "m1")

    assert ids(jupiter.relationships["moons"]) == {"m1"}
    assert io.relationships["planet"] == Identity("planet", "p1")


async def test_update_merges_attributes_and_keeps_omitted_relationships(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter", description="Gas giant")),
        AddRecord(moon("m1", "Io", "p1")),
    ])

    await active_source.update(UpdateRecord(Record("planet", "p1", {"name": "Jove"})))

    jupiter = await find(active_source, "planet", "p1")
    assert jupiter.attributes == {"name": "Jove", "description": "Gas giant"}
    assert ids(jupiter.relationships["moons"]) == {"m1"}


async def test_update_with_explicit_empty_linkage_clears_it(active_source):
    await active_source.update([AddRecord(planet("p1", "Jupiter")), AddRecord(moon("m1", "Io", "p1"))])

    await active_source.update(UpdateRecord(Record("planet", "p1", relationships={"moons": []})))

    assert (await find(active_source, "planet", "p1")).relationships["moons"] == []
    assert (await find(active_source, "moon", "m1")).relationships["planet"] is None


async def test_update_missing_record(active_source):
    with pytest.raises(RecordNotFoundError):
        await active_source.update(UpdateRecord(planet("nope", "Vulcan")))


async def test_replace_related_records_diffs_both_sides(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter")),
        AddRecord(moon("m1", "Io", "p1")),
        AddRecord(moon("m2", "Europa", "p1")),
        AddRecord(moon("m3", "Ganymede")),
    ])

    await active_source.update(ReplaceRelatedRecords(
        Identity("planet", "p1"), "moons", [Identity("moon", "m2"), Identity("moon", "m3")]
    ))

    jupiter = await find(active_source, "planet", "p1")
    assert ids(jupiter.relationships["moons"]) == {"m2", "m3"}
    assert (await find(active_source, "moon", "m1")).relationships["planet"] is None
    assert (await find(active_source, "moon", "m3")).relationships["planet"] == Identity("planet", "p1")


async def test_replace_related_record_moves_between_owners(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter")),
        AddRecord(planet("p2", "Saturn")),
        AddRecord(moon("m1", "Titan", "p1")),
    ])

    await active_source.update(ReplaceRelatedRecord(Identity("moon", "m1"), "planet", Identity("planet", "p2")))

    assert (await find(active_source, "planet", "p1")).relationships["moons"] == []
    assert ids((await find(active_source, "planet", "p2")).relationships["moons"]) == {"m1"}


async def test_many_to_many_add_and_remove(active_source):
    await active_source.update([
        AddRecord(Record("article", "a1", {"title": "Moons"})),
        AddRecord(Record("tag", "t1", {"name": "space"})),
        AddRecord(Record("tag", "t2", {"name": "science"})),
    ])
    article = Identity("article", "a1")

    await active_source.update(AddToRelatedRecords(article, "tags", Identity("tag", "t1")))
    await active_source.update(AddToRelatedRecords(article, "tags", Identity("tag", "t2")))
    # Adding twice is a no-op.
    await active_source.update(AddToRelatedRecords(article, "tags", Identity("tag", "t2")))

    assert ids((await find(active_source, "article", "a1")).relationships["tags"]) == {"t1", "t2"}
    assert ids((await find(active_source, "tag", "t2")).relationships["articles"]) == {"a1"}

    await active_source.update(RemoveFromRelatedRecords(article, "tags", Identity("tag", "t1")))

    assert ids((await find(active_source, "article", "a1")).relationships["tags"]) == {"t2"}
    assert (await find(active_source, "tag", "t1")).relationships["articles"] == []


async def test_remove_cascades_dependents_and_returns_snapshot(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter")),
        AddRecord(moon("m1", "Io", "p1")),
        AddRecord(moon("m2", "Europa", "p1")),
    ])

    removed = await active_source.update(RemoveRecord(Identity("planet", "p1")))

    assert removed.attributes == {"name": "Jupiter"}
    assert ids(removed.relationships["moons"]) == {"m1", "m2"}
    for type, id in [("planet", "p1"), ("moon", "m1"), ("moon", "m2")]:
        with pytest.raises(RecordNotFoundError):
            await find(active_source, type, id)


async def test_remove_unlinks_inverse(active_source):
    await active_source.update([
        AddRecord(Record("tag", "t1", {"name": "space"})),
        AddRecord(Record("article", "a1", {"title": "Moons"}, {"tags": [Identity("tag", "t1")]})),
    ])

    await active_source.update(RemoveRecord(Identity("tag", "t1")))

    assert (await find(active_source, "article", "a1")).relationships["tags"] == []


async def test_failed_transform_changes_nothing(active_source):
    with pytest.raises(ValidationError):
        await active_source.update([
            AddRecord(planet("p1", "Jupiter")),
            AddRecord(Record("planet", "p2", {"mass": 1})),
        ])

    assert await active_source.query(FindRecords("planet")) == []


async def test_concurrent_transforms_stay_atomic(active_source):
    failing = active_source.update([
        AddRecord(planet("a1", "Jupiter")),
        AddRecord(planet("a2", "Saturn")),
        AddRecord(planet("a3", "Earth")),
        RemoveRecord(Identity("planet", "missing")),
    ])
    others = [active_source.update(AddRecord(moon(f"m{n}", f"Moon {n}"))) for n in range(5)]

    results = await asyncio.gather(failing, *others, return_exceptions=True)

    assert isinstance(results[0], RecordNotFoundError)
    assert not any(isinstance(r, Exception) for r in results[1:])
    assert await active_source.query(FindRecords("planet")) == []
    assert {r.id for r in await active_source.query(FindRecords("moon"))} == {f"m{n}" for n in range(5)}


async def test_linking_missing_record_fails(active_source):
    await active_source.update(AddRecord(planet("p1", "Jupiter")))

    with pytest.raises(RecordNotFoundError):
        await active_source.update(AddRecord(moon("m1", "Io", "nope")))

    assert await active_source.query(FindRecords("moon")) == []


async def test_linking_wrong_type_fails(active_source):
    await active_source.update(AddRecord(Record("tag", "t1", {"name": "space"})))

    with pytest.raises(ValidationError):
        await active_source.update(AddRecord(Record("moon", "m1", {"name": "Io"}, {"planet": Identity("tag", "t1")})))


async def test_find_records_filter_and_sort(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter", description="giant")),
        AddRecord(planet("p2", "Saturn", description="giant")),
        AddRecord(planet("p3", "Earth", description="rocky")),
    ])

    giants = await active_source.query(FindRecords(
        "planet",
        filter=[AttributeFilter(field="description", value="giant")],
        sort=[AttributeSort(field="name", dir="desc")],
    ))
    assert [r.id for r in giants] == ["p2", "p1"]

    by_description = await active_source.query(FindRecords(
        "planet", sort=[AttributeSort(field="description"), AttributeSort(field="name")]
    ))
    assert [r.id for r in by_description] == ["p1", "p2", "p3"]

    selected = await active_source.query(FindRecords(
        "planet",
        filter=[AttributeFilter(field="name", op="in", value=["Earth", "Saturn"])],
        sort=[AttributeSort(field="name")],
    ))
    assert [r.id for r in selected] == ["p3", "p2"]

    others = await active_source.query(FindRecords(
        "planet", filter=[AttributeFilter(field="name", op="not_in", value=["Earth"])], sort=[AttributeSort(field="id")]
    ))
    assert [r.id for r in others] == ["p1", "p2"]


async def test_missing_values_sort_last_and_match_negative_filters(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter", description="giant")),
        AddRecord(planet("p2", "Saturn", description="giant")),
        AddRecord(planet("p3", "Earth", description="rocky")),
        AddRecord(planet("p4", "Mars")),
    ])

    ascending = await active_source.query(FindRecords(
        "planet", sort=[AttributeSort(field="description"), AttributeSort(field="name")]
    ))
    assert [r.id for r in ascending] == ["p1", "p2", "p3", "p4"]

    descending = await active_source.query(FindRecords(
        "planet", sort=[AttributeSort(field="description", dir="desc"), AttributeSort(field="name")]
    ))
    assert [r.id for r in descending] == ["p4", "p3", "p1", "p2"]

    not_giants = await active_source.query(FindRecords(
        "planet",
        filter=[AttributeFilter(field="description", op="ne", value="giant")],
        sort=[AttributeSort(field="name")],
    ))
    assert [r.id for r in not_giants] == ["p3", "p4"]

    not_rocky = await active_source.query(FindRecords(
        "planet",
        filter=[AttributeFilter(field="description", op="not_in", value=["rocky"])],
        sort=[AttributeSort(field="id")],
    ))
    assert [r.id for r in not_rocky] == ["p1", "p2", "p4"]


async def test_find_records_by_ids_skips_missing(active_source):
    await active_source.update([AddRecord(planet("p1", "Jupiter")), AddRecord(planet("p2", "Saturn"))])

    records = await active_source.query(FindRecords("planet", ids=["p2", "missing"]))

    assert [r.id for r in records] == ["p2"]


async def test_find_related(active_source):
    await active_source.update([
        AddRecord(planet("p1", "Jupiter")),
        AddRecord(moon("m1", "Io", "p1")),
        AddRecord(moon("m2", "Europa", "p1")),
        AddRecord(moon("m3", "Titan")),
    ])

    owner = await active_source.query(FindRelatedRecord(Identity("moon", "m1"), "planet"))
    assert owner.id == "p1"
    assert await active_source.query(FindRelatedRecord(Identity("moon", "m3"), "planet")) is None

    moons = await active_source.query(FindRelatedRecords(
        Identity("planet", "p1"), "moons", sort=[AttributeSort(field="name")]
    ))
    assert [m.attributes["name"] for m in moons] == ["Europa", "Io"]

    with pytest.raises(RecordNotFoundError):
        await active_source.query(FindRelatedRecords(Identity("planet", "nope"), "moons"))


async def test_listeners_receive_completed_transforms(active_source):
    received = []

    async def listener(transform):
        received.append(transform)

    async def broken(transform):
        raise RuntimeError("listener failure")

    active_source.on_transform(broken)
    active_source.on_transform(listener)
    await active_source.update([AddRecord(planet("p1", "Jupiter")), AddRecord(planet("p2", "Saturn"))])

    assert len(received) == 1
    assert [op.record.id for op in received[0].operations] == ["p1", "p2"]

    active_source.off_transform(listener)
    await active_source.update(AddRecord(planet("p3", "Earth")))
    assert len(received) == 1


async def test_failed_transform_is_not_announced(active_source):
    received = []

    async def listener(transform):
        received.append(transform)

    active_source.on_transform(listener)
    with pytest.raises(RecordNotFoundError):
        await active_source.update(RemoveRecord(Identity("planet", "nope")))

    assert received == []


async def test_memory_source_seed_records(schema):
    source = MemorySource(schema, records=[planet("p1", "Jupiter"), moon("m1", "Io", "p1")])
    await source.activate()

    jupiter = await find(source, "planet", "p1")

    assert jupiter.relationships["moons"] == [Identity("moon", "m1")]


async def test_memory_source_returns_copies(schema):
    source = MemorySource(schema)
    await source.activate()
    await source.update(AddRecord(planet("p1", "Jupiter")))

    found = await find(source, "planet", "p1")
    found.attributes["name"] = "changed"

    assert (await find(source, "planet", "p1")).attributes["name"] == "Jupiter"
