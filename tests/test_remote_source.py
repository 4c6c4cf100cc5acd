import httpx
import pytest

from recordserver.api.app import create_app
from recordserver.config import ServerSettings
from recordserver.core.errors import UpstreamError, ValidationError
from recordserver.core.records import (
    AddRecord,
    AttributeFilter,
    AttributeSort,
    FindRecord,
    FindRecords,
    FindRelatedRecord,
    FindRelatedRecords,
    Identity,
    Record,
    RemoveRecord,
    RequestOptions,
)
from recordserver.jsonapi.handlers import JSONAPIRequest, RequestRef
from recordserver.server import Server
from recordserver.source.memory import MemorySource
from recordserver.source.remote import RemoteSource


@pytest.fixture
async def upstream(schema):
    server = Server(ServerSettings(source=MemorySource(schema)))
    await server.activate()
    yield server
    await server.deactivate()


@pytest.fixture
async def remote(schema, upstream):
    app = create_app(upstream.settings, server=upstream)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://upstream") as client:
        source = RemoteSource(schema, "http://upstream", client=client)
        await source.activate()
        yield source
        await source.deactivate()


async def test_add_and_find(remote, upstream):
    added = await remote.update(AddRecord(Record("planet", attributes={"name": "Jupiter"})))

    assert added.id
    stored = await upstream.source.query(FindRecord(Identity("planet", added.id)))
    assert stored.attributes == {"name": "Jupiter"}

    found = await remote.query(FindRecord(Identity("planet", added.id)))
    assert found.attributes == {"name": "Jupiter"}
    assert found.relationships == {"moons": []}


async def test_missing_record_passes_upstream_status(remote):
    with pytest.raises(UpstreamError) as excinfo:
        await remote.query(FindRecord(Identity("planet", "nope")))

    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "Record not found"


async def test_transforms_are_sent_as_one_batch(remote, upstream):
    with pytest.raises(UpstreamError) as excinfo:
        await remote.update([
            AddRecord(Record("planet", "p1", {"name": "Jupiter"})),
            RemoveRecord(Identity("planet", "missing")),
        ])

    assert excinfo.value.status_code == 404
    assert await upstream.source.query(FindRecords("planet")) == []


async def test_remove_returns_removed_record(remote):
    await remote.update(AddRecord(Record("planet", "p1", {"name": "Jupiter"})))

    removed = await remote.update(RemoveRecord(Identity("planet", "p1")))

    assert removed.id == "p1"
    assert removed.attributes == {"name": "Jupiter"}


async def test_find_records_filter_and_sort(remote):
    await remote.update([
        AddRecord(Record("typedModel", "a", {"someNumber": 1, "someBoolean": True})),
        AddRecord(Record("typedModel", "b", {"someNumber": 2, "someBoolean": True})),
        AddRecord(Record("typedModel", "c", {"someNumber": 3, "someBoolean": False})),
    ])

    records = await remote.query(FindRecords(
        "typedModel",
        filter=[AttributeFilter(field="someBoolean", value=True)],
        sort=[AttributeSort(field="someNumber", dir="desc")],
    ))

    assert [r.id for r in records] == ["b", "a"]


async def test_only_equality_filters(remote):
    with pytest.raises(ValidationError):
        await remote.query(FindRecords("planet", filter=[AttributeFilter(field="name", op="ne", value="x")]))


async def test_find_records_by_ids(remote):
    await remote.update([
        AddRecord(Record("planet", "p1", {"name": "Jupiter"})),
        AddRecord(Record("planet", "p2", {"name": "Saturn"})),
    ])

    records = await remote.query(FindRecords("planet", ids=["p2", "missing", "p1"]))

    assert [r.id for r in records] == ["p2", "p1"]


async def test_find_related(remote):
    await remote.update([
        AddRecord(Record("planet", "p1", {"name": "Jupiter"})),
        AddRecord(Record("moon", "m1", {"name": "Io"}, {"planet": Identity("planet", "p1")})),
    ])

    owner = await remote.query(FindRelatedRecord(Identity("moon", "m1"), "planet"))
    moons = await remote.query(FindRelatedRecords(Identity("planet", "p1"), "moons"))

    assert owner.id == "p1"
    assert [m.id for m in moons] == ["m1"]


async def test_graphql_over_remote_source(remote):
    await remote.update([
        AddRecord(Record("planet", "p1", {"name": "Jupiter"})),
        AddRecord(Record("moon", "m1", {"name": "Io"}, {"planet": Identity("planet", "p1")})),
    ])
    proxy = Server(ServerSettings(source=remote))

    result = await proxy.execute_graphql("{ planets { name moons { name } } }")

    assert result == {"data": {"planets": [{"name": "Jupiter", "moons": [{"name": "Io"}]}]}}


async def test_forwarded_headers(schema):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"data": []})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = RemoteSource(schema, "http://upstream/", client=client)
        await source.activate()
        await source.query(
            FindRecords("planet"),
            RequestOptions(headers={"authorization": "Bearer token", "x-client-id": "c1", "cookie": "secret"}),
        )

    request = seen[0]
    assert str(request.url) == "http://upstream/planets"
    assert request.headers["authorization"] == "Bearer token"
    assert request.headers["x-client-id"] == "c1"
    assert "cookie" not in request.headers
    assert request.headers["accept"] == "application/vnd.api+json"


async def test_unreachable_upstream_is_502(schema):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = RemoteSource(schema, "http://upstream", client=client)
        await source.activate()
        with pytest.raises(UpstreamError) as excinfo:
            await source.query(FindRecords("planet"))

    assert excinfo.value.status_code == 502


async def test_query_before_activation_fails(schema):
    source = RemoteSource(schema, "http://upstream")

    with pytest.raises(RuntimeError):
        await source.query(FindRecords("planet"))


async def test_batch_results_without_records_fall_back_to_identities(schema):
    def handler(request):
        return httpx.Response(200, json={"operations": [{"data": None}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        server = Server(ServerSettings(source=RemoteSource(schema, "http://upstream", client=client)))
        await server.activate()
        response = await server.process_request(JSONAPIRequest(
            op="batch",
            ref=RequestRef(type=None),
            document={"operations": [{"op": "remove", "ref": {"type": "planets", "id": "p1"}}]},
        ))
        await server.deactivate()

    assert response.status == 200
    assert response.body == {"operations": [{"data": {"type": "planets", "id": "p1"}}]}
