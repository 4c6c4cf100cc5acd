import asyncio
from datetime import date

import pytest
from graphql import print_schema

from recordserver.config import ServerSettings
from recordserver.core.errors import SchemaConfigError
from recordserver.core.records import FindRecords, Identity, Record, UpdateRecord
from recordserver.core.schema import Schema
from recordserver.gql.schema import build_graphql_schema
from recordserver.server import Server
from recordserver.source.memory import MemorySource


class CountingSource(MemorySource):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.queries = []

    async def _query(self, expression, options):
        self.queries.append(expression)
        return await super()._query(expression, options)


SOLAR_SYSTEM = [
    Record("planet", "p1", {"name": "Jupiter", "description": "giant"}),
    Record("planet", "p2", {"name": "Saturn", "description": "giant"}),
    Record("planet", "p3", {"name": "Earth", "description": "rocky"}),
    Record("moon", "m1", {"name": "Io"}, {"planet": Identity("planet", "p1")}),
    Record("moon", "m2", {"name": "Europa"}, {"planet": Identity("planet", "p1")}),
    Record("moon", "m3", {"name": "Titan"}, {"planet": Identity("planet", "p2")}),
    Record("moon", "m4", {"name": "Moon"}, {"planet": Identity("planet", "p3")}),
]


@pytest.fixture
async def server(schema):
    server = Server(ServerSettings(source=CountingSource(schema, records=SOLAR_SYSTEM)))
    await server.activate()
    yield server
    await server.deactivate()


def test_generated_types(schema):
    sdl = print_schema(build_graphql_schema(schema))

    assert "type Planet {" in sdl
    assert "moons: [Moon]!" in sdl
    assert "planet: Planet" in sdl
    assert "createdAt: DateTime" in sdl
    assert "someNumber: Int" in sdl
    assert "someDate: Date" in sdl
    assert "planet(id: ID!): Planet" in sdl
    assert "planets(where: PlanetWhereInput, orderBy: [PlanetOrderByInput!]): [Planet]!" in sdl
    assert "name_not_in: [String!]" in sdl
    assert "name_DESC" in sdl


async def test_find_record(server):
    result = await server.execute_graphql('{ planet(id: "p1") { id name moons { name } } }')

    assert "errors" not in result
    planet = result["data"]["planet"]
    assert planet["name"] == "Jupiter"
    assert sorted(m["name"] for m in planet["moons"]) == ["Europa", "Io"]


async def test_missing_record_is_reported_as_error(server):
    result = await server.execute_graphql('{ planet(id: "nope") { name } }')

    assert result["data"] == {"planet": None}
    assert "Record not found" in result["errors"][0]["message"]


async def test_where_and_order_by(server):
    result = await server.execute_graphql(
        '{ planets(where: {description: "giant"}, orderBy: [name_DESC]) { name } }'
    )
    assert [p["name"] for p in result["data"]["planets"]] == ["Saturn", "Jupiter"]

    result = await server.execute_graphql(
        '{ planets(where: {name_in: ["Earth", "Saturn"]}, orderBy: name_ASC) { name } }'
    )
    assert [p["name"] for p in result["data"]["planets"]] == ["Earth", "Saturn"]

    result = await server.execute_graphql('{ planets(where: {name_not: "Earth", id_in: ["p1", "p3"]}) { id } }')
    assert [p["id"] for p in result["data"]["planets"]] == ["p1"]


async def test_variables(server):
    result = await server.execute_graphql(
        "query Moons($where: MoonWhereInput) { moons(where: $where, orderBy: [name_ASC]) { name planet { name } } }",
        variables={"where": {"name_not_in": ["Moon", "Titan"]}},
    )

    assert result["data"]["moons"] == [
        {"name": "Europa", "planet": {"name": "Jupiter"}},
        {"name": "Io", "planet": {"name": "Jupiter"}},
    ]


async def test_nested_relationships_are_batched(server):
    server.source.queries.clear()

    result = await server.execute_graphql("{ planets { name moons { name planet { name } } } }")

    assert "errors" not in result
    assert len(result["data"]["planets"]) == 3
    assert len(server.source.queries) == 2
    assert all(isinstance(q, FindRecords) for q in server.source.queries)
    assert server.source.queries[1].type == "moon"


async def test_loaders_are_per_request(server):
    await server.execute_graphql('{ planets { name } }')
    await server.source.update(UpdateRecord(Record("planet", "p1", {"name": "Jove"})))

    result = await server.execute_graphql('{ moon(id: "m1") { planet { name } } }')

    assert result["data"]["moon"]["planet"]["name"] == "Jove"


class GatedSource(MemorySource):
    """Holds batched moon lookups until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.held = asyncio.Event()
        self.release = asyncio.Event()

    async def _query(self, expression, options):
        if isinstance(expression, FindRecords) and expression.type == "moon" and expression.ids is not None:
            self.held.set()
            await self.release.wait()
        return await super()._query(expression, options)


async def test_concurrent_requests_do_not_share_loaders(schema):
    source = GatedSource(schema, records=SOLAR_SYSTEM)
    server = Server(ServerSettings(source=source))
    await server.activate()

    async def rename_then_read():
        await source.held.wait()
        await source.update(UpdateRecord(Record("planet", "p1", {"name": "Jove"})))
        result = await server.execute_graphql('{ planet(id: "p1") { name } }')
        source.release.set()
        return result

    first, second = await asyncio.gather(
        server.execute_graphql('{ planet(id: "p1") { name moons { name planet { name } } } }'),
        rename_then_read(),
    )
    await server.deactivate()

    assert second["data"]["planet"]["name"] == "Jove"
    planet = first["data"]["planet"]
    assert planet["name"] == "Jupiter"
    assert [moon["planet"]["name"] for moon in planet["moons"]] == ["Jupiter", "Jupiter"]


async def test_date_scalars(schema):
    source = MemorySource(schema, records=[Record("typedModel", "t1", {"someDate": date(2020, 1, 2)})])
    server = Server(ServerSettings(source=source))
    await server.activate()

    result = await server.execute_graphql(
        '{ typedModels(where: {someDate: "2020-01-02"}) { id someDate } }'
    )

    assert result["data"]["typedModels"] == [{"id": "t1", "someDate": "2020-01-02"}]

    result = await server.execute_graphql('{ typedModels(where: {someDate: "January"}) { id } }')
    assert result["errors"]
    await server.deactivate()


def test_polymorphic_relationship_is_rejected():
    schema = Schema.from_dict({
        "models": {
            "comment": {"relationships": {"subject": {"type": "hasOne", "model": ["planet", "moon"]}}},
            "planet": {},
            "moon": {},
        }
    })

    with pytest.raises(SchemaConfigError, match="polymorphic"):
        build_graphql_schema(schema)


def test_model_without_distinct_plural_is_rejected():
    schema = Schema.from_dict({"models": {"news": {"attributes": {"title": {"type": "string"}}}}})

    with pytest.raises(SchemaConfigError, match="plural"):
        build_graphql_schema(schema)


def test_http_endpoint(client):
    client.post("/planets", json={"data": {"type": "planets", "id": "p1", "attributes": {"name": "Jupiter"}}})

    response = client.post("/graphql", json={"query": "{ planets { id name } }"})

    assert response.status_code == 200
    assert response.json() == {"data": {"planets": [{"id": "p1", "name": "Jupiter"}]}}


def test_http_endpoint_errors(client):
    assert client.post("/graphql", json={"variables": {}}).status_code == 400

    response = client.post("/graphql", json={"query": "{ stars { id } }"})
    assert response.status_code == 200
    assert response.json()["errors"]


def test_graphiql(client):
    response = client.get("/graphql")

    assert response.status_code == 200
    assert "graphiql" in response.text.lower()
