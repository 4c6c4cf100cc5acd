from fastapi.testclient import TestClient

from recordserver.api.app import create_app
from recordserver.config import ServerSettings
from recordserver.jsonapi.routes import BATCH_PATH, build_routes
from recordserver.source.memory import MemorySource


def test_route_table(schema):
    routes = build_routes(schema)

    assert routes.find("GET", "/planets").op == "findRecords"
    assert routes.find("POST", "/planets").op == "addRecord"
    assert routes.find("PATCH", "/typed-models/{id}").op == "updateRecord"
    assert routes.find("GET", "/planets/{id}/moons").op == "findRelatedRecords"
    assert routes.find("GET", "/moons/{id}/planet").op == "findRelatedRecord"
    assert routes.find("PATCH", "/moons/{id}/relationships/planet").op == "replaceRelatedRecord"
    assert routes.find("DELETE", "/articles/{id}/relationships/tags").op == "removeFromRelatedRecords"
    assert routes.find("PATCH", BATCH_PATH).op == "batch"

    route = routes.find("POST", "/planets/{id}/relationships/moons")
    assert route.op == "addToRelatedRecords"
    assert route.params.type == "planet"
    assert route.params.relationship == "moons"


def test_hasone_relationships_have_no_collection_routes(schema):
    routes = build_routes(schema)

    assert routes.find("POST", "/moons/{id}/relationships/planet") is None
    assert routes.find("GET", "/moons/{id}/planet").op == "findRelatedRecord"


def test_readonly_routes(schema):
    routes = build_routes(schema, readonly=True)

    assert {route.method for route in routes} == {"GET"}
    assert routes.find("PATCH", BATCH_PATH) is None
    assert set(routes.by_type()) == set(schema.models)


def test_readonly_app_rejects_mutations(schema):
    app = create_app(ServerSettings(source=MemorySource(schema), readonly=True))

    with TestClient(app) as client:
        assert client.get("/planets").status_code == 200
        assert client.post("/planets", json={"data": {"type": "planets"}}).status_code == 405
        assert client.patch("/batch", json={"operations": []}).status_code == 404


def test_disabled_surfaces(schema):
    settings = ServerSettings(source=MemorySource(schema), jsonapi=False, graphql=False, schema=False)

    with TestClient(create_app(settings)) as client:
        assert client.get("/planets").status_code == 404
        assert client.post("/graphql", json={"query": "{ planets { id } }"}).status_code == 404
        assert client.get("/schema").status_code == 404
        assert client.get("/health").status_code == 200


def test_custom_schema_path(schema):
    settings = ServerSettings(source=MemorySource(schema), schema="/meta/schema", inflections=False)

    with TestClient(create_app(settings)) as client:
        document = client.get("/meta/schema").json()

    assert "inflections" not in document
    assert "planet" in document["models"]
