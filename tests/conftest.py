from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from recordserver.api.app import create_app
from recordserver.config import ServerSettings
from recordserver.core.schema import Schema
from recordserver.pubsub.memory import MemoryPubSub
from recordserver.source.memory import MemorySource


SCHEMA_YAML = """
models:
  planet:
    attributes:
      name: {type: string}
    relationships:
      moons: {type: hasMany, model: moon, inverse: planet}
  moon:
    attributes:
      name: {type: string}
    relationships:
      planet: {type: hasOne, model: planet, inverse: moons}
"""

SCHEMA_DOCUMENT = {
    "models": {
        "planet": {
            "attributes": {
                "name": {"type": "string"},
                "description": {"type": "string"},
                "createdAt": {"type": "datetime"},
            },
            "relationships": {
                "moons": {"type": "hasMany", "model": "moon", "inverse": "planet", "dependent": "remove"},
            },
        },
        "moon": {
            "attributes": {"name": {"type": "string"}},
            "relationships": {
                "planet": {"type": "hasOne", "model": "planet", "inverse": "moons"},
            },
        },
        "tag": {
            "attributes": {"name": {"type": "string"}},
            "relationships": {
                "articles": {"type": "hasMany", "model": "article", "inverse": "tags"},
            },
        },
        "article": {
            "attributes": {"title": {"type": "string"}},
            "relationships": {
                "tags": {"type": "hasMany", "model": "tag", "inverse": "articles"},
            },
        },
        "typedModel": {
            "attributes": {
                "someText": {"type": "string"},
                "someNumber": {"type": "number"},
                "someBoolean": {"type": "boolean"},
                "someDate": {"type": "date"},
            },
        },
    }
}


@pytest.fixture
def schema() -> Schema:
    return Schema.from_dict(SCHEMA_DOCUMENT)


@pytest.fixture
def source(schema) -> MemorySource:
    return MemorySource(schema)


@pytest.fixture
def pubsub() -> MemoryPubSub:
    return MemoryPubSub()


@pytest.fixture
def settings(source, pubsub) -> ServerSettings:
    return ServerSettings(source=source, pubsub=pubsub)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def resource(type: str, attributes: dict | None = None, id: str | None = None, relationships: dict | None = None):
    data = {"type": type}
    if id is not None:
        data["id"] = id
    if attributes is not None:
        data["attributes"] = attributes
    if relationships is not None:
        data["relationships"] = relationships
    return {"data": data}


def create(client: TestClient, type: str, attributes: dict, **kwargs) -> dict:
    response = client.post(f"/{type}", json=resource(type, attributes, **kwargs))
    assert response.status_code == 201, response.text
    return response.json()["data"]
