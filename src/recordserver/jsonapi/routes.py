"""
Route table generation.

build_routes() derives every JSON:API route of a schema once. The table is
framework independent; recordserver.api.jsonapi mounts it on FastAPI.

For a `planet` model with a hasMany `moons` relationship:

    GET    /planets
    POST   /planets
    GET    /planets/{id}
    PATCH  /planets/{id}
    DELETE /planets/{id}
    GET    /planets/{id}/moons
    POST   /planets/{id}/relationships/moons
    PATCH  /planets/{id}/relationships/moons
    DELETE /planets/{id}/relationships/moons
    PATCH  /batch
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from ..core.schema import Schema
from .handlers import HANDLERS, Handler
from .serializer import JSONAPISerializer


BATCH_PATH = "/batch"


@dataclass(frozen=True)
class RouteParams:
    type: Optional[str] = None
    relationship: Optional[str] = None


@dataclass(frozen=True)
class RouteDefinition:
    method: str
    url: str
    params: RouteParams
    op: str
    handler: Handler


class RouteTable:
    """Immutable list of routes, iterable flat or grouped by type."""

    def __init__(self, routes: list[RouteDefinition]):
        self._routes = tuple(routes)

    def __iter__(self) -> Iterator[RouteDefinition]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def by_type(self) -> dict[Optional[str], list[RouteDefinition]]:
        groups: dict[Optional[str], list[RouteDefinition]] = {}
        for route in self._routes:
            groups.setdefault(route.params.type, []).append(route)
        return groups

    def find(self, method: str, url: str) -> Optional[RouteDefinition]:
        for route in self._routes:
            if route.method == method and route.url == url:
                return route
        return None


def _route(method: str, url: str, op: str, type: Optional[str] = None, relationship: Optional[str] = None):
    return RouteDefinition(
        method=method,
        url=url,
        params=RouteParams(type=type, relationship=relationship),
        op=op,
        handler=HANDLERS[op],
    )


def build_routes(
    schema: Schema,
    serializer: Optional[JSONAPISerializer] = None,
    readonly: bool = False,
) -> RouteTable:
    """Build the route table. Readonly tables contain no mutation routes."""
    serializer = serializer or JSONAPISerializer(schema)
    routes: list[RouteDefinition] = []

    for type in schema.models:
        collection = f"/{serializer.resource_type(type)}"
        member = f"{collection}/{{id}}"

        routes.append(_route("GET", collection, "findRecords", type))
        routes.append(_route("GET", member, "findRecord", type))
        if not readonly:
            routes.append(_route("POST", collection, "addRecord", type))
            routes.append(_route("PATCH", member, "updateRecord", type))
            routes.append(_route("DELETE", member, "removeRecord", type))

        for rel in schema.each_relationship(type):
            name = serializer.resource_relationship(type, rel.name)
            related = f"{member}/{name}"
            relationship = f"{member}/relationships/{name}"

            if rel.kind == "hasMany":
                routes.append(_route("GET", related, "findRelatedRecords", type, rel.name))
                if not readonly:
                    routes.append(_route("POST", relationship, "addToRelatedRecords", type, rel.name))
                    routes.append(_route("DELETE", relationship, "removeFromRelatedRecords", type, rel.name))
                    routes.append(_route("PATCH", relationship, "replaceRelatedRecords", type, rel.name))
            else:
                routes.append(_route("GET", related, "findRelatedRecord", type, rel.name))
                if not readonly:
                    routes.append(_route("PATCH", relationship, "replaceRelatedRecord", type, rel.name))

    if not readonly:
        routes.append(_route("PATCH", BATCH_PATH, "batch"))

    return RouteTable(routes)
