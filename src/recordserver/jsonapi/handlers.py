"""
JSON:API request handlers.

Every handler is `async (JSONAPIRequest, HandlerContext) -> JSONAPIResponse`.
Handlers translate a normalized request into source queries/updates and never
assign error statuses themselves: exceptions propagate to the error
translator in jsonapi.errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..core.errors import ValidationError
from ..core.records import (
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
    RequestOptions,
    UpdateRecord,
)
from ..source.base import Source
from .serializer import JSONAPISerializer

logger = logging.getLogger(__name__)


@dataclass
class RequestRef:
    type: str
    id: Optional[str] = None
    relationship: Optional[str] = None


@dataclass
class QueryParams:
    filter: dict[str, str] = field(default_factory=dict)
    sort: Optional[str] = None
    include: list[str] = field(default_factory=list)


@dataclass
class JSONAPIRequest:
    """Framework independent request: what the router extracted from HTTP."""
    op: str
    ref: RequestRef
    url: str = ""
    params: QueryParams = field(default_factory=QueryParams)
    document: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def identity(self) -> Identity:
        return Identity(self.ref.type, self.ref.id)

    def options(self) -> RequestOptions:
        return RequestOptions(include=list(self.params.include), headers=dict(self.headers))


@dataclass
class JSONAPIResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[dict[str, Any]] = None


@dataclass
class HandlerContext:
    source: Source
    serializer: JSONAPISerializer


Handler = Callable[[JSONAPIRequest, HandlerContext], Awaitable[JSONAPIResponse]]


# =============================================================================
# Query parameters
# =============================================================================


def build_filters(type: str, params: QueryParams, serializer: JSONAPISerializer) -> list[AttributeFilter]:
    """filter[attr]=value pairs, AND-combined. Unknown attributes are dropped."""
    filters = []
    for key, value in params.filter.items():
        name = "id" if key == "id" else serializer.record_attribute(type, key)
        if name is None:
            continue
        filters.append(AttributeFilter(
            field=name, op="eq", value=serializer.deserialize_query_value(type, name, value)
        ))
    return filters


def build_sort(type: str, params: QueryParams, serializer: JSONAPISerializer) -> list[AttributeSort]:
    """sort=name,-createdAt. Unknown attributes are dropped."""
    sorts = []
    for key in (params.sort or "").split(","):
        key = key.strip()
        if not key:
            continue
        direction = "desc" if key.startswith("-") else "asc"
        key = key.lstrip("-+")
        name = "id" if key == "id" else serializer.record_attribute(type, key)
        if name is not None:
            sorts.append(AttributeSort(field=name, dir=direction))
    return sorts


def _require_document(request: JSONAPIRequest) -> Any:
    if request.document is None:
        raise ValidationError(f"{request.op} requires a request document")
    return request.document


def _resource(request: JSONAPIRequest, context: HandlerContext) -> Record:
    record = context.serializer.deserialize(_require_document(request))
    if not isinstance(record, Record):
        raise ValidationError("Expected a single resource object")
    if record.type != request.ref.type:
        raise ValidationError(
            f"Resource type {context.serializer.resource_type(record.type)!r} does not match "
            f"endpoint type {context.serializer.resource_type(request.ref.type)!r}"
        )
    return record


def _identities(request: JSONAPIRequest, context: HandlerContext) -> list[Identity]:
    linkage = context.serializer.deserialize_linkage(_require_document(request))
    if linkage is None:
        raise ValidationError("Expected resource identifiers")
    return linkage if isinstance(linkage, list) else [linkage]


# =============================================================================
# Handlers
# =============================================================================


async def find_record(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    record = await context.source.query(FindRecord(request.identity), request.options())
    return JSONAPIResponse(200, body=context.serializer.serialize(record))


async def find_records(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    type = request.ref.type
    expression = FindRecords(
        type=type,
        filter=build_filters(type, request.params, context.serializer),
        sort=build_sort(type, request.params, context.serializer),
    )
    records = await context.source.query(expression, request.options())
    return JSONAPIResponse(200, body=context.serializer.serialize(list(records)))


async def find_related_record(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    record = await context.source.query(
        FindRelatedRecord(request.identity, request.ref.relationship), request.options()
    )
    return JSONAPIResponse(200, body=context.serializer.serialize(record))


async def find_related_records(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    rel = context.source.schema.get_relationship(request.ref.type, request.ref.relationship)
    target = rel.targets[0]
    expression = FindRelatedRecords(
        record=request.identity,
        relationship=request.ref.relationship,
        filter=build_filters(target, request.params, context.serializer) if not rel.is_polymorphic else [],
        sort=build_sort(target, request.params, context.serializer) if not rel.is_polymorphic else [],
    )
    records = await context.source.query(expression, request.options())
    return JSONAPIResponse(200, body=context.serializer.serialize(list(records)))


async def add_record(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    record = _resource(request, context)
    context.source.schema.initialize_record(record)
    result = await context.source.update(AddRecord(record), request.options())
    location = f"{request.url.rstrip('/')}/{result.id}"
    return JSONAPIResponse(201, headers={"Location": location}, body=context.serializer.serialize(result))


async def update_record(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    record = _resource(request, context)
    if record.id is None:
        record.id = request.ref.id
    elif record.id != request.ref.id:
        raise ValidationError(f"Resource id {record.id!r} does not match endpoint id {request.ref.id!r}")
    await context.source.update(UpdateRecord(record), request.options())
    return JSONAPIResponse(204)


async def remove_record(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    await context.source.update(RemoveRecord(request.identity), request.options())
    return JSONAPIResponse(204)


async def add_to_related_records(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    # One update per identity; earlier ones stay applied if a later one fails.
    for identity in _identities(request, context):
        await context.source.update(
            AddToRelatedRecords(request.identity, request.ref.relationship, identity), request.options()
        )
    return JSONAPIResponse(204)


async def remove_from_related_records(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    for identity in _identities(request, context):
        await context.source.update(
            RemoveFromRelatedRecords(request.identity, request.ref.relationship, identity), request.options()
        )
    return JSONAPIResponse(204)


async def replace_related_record(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    linkage = context.serializer.deserialize_linkage(_require_document(request))
    if isinstance(linkage, list):
        raise ValidationError("Expected a single resource identifier or null")
    await context.source.update(
        ReplaceRelatedRecord(request.identity, request.ref.relationship, linkage), request.options()
    )
    return JSONAPIResponse(204)


async def replace_related_records(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    linkage = context.serializer.deserialize_linkage(_require_document(request))
    if not isinstance(linkage, list):
        raise ValidationError("Expected an array of resource identifiers")
    await context.source.update(
        ReplaceRelatedRecords(request.identity, request.ref.relationship, linkage), request.options()
    )
    return JSONAPIResponse(204)


async def process_batch_request(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    """
    Apply a list of operations as one transform.

    Ids of added records are assigned before submission so that later
    operations of the same batch can reference them.
    """
    operations = context.serializer.deserialize_operations(_require_document(request))
    for operation in operations:
        if isinstance(operation, AddRecord):
            context.source.schema.initialize_record(operation.record)

    results = await context.source.update(operations, request.options()) if operations else []

    documents = []
    for operation, result in zip(operations, results):
        if isinstance(result, Record):
            documents.append({"data": context.serializer.serialize_record(result)})
        else:
            documents.append({"data": context.serializer.serialize_identity(operation.record)})
    return JSONAPIResponse(200, body={"operations": documents})


HANDLERS: dict[str, Handler] = {
    "findRecord": find_record,
    "findRecords": find_records,
    "findRelatedRecord": find_related_record,
    "findRelatedRecords": find_related_records,
    "addRecord": add_record,
    "updateRecord": update_record,
    "removeRecord": remove_record,
    "addToRelatedRecords": add_to_related_records,
    "removeFromRelatedRecords": remove_from_related_records,
    "replaceRelatedRecord": replace_related_record,
    "replaceRelatedRecords": replace_related_records,
    "batch": process_batch_request,
}


async def process_request(request: JSONAPIRequest, context: HandlerContext) -> JSONAPIResponse:
    """Dispatch a request to the handler registered for its op."""
    handler = HANDLERS.get(request.op)
    if handler is None:
        raise ValueError(f"Unknown JSON:API operation: {request.op}")
    return await handler(request, context)
