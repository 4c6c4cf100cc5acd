"""
FastAPI mounting of the JSON:API route table.

Every route of the table becomes one FastAPI route whose endpoint parses the
HTTP request into a JSONAPIRequest, dispatches it and renders the response.
Exceptions from parsing or handling are translated by jsonapi.errors.
"""

from __future__ import annotations

import json
import logging
import re

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from ..core.errors import ValidationError
from ..jsonapi.errors import handle_error
from ..jsonapi.handlers import JSONAPIRequest, JSONAPIResponse, QueryParams, RequestRef
from ..jsonapi.routes import RouteDefinition
from ..server import Server

logger = logging.getLogger(__name__)

JSONAPI_MEDIA_TYPE = "application/vnd.api+json"

_FILTER_PARAM = re.compile(r"^filter\[([^\]]+)\]$")


async def parse_request(request: Request, route: RouteDefinition) -> JSONAPIRequest:
    filters = {}
    for key, value in request.query_params.multi_items():
        match = _FILTER_PARAM.match(key)
        if match:
            filters[match.group(1)] = value
    include = [name for name in (request.query_params.get("include") or "").split(",") if name]

    raw = await request.body()
    document = None
    if raw.strip():
        try:
            document = json.loads(raw)
        except ValueError:
            raise ValidationError("Request body is not valid JSON") from None

    return JSONAPIRequest(
        op=route.op,
        ref=RequestRef(
            type=route.params.type,
            id=request.path_params.get("id"),
            relationship=route.params.relationship,
        ),
        url=request.url.path,
        params=QueryParams(filter=filters, sort=request.query_params.get("sort"), include=include),
        document=document,
        headers=dict(request.headers),
    )


def render_response(response: JSONAPIResponse) -> Response:
    if response.body is None:
        return Response(status_code=response.status, headers=response.headers)
    return JSONResponse(
        content=response.body,
        status_code=response.status,
        headers=response.headers,
        media_type=JSONAPI_MEDIA_TYPE,
    )


def _endpoint(server: Server, route: RouteDefinition):
    async def endpoint(request: Request) -> Response:
        try:
            jsonapi_request = await parse_request(request, route)
        except ValidationError as e:
            return render_response(await handle_error(server.source, e))
        return render_response(await server.process_request(jsonapi_request))

    endpoint.__name__ = f"{route.op}_{route.params.type or 'all'}"
    return endpoint


def create_jsonapi_router(server: Server) -> APIRouter:
    """
    Create router with every route of the server's route table.

    Usage:
        app.include_router(create_jsonapi_router(server))
    """
    router = APIRouter(tags=["jsonapi"])
    for route in server.routes:
        router.add_api_route(
            route.url,
            _endpoint(server, route),
            methods=[route.method],
            name=f"{route.op}:{route.params.type or 'batch'}:{route.params.relationship or ''}",
        )
    return router
