"""
GraphQL endpoint.

POST {path} executes {query, variables?, operationName?} and always answers
with the GraphQL envelope {data, errors?}. GET {path} serves GraphiQL.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from ..server import Server
from .playground import get_graphiql_html

logger = logging.getLogger(__name__)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"data": None, "errors": [{"message": message}]}, status_code=400)


def create_graphql_router(server: Server, path: str = "/graphql") -> APIRouter:
    """
    Create router with the GraphQL endpoint.

    The GraphQL schema is built here, so an unsupported schema fails at
    startup rather than on the first request.
    """
    router = APIRouter(tags=["graphql"])
    schema = server.graphql_schema
    logger.info(f"GraphQL schema ready with {len(schema.query_type.fields)} root fields")

    @router.post(path)
    async def graphql_endpoint(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return _bad_request("Request body is not valid JSON")
        if not isinstance(payload, dict) or not isinstance(payload.get("query"), str):
            return _bad_request("Request body must contain a 'query' string")

        result = await server.execute_graphql(
            payload["query"],
            variables=payload.get("variables"),
            operation_name=payload.get("operationName"),
            headers=dict(request.headers),
        )
        return JSONResponse(result)

    @router.get(path, response_class=HTMLResponse)
    async def graphiql():
        return HTMLResponse(get_graphiql_html(endpoint=path))

    return router
