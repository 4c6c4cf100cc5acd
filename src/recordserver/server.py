"""
Server: one source exposed through JSON:API, GraphQL and the change feed.

The route table and GraphQL schema are derived from the source schema once,
on first use, and reused for every request.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from graphql import GraphQLSchema

from .changefeed import ChangeFeed
from .config import ServerSettings
from .gql.schema import build_graphql_schema, execute_graphql
from .jsonapi.errors import handle_error
from .jsonapi.handlers import HandlerContext, JSONAPIRequest, JSONAPIResponse, process_request
from .jsonapi.routes import RouteTable, build_routes

logger = logging.getLogger(__name__)


class Server:
    """
    Usage:
        server = Server(ServerSettings(source=MemorySource(schema), pubsub=MemoryPubSub()))
        await server.activate()
        response = await server.process_request(request)
        await server.deactivate()
    """

    def __init__(self, settings: ServerSettings):
        self.settings = settings
        self.source = settings.source
        self.schema = settings.source.schema
        self.serializer = settings.serializer_class(self.schema)
        self.pubsub = settings.pubsub
        self.change_feed: Optional[ChangeFeed] = (
            ChangeFeed(self.source, self.pubsub, self.serializer) if self.pubsub is not None else None
        )
        self.context = HandlerContext(source=self.source, serializer=self.serializer)
        self._routes: Optional[RouteTable] = None
        self._graphql_schema: Optional[GraphQLSchema] = None

    # ------------------------------------------------------------------
    # Derived artifacts
    # ------------------------------------------------------------------

    @property
    def routes(self) -> RouteTable:
        if self._routes is None:
            self._routes = build_routes(self.schema, self.serializer, readonly=self.settings.readonly)
            logger.info(f"Built {len(self._routes)} JSON:API routes")
        return self._routes

    @property
    def graphql_schema(self) -> GraphQLSchema:
        if self._graphql_schema is None:
            self._graphql_schema = build_graphql_schema(self.schema)
        return self._graphql_schema

    def schema_document(self) -> dict[str, Any]:
        document = self.schema.to_dict()
        if self.settings.inflections:
            document["inflections"] = self.schema.inflections()
        return document

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def activate(self) -> None:
        """Activate the source, then start publishing its transforms."""
        await self.source.activate()
        if self.pubsub is not None:
            await self.pubsub.start()
        if self.change_feed is not None:
            self.change_feed.attach()

    async def deactivate(self) -> None:
        """Stop publishing, then deactivate the source."""
        if self.change_feed is not None:
            self.change_feed.detach()
        if self.pubsub is not None:
            await self.pubsub.stop()
        await self.source.deactivate()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def process_request(self, request: JSONAPIRequest) -> JSONAPIResponse:
        """Handle a JSON:API request. Errors come back as error responses."""
        try:
            return await process_request(request, self.context)
        except Exception as e:
            return await handle_error(self.source, e)

    async def execute_graphql(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        return await execute_graphql(
            self.graphql_schema,
            self.source,
            query,
            variables=variables,
            operation_name=operation_name,
            headers=headers,
        )
