"""
App factory.

Creates a FastAPI application for a Server with:
- CORS middleware
- Health check endpoint
- Schema endpoint, JSON:API routes, GraphQL endpoint and change feed websocket,
  each enabled by ServerSettings
- Lifespan hooks activating and deactivating the server
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import ServerSettings
from ..server import Server
from .graphql import create_graphql_router
from .jsonapi import create_jsonapi_router
from .subscriptions import create_subscription_router

logger = logging.getLogger(__name__)


class HealthcheckLogFilter(logging.Filter):
    """Filter out noisy healthcheck and schema endpoint logs."""

    FILTERED_PATHS = ("/health", "/schema")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for path in self.FILTERED_PATHS:
            if f'"{path}' in message or f" {path} " in message:
                return False
        return True


def _setup_logging_filter():
    """Add filter to uvicorn access logger to suppress healthcheck logs."""
    uvicorn_access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthcheckLogFilter) for f in uvicorn_access.filters):
        uvicorn_access.addFilter(HealthcheckLogFilter())


def create_app(settings: ServerSettings, *, title: str = "recordserver", server: Optional[Server] = None) -> FastAPI:
    """
    Create a FastAPI app serving one source.

    Args:
        settings: Server settings (source, pub/sub, toggles)
        title: OpenAPI title
        server: Prebuilt server (built from settings when omitted)

    Returns:
        Configured FastAPI application; the Server is available as app.state.server
    """
    server = server or Server(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        _setup_logging_filter()
        await server.activate()
        logger.info(f"{title} started")

        yield

        # Shutdown
        await server.deactivate()
        logger.info(f"{title} stopped")

    app = FastAPI(title=title, version="0.1.0", lifespan=lifespan)
    app.state.server = server

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "source": server.source.name, "activated": server.source.activated}

    schema_path = settings.schema_path
    if schema_path:
        @app.get(schema_path)
        async def schema_endpoint():
            return server.schema_document()

    if settings.jsonapi:
        app.include_router(create_jsonapi_router(server))

    if settings.graphql:
        app.include_router(create_graphql_router(server))

    websocket_path = settings.websocket_path
    if websocket_path:
        app.include_router(create_subscription_router(server, websocket_path))

    return app
