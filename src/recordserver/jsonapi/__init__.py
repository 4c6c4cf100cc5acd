"""
JSON:API layer - codec, route table, handlers and error translation.
"""

from __future__ import annotations

from .serializer import JSONAPISerializer
from .handlers import (
    HANDLERS,
    HandlerContext,
    JSONAPIRequest,
    JSONAPIResponse,
    QueryParams,
    RequestRef,
    process_batch_request,
    process_request,
)
from .routes import RouteDefinition, RouteParams, RouteTable, build_routes
from .errors import handle_error, status_for

__all__ = [
    # Codec
    "JSONAPISerializer",
    # Routes
    "RouteDefinition",
    "RouteParams",
    "RouteTable",
    "build_routes",
    # Handlers
    "HANDLERS",
    "HandlerContext",
    "JSONAPIRequest",
    "JSONAPIResponse",
    "QueryParams",
    "RequestRef",
    "process_request",
    "process_batch_request",
    # Errors
    "handle_error",
    "status_for",
]
