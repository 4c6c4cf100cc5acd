"""
HTTP surface - FastAPI app factory and routers.
"""

from __future__ import annotations

from .app import HealthcheckLogFilter, create_app
from .graphql import create_graphql_router
from .jsonapi import JSONAPI_MEDIA_TYPE, create_jsonapi_router
from .playground import get_graphiql_html
from .subscriptions import create_subscription_router

__all__ = [
    "create_app",
    "HealthcheckLogFilter",
    "create_jsonapi_router",
    "create_graphql_router",
    "create_subscription_router",
    "get_graphiql_html",
    "JSONAPI_MEDIA_TYPE",
]
