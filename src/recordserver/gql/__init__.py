"""
GraphQL layer - schema generation, scalars and per-request loaders.
"""

from __future__ import annotations

from .loaders import GraphQLContext, LoaderRegistry, create_context
from .scalars import GraphQLDate, GraphQLDateTime
from .schema import SCALAR_TYPES, build_graphql_schema, execute_graphql

__all__ = [
    "GraphQLContext",
    "LoaderRegistry",
    "create_context",
    "GraphQLDate",
    "GraphQLDateTime",
    "SCALAR_TYPES",
    "build_graphql_schema",
    "execute_graphql",
]
