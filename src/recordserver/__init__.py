"""
recordserver - JSON:API and GraphQL servers generated from a record schema.

Usage:
    from recordserver import MemorySource, MemoryPubSub, Schema, ServerSettings, create_app

    schema = Schema.from_file("schema.yaml")
    app = create_app(ServerSettings(source=MemorySource(schema), pubsub=MemoryPubSub()))
"""

from __future__ import annotations

from .core import (
    Identity,
    Record,
    RecordNotFoundError,
    RecordServerError,
    Schema,
    SchemaConfigError,
    UpstreamError,
    ValidationError,
)
from .source import MemorySource, RemoteSource, SQLSource, Source
from .pubsub import MemoryPubSub, PubSub, RedisPubSub
from .jsonapi import JSONAPISerializer, build_routes
from .gql import build_graphql_schema
from .changefeed import ChangeFeed
from .config import AppConfig, ServerSettings, build_server_settings, load_config
from .server import Server
from .api import create_app

__version__ = "0.1.0"

__all__ = [
    # Core
    "Schema",
    "Identity",
    "Record",
    # Errors
    "RecordServerError",
    "RecordNotFoundError",
    "ValidationError",
    "UpstreamError",
    "SchemaConfigError",
    # Sources
    "Source",
    "MemorySource",
    "SQLSource",
    "RemoteSource",
    # Pub/sub
    "PubSub",
    "MemoryPubSub",
    "RedisPubSub",
    "ChangeFeed",
    # Protocols
    "JSONAPISerializer",
    "build_routes",
    "build_graphql_schema",
    # Server
    "AppConfig",
    "ServerSettings",
    "Server",
    "build_server_settings",
    "load_config",
    "create_app",
]
