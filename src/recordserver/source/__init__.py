"""
Record sources.

Provides:
- Source: abstract contract used by the JSON:API and GraphQL layers
- MemorySource: in-process transactional store
- SQLSource: SQLAlchemy async store
- RemoteSource: proxy to another JSON:API server
"""

from __future__ import annotations

from .base import Source, TransformListener
from .memory import MemorySource
from .processor import OperationProcessor, RecordStore
from .remote import RemoteSource
from .sql import SQLSource

__all__ = [
    "Source",
    "TransformListener",
    "OperationProcessor",
    "RecordStore",
    "MemorySource",
    "SQLSource",
    "RemoteSource",
]
