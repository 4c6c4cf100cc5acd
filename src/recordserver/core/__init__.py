"""
Core module - schema, records, operations and errors.
"""

from __future__ import annotations

from .errors import (
    ConfigError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    RecordServerError,
    SchemaConfigError,
    UpstreamError,
    ValidationError,
)
from .records import (
    AddRecord,
    AddToRelatedRecords,
    AttributeFilter,
    AttributeSort,
    FindRecord,
    FindRecords,
    FindRelatedRecord,
    FindRelatedRecords,
    Identity,
    Operation,
    QueryExpression,
    Record,
    RemoveFromRelatedRecords,
    RemoveRecord,
    ReplaceRelatedRecord,
    ReplaceRelatedRecords,
    RequestOptions,
    Transform,
    UpdateRecord,
)
from .schema import AttributeDef, ModelDef, RelationshipDef, Schema

__all__ = [
    # Schema
    "AttributeDef",
    "ModelDef",
    "RelationshipDef",
    "Schema",
    # Records
    "Identity",
    "Record",
    "RequestOptions",
    "AttributeFilter",
    "AttributeSort",
    # Operations
    "Operation",
    "AddRecord",
    "UpdateRecord",
    "RemoveRecord",
    "AddToRelatedRecords",
    "RemoveFromRelatedRecords",
    "ReplaceRelatedRecord",
    "ReplaceRelatedRecords",
    "Transform",
    # Queries
    "QueryExpression",
    "FindRecord",
    "FindRecords",
    "FindRelatedRecord",
    "FindRelatedRecords",
    # Errors
    "RecordServerError",
    "RecordNotFoundError",
    "RecordAlreadyExistsError",
    "ValidationError",
    "UpstreamError",
    "SchemaConfigError",
    "ConfigError",
]
