"""
JSON:API serializer.

Maps between internal Records (camelCase properties, singular types) and wire
resource documents (dash-case members, plural dash-case types):

    Record("typedModel", "1", {"someText": "a"})
        <-> {"type": "typed-models", "id": "1", "attributes": {"some-text": "a"}}

Also maps the batch wire format ({op, ref, data}) to Operations and back.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ValidationError
from ..core.records import (
    AddRecord,
    AddToRelatedRecords,
    Identity,
    Linkage,
    Operation,
    Record,
    RemoveFromRelatedRecords,
    RemoveRecord,
    ReplaceRelatedRecord,
    ReplaceRelatedRecords,
    UpdateRecord,
)
from ..core.schema import Schema
from ..core.utils import camelize, dasherize
from .documents import (
    OperationsDocument,
    RelationshipDocument,
    ResourceDocument,
    ResourceIdentifier,
    ResourceObject,
    ResourceOperation,
)


def _validate(model, document: Any):
    try:
        return model.model_validate(document)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid document",
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from None


def _parse_datetime(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _member_name(members: dict[str, Any], resource_name: str) -> Optional[str]:
    # camelize() cannot restore acronyms (some-http-value), so fall back to
    # matching the dasherized form of each known member.
    name = camelize(resource_name)
    if name in members:
        return name
    for member in members:
        if dasherize(member) == resource_name:
            return member
    return None


class JSONAPISerializer:
    """
    Bidirectional codec between Records and JSON:API documents.

    Usage:
        serializer = JSONAPISerializer(schema)
        document = serializer.serialize(record)          # {"data": {...}}
        record = serializer.deserialize(document)        # Record
    """

    def __init__(self, schema: Schema):
        self.schema = schema

    # ------------------------------------------------------------------
    # Names
    # ------------------------------------------------------------------

    def resource_type(self, type: str) -> str:
        return dasherize(self.schema.plurals.get(type) or self.schema.pluralize(type))

    def record_type(self, resource_type: str) -> str:
        return self.schema.singularize(camelize(resource_type))

    def resource_attribute(self, type: str, attribute: str) -> str:
        return dasherize(attribute)

    def record_attribute(self, type: str, resource_attribute: str) -> Optional[str]:
        """Internal attribute name, or None when the type has no such attribute."""
        model = self.schema.models.get(type)
        return _member_name(model.attributes if model else {}, resource_attribute)

    def resource_relationship(self, type: str, relationship: str) -> str:
        return dasherize(relationship)

    def record_relationship(self, type: str, resource_relationship: str) -> Optional[str]:
        model = self.schema.models.get(type)
        return _member_name(model.relationships if model else {}, resource_relationship)

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def serialize_attribute_value(self, type: str, attribute: str, value: Any) -> Any:
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value

    def deserialize_attribute_value(self, type: str, attribute: str, value: Any) -> Any:
        if value is None:
            return None
        kind = self.schema.models[type].attributes[attribute].kind
        try:
            if kind == "date" and isinstance(value, str):
                return date.fromisoformat(value)
            if kind == "datetime" and isinstance(value, str):
                return _parse_datetime(value)
        except ValueError:
            raise ValidationError(f"Invalid {kind} value for {type}.{attribute}: {value!r}") from None

        valid = {
            "string": isinstance(value, str),
            "number": isinstance(value, (int, float)) and not isinstance(value, bool),
            "boolean": isinstance(value, bool),
            "date": isinstance(value, date) and not isinstance(value, datetime),
            "datetime": isinstance(value, datetime),
        }[kind]
        if not valid:
            raise ValidationError(f"Invalid {kind} value for {type}.{attribute}: {value!r}")
        return value

    def deserialize_query_value(self, type: str, attribute: str, value: str) -> Any:
        """Coerce a query string value (filter[attr]=value) to the attribute kind."""
        if attribute == "id":
            return value
        kind = self.schema.models[type].attributes[attribute].kind
        try:
            if kind == "number":
                number = float(value)
                return int(number) if number.is_integer() else number
            if kind == "boolean":
                if value.lower() not in ("true", "false"):
                    raise ValueError(value)
                return value.lower() == "true"
            if kind == "date":
                return date.fromisoformat(value)
            if kind == "datetime":
                return _parse_datetime(value)
        except ValueError:
            raise ValidationError(f"Invalid {kind} filter value for {type}.{attribute}: {value!r}") from None
        return value

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize_identity(self, identity: Identity) -> dict[str, str]:
        return {"type": self.resource_type(identity.type), "id": identity.id}

    def serialize_linkage(self, linkage: Linkage) -> Any:
        if linkage is None:
            return None
        if isinstance(linkage, list):
            return [self.serialize_identity(i) for i in linkage]
        return self.serialize_identity(linkage)

    def serialize_record(self, record: Record) -> dict[str, Any]:
        resource: dict[str, Any] = {"type": self.resource_type(record.type), "id": record.id}
        if record.attributes:
            resource["attributes"] = {
                self.resource_attribute(record.type, name): self.serialize_attribute_value(record.type, name, value)
                for name, value in record.attributes.items()
            }
        if record.relationships:
            resource["relationships"] = {
                self.resource_relationship(record.type, name): {"data": self.serialize_linkage(linkage)}
                for name, linkage in record.relationships.items()
            }
        return resource

    def serialize(self, data: Union[Record, list[Record], None]) -> dict[str, Any]:
        """Primary document. A list always serializes as an array, even when empty."""
        if data is None:
            return {"data": None}
        if isinstance(data, list):
            return {"data": [self.serialize_record(r) for r in data]}
        return {"data": self.serialize_record(data)}

    # ------------------------------------------------------------------
    # Deserialization
    # ------------------------------------------------------------------

    def deserialize(self, document: Any) -> Union[Record, list[Record], None]:
        parsed = _validate(ResourceDocument, document)
        if "data" not in parsed.model_fields_set:
            raise ValidationError("Document has no primary data")
        if parsed.data is None:
            return None
        if isinstance(parsed.data, list):
            return [self.deserialize_resource(r) for r in parsed.data]
        return self.deserialize_resource(parsed.data)

    def deserialize_resource(self, resource: Union[ResourceObject, dict[str, Any]]) -> Record:
        if isinstance(resource, dict):
            resource = _validate(ResourceObject, resource)
        type = self.record_type(resource.type)
        if not self.schema.has_model(type):
            raise ValidationError(f"Unknown resource type: {resource.type!r}")

        record = Record(type=type, id=resource.id)
        for key, value in (resource.attributes or {}).items():
            name = self.record_attribute(type, key)
            if name is not None:
                record.attributes[name] = self.deserialize_attribute_value(type, name, value)
        for key, relationship in (resource.relationships or {}).items():
            name = self.record_relationship(type, key)
            if name is not None and relationship.has_data:
                record.relationships[name] = self._linkage(relationship.data)
        return record

    def deserialize_identity(self, identifier: Union[ResourceIdentifier, dict[str, Any]]) -> Identity:
        if isinstance(identifier, dict):
            identifier = _validate(ResourceIdentifier, identifier)
        return Identity(self.record_type(identifier.type), identifier.id)

    def deserialize_linkage(self, document: Any) -> Linkage:
        """Linkage from a relationship document: {"data": identifier | [identifiers] | null}."""
        parsed = _validate(RelationshipDocument, document)
        if "data" not in parsed.model_fields_set:
            raise ValidationError("Relationship document has no data")
        return self._linkage(parsed.data)

    def _linkage(self, data: Any) -> Linkage:
        if data is None:
            return None
        if isinstance(data, list):
            return [self.deserialize_identity(i) for i in data]
        return self.deserialize_identity(data)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def deserialize_operations(self, document: Any) -> list[Operation]:
        parsed = _validate(OperationsDocument, document)
        return [self.deserialize_operation(op) for op in parsed.operations]

    def deserialize_operation(self, operation: Union[ResourceOperation, dict[str, Any]]) -> Operation:
        if isinstance(operation, dict):
            operation = _validate(ResourceOperation, operation)
        ref = operation.ref
        type = self.record_type(ref.type)
        if not self.schema.has_model(type):
            raise ValidationError(f"Unknown resource type: {ref.type!r}")

        if ref.relationship is None:
            if operation.op == "remove":
                if not ref.id:
                    raise ValidationError("remove operation requires ref.id")
                return RemoveRecord(Identity(type, ref.id))

            if not isinstance(operation.data, dict):
                raise ValidationError(f"{operation.op} operation requires a resource in data")
            record = self.deserialize_resource(operation.data)
            if record.type != type:
                raise ValidationError(f"Resource type {operation.data.get('type')!r} does not match ref.type")
            if record.id is None:
                record.id = ref.id
            elif ref.id is not None and record.id != ref.id:
                raise ValidationError("Resource id does not match ref.id")

            if operation.op == "add":
                return AddRecord(record)
            if record.id is None:
                raise ValidationError("update operation requires an id")
            return UpdateRecord(record)

        if not ref.id:
            raise ValidationError("Relationship operations require ref.id")
        relationship = self.record_relationship(type, ref.relationship)
        if relationship is None:
            raise ValidationError(f"Unknown relationship: {ref.type}.{ref.relationship}")
        owner = Identity(type, ref.id)

        if operation.op in ("add", "remove"):
            if not isinstance(operation.data, dict):
                raise ValidationError(f"{operation.op} relationship operation requires one identifier")
            related = self.deserialize_identity(operation.data)
            if operation.op == "add":
                return AddToRelatedRecords(owner, relationship, related)
            return RemoveFromRelatedRecords(owner, relationship, related)

        if not operation.has_data:
            raise ValidationError("update relationship operation requires data")
        linkage = self._linkage(operation.data)
        if isinstance(linkage, list):
            return ReplaceRelatedRecords(owner, relationship, linkage)
        return ReplaceRelatedRecord(owner, relationship, linkage)

    def serialize_operation(self, operation: Operation) -> dict[str, Any]:
        if isinstance(operation, (AddRecord, UpdateRecord)):
            record = operation.record
            return {
                "op": "add" if isinstance(operation, AddRecord) else "update",
                "ref": self.serialize_identity(record.identity),
                "data": self.serialize_record(record),
            }
        if isinstance(operation, RemoveRecord):
            return {"op": "remove", "ref": self.serialize_identity(operation.record)}

        ref = self.serialize_identity(operation.record)
        ref["relationship"] = self.resource_relationship(operation.record.type, operation.relationship)
        if isinstance(operation, AddToRelatedRecords):
            return {"op": "add", "ref": ref, "data": self.serialize_identity(operation.related_record)}
        if isinstance(operation, RemoveFromRelatedRecords):
            return {"op": "remove", "ref": ref, "data": self.serialize_identity(operation.related_record)}
        if isinstance(operation, ReplaceRelatedRecord):
            return {"op": "update", "ref": ref, "data": self.serialize_linkage(operation.related_record)}
        if isinstance(operation, ReplaceRelatedRecords):
            return {"op": "update", "ref": ref, "data": self.serialize_linkage(operation.related_records)}
        raise ValueError(f"Unsupported operation: {operation!r}")

    def serialize_operations(self, operations: list[Operation]) -> list[dict[str, Any]]:
        return [self.serialize_operation(op) for op in operations]
