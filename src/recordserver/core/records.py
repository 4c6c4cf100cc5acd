"""
Internal record representation, operations and query expressions.

Provides:
- Identity / Record: the request-scoped view of stored data
- Operation variants applied by Source.update() inside a Transform
- Query expressions accepted by Source.query()
- AttributeFilter / AttributeSort normalized query terms
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel


@dataclass(frozen=True)
class Identity:
    """Record identity: (type, id)."""
    type: str
    id: str


Linkage = Union[Identity, list[Identity], None]


@dataclass
class Record:
    """
    A record of a schema type.

    `relationships` maps property -> Identity (hasOne), list[Identity] (hasMany)
    or None. A property missing from the map means "not specified", which is
    different from an explicit None / [].
    """
    type: str
    id: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: dict[str, Linkage] = field(default_factory=dict)

    @property
    def identity(self) -> Identity:
        return Identity(self.type, self.id)

    def copy(self) -> Record:
        return Record(
            type=self.type,
            id=self.id,
            attributes=copy.deepcopy(self.attributes),
            relationships={
                name: list(value) if isinstance(value, list) else value
                for name, value in self.relationships.items()
            },
        )


# --- Normalized query terms ---

class AttributeFilter(BaseModel):
    """
    Normalized filter representation.

    Input: filter[name]=Earth
    Normalized: AttributeFilter(field="name", op="eq", value="Earth")
    """
    field: str
    op: Literal["eq", "ne", "in", "not_in"] = "eq"
    value: Any = None


class AttributeSort(BaseModel):
    """
    Normalized sort representation.

    Input: "-name"
    Normalized: AttributeSort(field="name", dir="desc")
    """
    field: str
    dir: Literal["asc", "desc"] = "asc"


# --- Operations ---

@dataclass
class AddRecord:
    record: Record
    op: ClassVar[str] = "addRecord"


@dataclass
class UpdateRecord:
    record: Record
    op: ClassVar[str] = "updateRecord"


@dataclass
class RemoveRecord:
    record: Identity
    op: ClassVar[str] = "removeRecord"


@dataclass
class AddToRelatedRecords:
    record: Identity
    relationship: str
    related_record: Identity
    op: ClassVar[str] = "addToRelatedRecords"


@dataclass
class RemoveFromRelatedRecords:
    record: Identity
    relationship: str
    related_record: Identity
    op: ClassVar[str] = "removeFromRelatedRecords"


@dataclass
class ReplaceRelatedRecord:
    record: Identity
    relationship: str
    related_record: Optional[Identity]
    op: ClassVar[str] = "replaceRelatedRecord"


@dataclass
class ReplaceRelatedRecords:
    record: Identity
    relationship: str
    related_records: list[Identity]
    op: ClassVar[str] = "replaceRelatedRecords"


Operation = Union[
    AddRecord,
    UpdateRecord,
    RemoveRecord,
    AddToRelatedRecords,
    RemoveFromRelatedRecords,
    ReplaceRelatedRecord,
    ReplaceRelatedRecords,
]


@dataclass
class Transform:
    """An ordered list of operations applied atomically."""
    operations: list[Operation]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    options: dict[str, Any] = field(default_factory=dict)


# --- Query expressions ---

@dataclass
class FindRecord:
    record: Identity
    op: ClassVar[str] = "findRecord"


@dataclass
class FindRecords:
    type: str
    filter: list[AttributeFilter] = field(default_factory=list)
    sort: list[AttributeSort] = field(default_factory=list)
    ids: Optional[list[str]] = None  # restrict to these ids, missing ones are skipped
    op: ClassVar[str] = "findRecords"


@dataclass
class FindRelatedRecord:
    record: Identity
    relationship: str
    op: ClassVar[str] = "findRelatedRecord"


@dataclass
class FindRelatedRecords:
    record: Identity
    relationship: str
    filter: list[AttributeFilter] = field(default_factory=list)
    sort: list[AttributeSort] = field(default_factory=list)
    op: ClassVar[str] = "findRelatedRecords"


QueryExpression = Union[FindRecord, FindRecords, FindRelatedRecord, FindRelatedRecords]


@dataclass
class RequestOptions:
    """Options passed opaquely from the network layer to a source."""
    include: list[str] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
