"""
Pydantic models for JSON:API wire documents.

These validate the structure of incoming documents; the serializer maps the
validated models onto Records and Operations.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ResourceIdentifier(BaseModel):
    """{"type": "planets", "id": "1"}"""
    type: str
    id: str


class RelationshipObject(BaseModel):
    """
    {"data": {...}} / {"data": [...]} / {"data": null}

    A relationship object without a `data` member carries no linkage.
    """
    data: Union[List[ResourceIdentifier], ResourceIdentifier, None] = None

    @property
    def has_data(self) -> bool:
        return "data" in self.model_fields_set


class ResourceObject(BaseModel):
    type: str
    id: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None
    relationships: Optional[Dict[str, RelationshipObject]] = None


class ResourceDocument(BaseModel):
    """Primary document: {"data": resource | [resources] | null}"""
    data: Union[List[ResourceObject], ResourceObject, None] = None


class RelationshipDocument(BaseModel):
    """Body of /relationships/ routes: {"data": identifier | [identifiers] | null}"""
    data: Union[List[ResourceIdentifier], ResourceIdentifier, None] = None


class OperationRef(BaseModel):
    type: str
    id: Optional[str] = None
    relationship: Optional[str] = None


class ResourceOperation(BaseModel):
    """
    One entry of a batch request.

    Example:
        {"op": "add", "ref": {"type": "moons", "id": "m1"},
         "data": {"type": "moons", "id": "m1", "attributes": {"name": "Io"}}}
    """
    op: Literal["add", "update", "remove"]
    ref: OperationRef
    data: Any = None

    @property
    def has_data(self) -> bool:
        return "data" in self.model_fields_set


class OperationsDocument(BaseModel):
    operations: List[ResourceOperation] = Field(default_factory=list)


class ErrorObject(BaseModel):
    id: str
    title: str
    detail: str = ""
    code: str = ""


class ErrorsDocument(BaseModel):
    errors: List[ErrorObject]
