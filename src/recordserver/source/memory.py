"""
In-memory record source.

Each transform runs against a copy-on-write overlay which is merged into the
store only when every operation succeeded. A transform never suspends between
reading and committing, so transforms are serialized by the event loop.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from ..core.errors import RecordNotFoundError, ValidationError
from ..core.records import (
    AddRecord,
    FindRecord,
    FindRecords,
    FindRelatedRecord,
    FindRelatedRecords,
    Identity,
    QueryExpression,
    Record,
    RequestOptions,
    Transform,
)
from ..core.schema import Schema
from .base import Source
from .processor import OperationProcessor
from .query import filter_records, sort_records

logger = logging.getLogger(__name__)


class _Overlay:
    """Transaction view over the store. Changes stay local until commit()."""

    def __init__(self, data: dict[str, dict[str, Record]]):
        self._data = data
        self._changes: dict[Identity, Optional[Record]] = {}

    async def get(self, identity: Identity) -> Optional[Record]:
        if identity in self._changes:
            record = self._changes[identity]
        else:
            record = self._data.get(identity.type, {}).get(identity.id)
        return record.copy() if record is not None else None

    async def put(self, record: Record) -> None:
        self._changes[record.identity] = record.copy()

    async def delete(self, identity: Identity) -> None:
        self._changes[identity] = None

    def commit(self) -> None:
        for identity, record in self._changes.items():
            records = self._data.setdefault(identity.type, {})
            if record is None:
                records.pop(identity.id, None)
            else:
                records[identity.id] = record


class MemorySource(Source):
    """
    Source keeping every record in process memory.

    Usage:
        source = MemorySource(schema)
        await source.activate()
        await source.update(AddRecord(Record("planet", attributes={"name": "Earth"})))
    """

    def __init__(self, schema: Schema, name: Optional[str] = None, records: Iterable[Record] = ()):
        super().__init__(schema, name)
        self._data: dict[str, dict[str, Record]] = {type: {} for type in schema.models}
        self._seed = list(records)

    async def _activate(self) -> None:
        if self._seed:
            await self._update(Transform([AddRecord(r) for r in self._seed]), RequestOptions())
            logger.info(f"Seeded {len(self._seed)} records into '{self.name}'")
            self._seed = []

    async def _update(self, transform: Transform, options: RequestOptions) -> list[Any]:
        overlay = _Overlay(self._data)
        processor = OperationProcessor(self.schema, overlay)
        results = [await processor.apply(operation) for operation in transform.operations]
        overlay.commit()
        return results

    async def _query(self, expression: QueryExpression, options: RequestOptions) -> Any:
        if isinstance(expression, FindRecord):
            return self._require(expression.record).copy()

        if isinstance(expression, FindRecords):
            records = self._records(expression.type)
            if expression.ids is not None:
                wanted = set(expression.ids)
                records = [r for r in records if r.id in wanted]
            records = filter_records(records, expression.filter)
            return [r.copy() for r in sort_records(records, expression.sort)]

        if isinstance(expression, FindRelatedRecord):
            owner = self._require(expression.record)
            self._check_relationship(owner.type, expression.relationship, "hasOne")
            related = owner.relationships.get(expression.relationship)
            if related is None:
                return None
            record = self._get(related)
            return record.copy() if record is not None else None

        if isinstance(expression, FindRelatedRecords):
            owner = self._require(expression.record)
            self._check_relationship(owner.type, expression.relationship, "hasMany")
            records = [
                r for r in (self._get(i) for i in owner.relationships.get(expression.relationship) or [])
                if r is not None
            ]
            records = filter_records(records, expression.filter)
            return [r.copy() for r in sort_records(records, expression.sort)]

        raise ValidationError(f"Unsupported query expression: {expression!r}")

    def _records(self, type: str) -> list[Record]:
        if type not in self._data:
            raise ValidationError(f"Unknown record type: {type!r}")
        return list(self._data[type].values())

    def _get(self, identity: Identity) -> Optional[Record]:
        return self._data.get(identity.type, {}).get(identity.id)

    def _require(self, identity: Identity) -> Record:
        record = self._get(identity)
        if record is None:
            raise RecordNotFoundError(identity.type, identity.id)
        return record

    def _check_relationship(self, type: str, name: str, kind: str) -> None:
        rel = self.schema.get_relationship(type, name)
        if rel is None:
            raise ValidationError(f"Unknown relationship: {type}.{name}")
        if rel.kind != kind:
            raise ValidationError(f"Relationship {type}.{name} is {rel.kind}, not {kind}")
