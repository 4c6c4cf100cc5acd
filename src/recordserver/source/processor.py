"""
Operation processor shared by the concrete sources.

Applies operations to a RecordStore while keeping relationship linkage
consistent:
- inverse relationships are updated on both sides
- relationship replacement diffs against current state and only touches the
  identities that were added or removed
- removing a record unlinks it everywhere and removes `dependent: remove`
  related records

The store is transactional from the processor's point of view: the owning
source commits it only if every operation of a transform succeeds.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ..core.errors import RecordAlreadyExistsError, RecordNotFoundError, ValidationError
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
from ..core.schema import RelationshipDef, Schema


class RecordStore(Protocol):
    """Minimal storage interface driven by the processor."""

    async def get(self, identity: Identity) -> Optional[Record]:
        """Return a private copy of the stored record (complete linkage) or None."""
        ...

    async def put(self, record: Record) -> None:
        ...

    async def delete(self, identity: Identity) -> None:
        ...


class OperationProcessor:
    """
    Applies operations against a RecordStore.

    Usage:
        processor = OperationProcessor(schema, store)
        results = [await processor.apply(op) for op in transform.operations]
    """

    def __init__(self, schema: Schema, store: RecordStore):
        self.schema = schema
        self.store = store
        self._handlers = {
            AddRecord.op: self._add_record,
            UpdateRecord.op: self._update_record,
            RemoveRecord.op: self._remove_record,
            AddToRelatedRecords.op: self._add_to_related_records,
            RemoveFromRelatedRecords.op: self._remove_from_related_records,
            ReplaceRelatedRecord.op: self._replace_related_record,
            ReplaceRelatedRecords.op: self._replace_related_records,
        }

    async def apply(self, operation: Operation) -> Optional[Record]:
        try:
            handler = self._handlers[operation.op]
        except (AttributeError, KeyError):
            raise ValidationError(f"Unsupported operation: {operation!r}") from None
        return await handler(operation)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def _add_record(self, operation: AddRecord) -> Record:
        record = operation.record
        model = self._model(record.type)
        self.schema.initialize_record(record)
        self._check_attributes(record)

        if await self.store.get(record.identity) is not None:
            raise RecordAlreadyExistsError(record.type, record.id)

        stored = Record(
            type=record.type,
            id=record.id,
            attributes=dict(record.attributes),
            relationships={
                name: [] if rel.kind == "hasMany" else None
                for name, rel in model.relationships.items()
            },
        )
        await self.store.put(stored)

        for name, linkage in record.relationships.items():
            await self._replace(record.identity, name, linkage)

        return await self._require(record.identity)

    async def _update_record(self, operation: UpdateRecord) -> Record:
        record = operation.record
        self._check_attributes(record)

        current = await self._require(record.identity)
        if record.attributes:
            current.attributes.update(record.attributes)
            await self.store.put(current)

        for name, linkage in record.relationships.items():
            await self._replace(record.identity, name, linkage)

        return await self._require(record.identity)

    async def _remove_record(self, operation: RemoveRecord) -> Record:
        identity = Identity(operation.record.type, operation.record.id)
        current = await self._require(identity)
        snapshot = current.copy()

        dependents: list[Identity] = []
        for rel in self.schema.each_relationship(identity.type):
            linked = _as_list(current.relationships.get(rel.name))
            for related in linked:
                await self._unlink(identity, rel.name, related)
            if rel.dependent == "remove":
                dependents.extend(linked)

        await self.store.delete(identity)

        for related in dependents:
            if await self.store.get(related) is not None:
                await self._remove_record(RemoveRecord(related))

        return snapshot

    async def _add_to_related_records(self, operation: AddToRelatedRecords) -> Record:
        self._relationship(operation.record.type, operation.relationship, "hasMany")
        await self._require(operation.record)
        await self._link(operation.record, operation.relationship, operation.related_record)
        return await self._require(operation.record)

    async def _remove_from_related_records(self, operation: RemoveFromRelatedRecords) -> Record:
        self._relationship(operation.record.type, operation.relationship, "hasMany")
        await self._require(operation.record)
        await self._unlink(operation.record, operation.relationship, operation.related_record)
        return await self._require(operation.record)

    async def _replace_related_record(self, operation: ReplaceRelatedRecord) -> Record:
        self._relationship(operation.record.type, operation.relationship, "hasOne")
        await self._require(operation.record)
        await self._replace(operation.record, operation.relationship, operation.related_record)
        return await self._require(operation.record)

    async def _replace_related_records(self, operation: ReplaceRelatedRecords) -> Record:
        self._relationship(operation.record.type, operation.relationship, "hasMany")
        await self._require(operation.record)
        await self._replace(operation.record, operation.relationship, operation.related_records)
        return await self._require(operation.record)

    # ------------------------------------------------------------------
    # Linkage maintenance
    # ------------------------------------------------------------------

    async def _replace(self, owner: Identity, name: str, linkage: Linkage) -> None:
        rel = self._relationship(owner.type, name)

        if rel.kind == "hasOne":
            if isinstance(linkage, list):
                raise ValidationError(f"Relationship {owner.type}.{name} expects a single identity")
            record = await self._require(owner)
            current = record.relationships.get(name)
            if linkage is None:
                if current is not None:
                    await self._unlink(owner, name, current)
            else:
                await self._link(owner, name, linkage)
            return

        if linkage is None or not isinstance(linkage, list):
            raise ValidationError(f"Relationship {owner.type}.{name} expects a list of identities")

        desired: list[Identity] = []
        for identity in linkage:
            if identity not in desired:
                desired.append(identity)

        record = await self._require(owner)
        current = _as_list(record.relationships.get(name))
        for identity in current:
            if identity not in desired:
                await self._unlink(owner, name, identity)
        for identity in desired:
            if identity not in current:
                await self._link(owner, name, identity)

        # Keep the requested order.
        record = await self._require(owner)
        if _as_list(record.relationships.get(name)) != desired:
            record.relationships[name] = desired
            await self.store.put(record)

    async def _link(self, owner: Identity, name: str, related: Identity) -> None:
        rel = self._relationship(owner.type, name)
        if related.type not in rel.targets:
            raise ValidationError(
                f"Relationship {owner.type}.{name} cannot reference type {related.type!r}"
            )
        await self._require(related)
        record = await self._require(owner)

        if rel.kind == "hasMany":
            current = _as_list(record.relationships.get(name))
            if related in current:
                return
            record.relationships[name] = current + [related]
            await self.store.put(record)
        else:
            current = record.relationships.get(name)
            if current == related:
                return
            if current is not None:
                await self._unlink(owner, name, current)
                record = await self._require(owner)
            record.relationships[name] = related
            await self.store.put(record)

        if rel.inverse:
            await self._link(related, rel.inverse, owner)

    async def _unlink(self, owner: Identity, name: str, related: Identity) -> None:
        record = await self.store.get(owner)
        if record is None:
            return
        rel = self._relationship(owner.type, name)

        if rel.kind == "hasMany":
            current = _as_list(record.relationships.get(name))
            if related not in current:
                return
            record.relationships[name] = [i for i in current if i != related]
        else:
            if record.relationships.get(name) != related:
                return
            record.relationships[name] = None
        await self.store.put(record)

        if rel.inverse:
            await self._unlink(related, rel.inverse, owner)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _model(self, type: str):
        if not self.schema.has_model(type):
            raise ValidationError(f"Unknown record type: {type!r}")
        return self.schema.models[type]

    def _relationship(self, type: str, name: str, kind: Optional[str] = None) -> RelationshipDef:
        rel = self._model(type).relationships.get(name)
        if rel is None:
            raise ValidationError(f"Unknown relationship: {type}.{name}")
        if kind is not None and rel.kind != kind:
            raise ValidationError(f"Relationship {type}.{name} is {rel.kind}, not {kind}")
        return rel

    def _check_attributes(self, record: Record) -> None:
        model = self._model(record.type)
        unknown = [name for name in record.attributes if name not in model.attributes]
        if unknown:
            raise ValidationError(
                f"Unknown attributes for {record.type}", [f"{record.type}.{name}" for name in unknown]
            )
        unknown = [name for name in record.relationships if name not in model.relationships]
        if unknown:
            raise ValidationError(
                f"Unknown relationships for {record.type}", [f"{record.type}.{name}" for name in unknown]
            )

    async def _require(self, identity: Identity) -> Record:
        record = await self.store.get(identity)
        if record is None:
            raise RecordNotFoundError(identity.type, identity.id)
        return record


def _as_list(linkage: Any) -> list[Identity]:
    if linkage is None:
        return []
    if isinstance(linkage, list):
        return list(linkage)
    return [linkage]
