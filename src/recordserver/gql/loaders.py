"""
Per-request batched loaders.

Two loader families, both created lazily and owned by one LoaderRegistry per
GraphQL request:
- records(type): keyed by record id, one FindRecords(ids=...) per batch
- related(type, relationship): keyed by parent id, resolves linkage of all
  parents in the batch through the records() loader of the target type

Root query results prime records(), so nested relationship levels cost at
most one source query per target type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from strawberry.dataloader import DataLoader

from ..core.records import FindRecords, FindRelatedRecord, FindRelatedRecords, Identity, Record, RequestOptions
from ..core.utils import classify
from ..source.base import Source

logger = logging.getLogger(__name__)


class LoaderRegistry:
    """Loader map for one request. Never share it between requests."""

    def __init__(self, source: Source, options: Optional[RequestOptions] = None):
        self.source = source
        self.options = options or RequestOptions()
        self._loaders: dict[str, DataLoader] = {}

    def records(self, type: str) -> DataLoader:
        if type not in self._loaders:
            async def load(ids: list[str]) -> list[Optional[Record]]:
                return await self._load_records(type, ids)
            self._loaders[type] = DataLoader(load_fn=load)
        return self._loaders[type]

    def related(self, type: str, relationship: str) -> DataLoader:
        key = f"{classify(type)}.{relationship}"
        if key not in self._loaders:
            async def load(parent_ids: list[str]) -> list[Any]:
                return await self._load_related(type, relationship, parent_ids)
            self._loaders[key] = DataLoader(load_fn=load)
        return self._loaders[key]

    def prime(self, records: Iterable[Optional[Record]]) -> None:
        for record in records:
            if record is not None:
                self.records(record.type).prime(record.id, record)

    async def _load_records(self, type: str, ids: list[str]) -> list[Optional[Record]]:
        logger.debug(f"Batch loading {len(ids)} {type} records")
        records = await self.source.query(FindRecords(type=type, ids=list(ids)), self.options)
        by_id = {record.id: record for record in records}
        return [by_id.get(id) for id in ids]

    async def _load_related(self, type: str, relationship: str, parent_ids: list[str]) -> list[Any]:
        rel = self.source.schema.get_relationship(type, relationship)
        parents = await self.records(type).load_many(parent_ids)

        linkages: list[Any] = []
        for parent_id, parent in zip(parent_ids, parents):
            if parent is not None and relationship in parent.relationships:
                linkages.append(parent.relationships[relationship])
            else:
                linkages.append(await self._fetch_linkage(Identity(type, parent_id), rel))

        wanted: list[str] = []
        for linkage in linkages:
            for identity in _identities(linkage):
                if identity.id not in wanted:
                    wanted.append(identity.id)
        loaded = await self.records(rel.target).load_many(wanted) if wanted else []
        by_id = {record.id: record for record in loaded if record is not None}

        results: list[Any] = []
        for linkage in linkages:
            if rel.kind == "hasMany":
                results.append([by_id[i.id] for i in _identities(linkage) if i.id in by_id])
            else:
                results.append(by_id.get(linkage.id) if linkage is not None else None)
        return results

    async def _fetch_linkage(self, parent: Identity, rel) -> Any:
        # Sources that do not return linkage with records.
        if rel.kind == "hasMany":
            records = await self.source.query(FindRelatedRecords(parent, rel.name), self.options)
            self.prime(records)
            return [record.identity for record in records]
        record = await self.source.query(FindRelatedRecord(parent, rel.name), self.options)
        self.prime([record])
        return record.identity if record is not None else None


def _identities(linkage: Any) -> list[Identity]:
    if linkage is None:
        return []
    return linkage if isinstance(linkage, list) else [linkage]


@dataclass
class GraphQLContext:
    """Context value handed to every resolver of one GraphQL request."""
    source: Source
    loaders: LoaderRegistry
    options: RequestOptions = field(default_factory=RequestOptions)


def create_context(source: Source, headers: Optional[dict[str, str]] = None) -> GraphQLContext:
    options = RequestOptions(headers=dict(headers or {}))
    return GraphQLContext(source=source, loaders=LoaderRegistry(source, options), options=options)
