"""
SQL record source on SQLAlchemy async Core.

Tables are generated from the schema:
- one table per record type (`id` primary key plus one column per attribute)
- hasOne relationships are a `<relationship>_id` column on the owning table
- hasMany relationships whose inverse is hasOne are read from that column
- other hasMany relationships use a join table shared by both sides

Each transform runs inside one database transaction (engine.begin()).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    MetaData,
    String,
    Table,
    Text,
    delete,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..core.errors import RecordNotFoundError, SchemaConfigError, ValidationError
from ..core.records import (
    AttributeFilter,
    AttributeSort,
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
from ..core.schema import RelationshipDef, Schema
from ..core.utils import underscore
from .base import Source
from .processor import OperationProcessor

logger = logging.getLogger(__name__)


COLUMN_TYPES = {
    "string": Text,
    "number": Float,
    "boolean": Boolean,
    "date": Date,
    "datetime": DateTime,
}


@dataclass
class _ForeignKey:
    column: str


@dataclass
class _Derived:
    """hasMany read from the inverse hasOne column on the target table."""
    target: str
    column: str


@dataclass
class _Join:
    table: Table
    owner_column: str
    related_column: str


class SQLTables:
    """Tables and relationship storage derived from a schema."""

    def __init__(self, schema: Schema, metadata: Optional[MetaData] = None):
        self.schema = schema
        self.metadata = metadata or MetaData()
        self.tables: dict[str, Table] = {}
        self.storage: dict[tuple[str, str], Union[_ForeignKey, _Derived, _Join]] = {}

        for type_name, model in schema.models.items():
            for rel in model.relationships.values():
                if rel.is_polymorphic:
                    raise SchemaConfigError(
                        f"Polymorphic relationship {type_name}.{rel.name} is not supported by SQLSource"
                    )

            columns = [Column("id", String(255), primary_key=True)]
            for attr in model.attributes.values():
                columns.append(Column(underscore(attr.name), COLUMN_TYPES[attr.kind], nullable=True))
            for rel in model.relationships.values():
                if rel.kind == "hasOne":
                    column = f"{underscore(rel.name)}_id"
                    columns.append(Column(column, String(255), nullable=True, index=True))
                    self.storage[(type_name, rel.name)] = _ForeignKey(column)
            self.tables[type_name] = Table(underscore(schema.plurals[type_name]), self.metadata, *columns)

        for type_name, model in schema.models.items():
            for rel in model.relationships.values():
                if rel.kind == "hasMany":
                    self.storage[(type_name, rel.name)] = self._many_storage(type_name, rel)

    def _many_storage(self, type_name: str, rel: RelationshipDef) -> Union[_Derived, _Join]:
        inverse = self.schema.inverse_of(type_name, rel.name)
        if inverse is not None and inverse.kind == "hasOne":
            return _Derived(target=rel.target, column=f"{underscore(inverse.name)}_id")

        owner_column = f"{underscore(type_name)}_{underscore(rel.name)}_id"
        if inverse is None:
            table = Table(
                f"{underscore(type_name)}_{underscore(rel.name)}",
                self.metadata,
                Column(owner_column, String(255), nullable=False, index=True),
                Column("related_id", String(255), nullable=False),
            )
            return _Join(table, owner_column, "related_id")

        related_column = f"{underscore(rel.target)}_{underscore(inverse.name)}_id"
        if related_column == owner_column:
            raise SchemaConfigError(
                f"Relationship {type_name}.{rel.name} cannot be its own inverse in SQLSource"
            )
        sides = sorted([(type_name, rel.name), (rel.target, inverse.name)])
        name = "__".join(f"{underscore(t)}_{underscore(r)}" for t, r in sides)
        table = self.metadata.tables.get(name)
        if table is None:
            table = Table(
                name,
                self.metadata,
                Column(owner_column, String(255), nullable=False, index=True),
                Column(related_column, String(255), nullable=False, index=True),
            )
        return _Join(table, owner_column, related_column)

    def column(self, type: str, field: str):
        table = self.tables[type]
        if field == "id":
            return table.c.id
        if not self.schema.has_attribute(type, field):
            raise ValidationError(f"Unknown attribute: {type}.{field}")
        return table.c[underscore(field)]


def _from_column(kind: str, value: Any) -> Any:
    # Integral numbers come back from Float columns as int.
    if kind == "number" and isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class _RecordReader:
    """Builds Records from rows, loading linkage with one query per relationship."""

    def __init__(self, tables: SQLTables, conn: AsyncConnection):
        self.tables = tables
        self.schema = tables.schema
        self.conn = conn

    async def read(self, type: str, rows: list[Any]) -> list[Record]:
        model = self.schema.models[type]
        records = []
        for row in rows:
            mapping = row._mapping
            attributes = {}
            for attr in model.attributes.values():
                value = mapping[underscore(attr.name)]
                if value is not None:
                    attributes[attr.name] = _from_column(attr.kind, value)
            relationships: dict[str, Any] = {}
            for rel in model.relationships.values():
                storage = self.tables.storage[(type, rel.name)]
                if isinstance(storage, _ForeignKey):
                    related_id = mapping[storage.column]
                    relationships[rel.name] = Identity(rel.target, related_id) if related_id else None
                else:
                    relationships[rel.name] = []
            records.append(Record(type=type, id=mapping["id"], attributes=attributes, relationships=relationships))

        ids = [r.id for r in records]
        if not ids:
            return records

        by_id = {r.id: r for r in records}
        for rel in model.relationships.values():
            storage = self.tables.storage[(type, rel.name)]
            if isinstance(storage, _Derived):
                target = self.tables.tables[storage.target]
                fk = target.c[storage.column]
                stmt = select(target.c.id, fk).where(fk.in_(ids))
            elif isinstance(storage, _Join):
                owner = storage.table.c[storage.owner_column]
                stmt = select(storage.table.c[storage.related_column], owner).where(owner.in_(ids))
            else:
                continue
            result = await self.conn.execute(stmt)
            for related_id, owner_id in result.all():
                by_id[owner_id].relationships[rel.name].append(Identity(rel.target, related_id))
        return records


class _SQLStore:
    """RecordStore bound to one open transaction."""

    def __init__(self, tables: SQLTables, conn: AsyncConnection):
        self.tables = tables
        self.schema = tables.schema
        self.conn = conn
        self.reader = _RecordReader(tables, conn)

    async def get(self, identity: Identity) -> Optional[Record]:
        table = self.tables.tables.get(identity.type)
        if table is None:
            return None
        result = await self.conn.execute(select(table).where(table.c.id == identity.id))
        rows = result.all()
        if not rows:
            return None
        return (await self.reader.read(identity.type, rows))[0]

    async def put(self, record: Record) -> None:
        model = self.schema.models[record.type]
        table = self.tables.tables[record.type]
        values: dict[str, Any] = {
            underscore(attr.name): record.attributes.get(attr.name) for attr in model.attributes.values()
        }
        for rel in model.relationships.values():
            storage = self.tables.storage[(record.type, rel.name)]
            if isinstance(storage, _ForeignKey):
                linkage = record.relationships.get(rel.name)
                values[storage.column] = linkage.id if linkage is not None else None

        exists = await self.conn.execute(select(table.c.id).where(table.c.id == record.id))
        if exists.first() is None:
            await self.conn.execute(insert(table).values(id=record.id, **values))
        else:
            await self.conn.execute(update(table).where(table.c.id == record.id).values(**values))

        for rel in model.relationships.values():
            storage = self.tables.storage[(record.type, rel.name)]
            if not isinstance(storage, _Join) or rel.name not in record.relationships:
                continue
            owner = storage.table.c[storage.owner_column]
            await self.conn.execute(delete(storage.table).where(owner == record.id))
            related = record.relationships.get(rel.name) or []
            if related:
                await self.conn.execute(
                    insert(storage.table),
                    [{storage.owner_column: record.id, storage.related_column: i.id} for i in related],
                )

    async def delete(self, identity: Identity) -> None:
        table = self.tables.tables[identity.type]
        for rel in self.schema.each_relationship(identity.type):
            storage = self.tables.storage[(identity.type, rel.name)]
            if isinstance(storage, _Join):
                owner = storage.table.c[storage.owner_column]
                await self.conn.execute(delete(storage.table).where(owner == identity.id))
        await self.conn.execute(delete(table).where(table.c.id == identity.id))


class SQLSource(Source):
    """
    Source backed by a SQL database through SQLAlchemy's async engine.

    Usage:
        source = SQLSource(schema, "sqlite+aiosqlite:///records.db")
        await source.activate()   # creates missing tables
    """

    def __init__(
        self,
        schema: Schema,
        database_url: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
        name: Optional[str] = None,
        echo: bool = False,
    ):
        super().__init__(schema, name)
        if engine is None and database_url is None:
            raise ValueError("SQLSource needs a database_url or an engine")
        self._owns_engine = engine is None
        self.engine = engine or _create_engine(database_url, echo)
        self.tables = SQLTables(schema)
        # A single-connection pool shares one transaction between tasks.
        self._lock: Optional[asyncio.Lock] = asyncio.Lock() if isinstance(self.engine.pool, StaticPool) else None

    async def _activate(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(self.tables.metadata.create_all)
        logger.info(f"SQL tables ready: {sorted(self.tables.metadata.tables)}")

    async def _deactivate(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()

    async def _update(self, transform: Transform, options: RequestOptions) -> list[Any]:
        if self._lock is None:
            return await self._apply(transform)
        async with self._lock:
            return await self._apply(transform)

    async def _query(self, expression: QueryExpression, options: RequestOptions) -> Any:
        if self._lock is None:
            return await self._find(expression)
        async with self._lock:
            return await self._find(expression)

    async def _apply(self, transform: Transform) -> list[Any]:
        async with self.engine.begin() as conn:
            processor = OperationProcessor(self.schema, _SQLStore(self.tables, conn))
            return [await processor.apply(operation) for operation in transform.operations]

    async def _find(self, expression: QueryExpression) -> Any:
        async with self.engine.connect() as conn:
            store = _SQLStore(self.tables, conn)

            if isinstance(expression, FindRecord):
                record = await store.get(expression.record)
                if record is None:
                    raise RecordNotFoundError(expression.record.type, expression.record.id)
                return record

            if isinstance(expression, FindRecords):
                table = self._table(expression.type)
                stmt = select(table)
                if expression.ids is not None:
                    stmt = stmt.where(table.c.id.in_(expression.ids))
                stmt = self._apply_terms(stmt, expression.type, expression.filter, expression.sort)
                rows = (await conn.execute(stmt)).all()
                return await store.reader.read(expression.type, rows)

            if isinstance(expression, FindRelatedRecord):
                owner = await self._owner(store, expression.record, expression.relationship, "hasOne")
                related = owner.relationships.get(expression.relationship)
                return await store.get(related) if related is not None else None

            if isinstance(expression, FindRelatedRecords):
                owner = await self._owner(store, expression.record, expression.relationship, "hasMany")
                rel = self.schema.get_relationship(owner.type, expression.relationship)
                ids = [i.id for i in owner.relationships.get(expression.relationship) or []]
                table = self._table(rel.target)
                stmt = self._apply_terms(
                    select(table).where(table.c.id.in_(ids)), rel.target, expression.filter, expression.sort
                )
                records = await store.reader.read(rel.target, (await conn.execute(stmt)).all())
                if not expression.sort:
                    position = {id: n for n, id in enumerate(ids)}
                    records.sort(key=lambda r: position[r.id])
                return records

        raise ValidationError(f"Unsupported query expression: {expression!r}")

    def _table(self, type: str) -> Table:
        table = self.tables.tables.get(type)
        if table is None:
            raise ValidationError(f"Unknown record type: {type!r}")
        return table

    async def _owner(self, store: _SQLStore, identity: Identity, name: str, kind: str) -> Record:
        rel = self.schema.get_relationship(identity.type, name)
        if rel is None:
            raise ValidationError(f"Unknown relationship: {identity.type}.{name}")
        if rel.kind != kind:
            raise ValidationError(f"Relationship {identity.type}.{name} is {rel.kind}, not {kind}")
        owner = await store.get(identity)
        if owner is None:
            raise RecordNotFoundError(identity.type, identity.id)
        return owner

    def _apply_terms(self, stmt, type: str, filters: list[AttributeFilter], sorts: list[AttributeSort]):
        for term in filters:
            column = self.tables.column(type, term.field)
            if term.op == "eq":
                stmt = stmt.where(column.is_(None) if term.value is None else column == term.value)
            elif term.op == "ne":
                if term.value is None:
                    stmt = stmt.where(column.is_not(None))
                else:
                    stmt = stmt.where(or_(column != term.value, column.is_(None)))
            elif term.op == "in":
                values = list(term.value or [])
                matches = column.in_([v for v in values if v is not None])
                stmt = stmt.where(or_(matches, column.is_(None)) if None in values else matches)
            elif term.op == "not_in":
                values = list(term.value or [])
                matches = column.not_in([v for v in values if v is not None])
                stmt = stmt.where(matches if None in values else or_(matches, column.is_(None)))
        for term in sorts:
            column = self.tables.column(type, term.field)
            # Missing values sort last ascending and first descending.
            stmt = stmt.order_by(column.desc().nulls_first() if term.dir == "desc" else column.asc().nulls_last())
        return stmt


def _create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite") and (":memory:" in database_url or database_url.endswith("://")):
        # One shared connection, otherwise every connection gets its own empty database.
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(database_url, echo=echo)
