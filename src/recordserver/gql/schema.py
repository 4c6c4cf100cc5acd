"""
GraphQL schema generation.

For every model the builder creates:
- an object type (`Planet`) with `id: ID!`, one field per attribute and one
  field per relationship (hasMany -> `[Moon]!`, hasOne -> `Moon`)
- a `PlanetWhereInput` with `attr`, `attr_not`, `attr_in`, `attr_not_in`
- a `PlanetOrderByInput` enum with `attr_ASC` / `attr_DESC`
- root query fields `planet(id: ID!)` and `planets(where, orderBy)`

Relationship fields resolve through the per-request loaders of
recordserver.gql.loaders.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLEnumType,
    GraphQLEnumValue,
    GraphQLField,
    GraphQLID,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLString,
    graphql,
)

from ..core.errors import SchemaConfigError
from ..core.records import AttributeFilter, AttributeSort, FindRecord, FindRecords, Identity
from ..core.schema import ModelDef, Schema
from ..core.utils import classify
from ..source.base import Source
from .loaders import GraphQLContext, create_context
from .scalars import GraphQLDate, GraphQLDateTime

logger = logging.getLogger(__name__)


SCALAR_TYPES = {
    "string": GraphQLString,
    "number": GraphQLInt,
    "boolean": GraphQLBoolean,
    "date": GraphQLDate,
    "datetime": GraphQLDateTime,
}

WHERE_OPERATORS = (("", "eq"), ("_not", "ne"), ("_in", "in"), ("_not_in", "not_in"))


class _SchemaBuilder:
    def __init__(self, schema: Schema):
        self.schema = schema
        self.object_types: dict[str, GraphQLObjectType] = {}

    def build(self) -> GraphQLSchema:
        self._check()
        for model in self.schema.models.values():
            self.object_types[model.type] = GraphQLObjectType(
                name=classify(model.type),
                fields=self._fields_thunk(model),
            )

        query_fields: dict[str, GraphQLField] = {}
        for model in self.schema.models.values():
            object_type = self.object_types[model.type]
            where_type, where_terms = self._where_input(model)
            order_type = self._order_by_enum(model)

            query_fields[model.type] = GraphQLField(
                object_type,
                args={"id": GraphQLArgument(GraphQLNonNull(GraphQLID))},
                resolve=_record_resolver(model.type),
            )
            query_fields[self.schema.plurals[model.type]] = GraphQLField(
                GraphQLNonNull(GraphQLList(object_type)),
                args={
                    "where": GraphQLArgument(where_type),
                    "orderBy": GraphQLArgument(GraphQLList(GraphQLNonNull(order_type))),
                },
                resolve=_records_resolver(model.type, where_terms),
            )

        return GraphQLSchema(query=GraphQLObjectType(name="Query", fields=query_fields))

    def _check(self) -> None:
        for model in self.schema.models.values():
            if self.schema.plurals[model.type] == model.type:
                raise SchemaConfigError(
                    f"Model {model.type!r} has no distinct plural, root query fields would collide"
                )
            for attr in model.attributes.values():
                if attr.kind not in SCALAR_TYPES:
                    raise SchemaConfigError(
                        f"Attribute {model.type}.{attr.name} has type {attr.kind!r} with no GraphQL scalar"
                    )
            for rel in model.relationships.values():
                if rel.is_polymorphic:
                    raise SchemaConfigError(
                        f"Relationship {model.type}.{rel.name} is polymorphic, which GraphQL types do not support"
                    )

    def _fields_thunk(self, model: ModelDef):
        def fields() -> dict[str, GraphQLField]:
            result = {"id": GraphQLField(GraphQLNonNull(GraphQLID), resolve=_resolve_id)}
            for attr in model.attributes.values():
                result[attr.name] = GraphQLField(SCALAR_TYPES[attr.kind], resolve=_attribute_resolver(attr.name))
            for rel in model.relationships.values():
                target = self.object_types[rel.target]
                field_type = GraphQLNonNull(GraphQLList(target)) if rel.kind == "hasMany" else target
                result[rel.name] = GraphQLField(field_type, resolve=_relationship_resolver(model.type, rel.name))
            return result
        return fields

    def _where_input(self, model: ModelDef) -> tuple[GraphQLInputObjectType, dict[str, tuple[str, str]]]:
        fields: dict[str, GraphQLInputField] = {}
        terms: dict[str, tuple[str, str]] = {}
        for attr in model.attributes.values():
            scalar = SCALAR_TYPES[attr.kind]
            for suffix, op in WHERE_OPERATORS:
                name = f"{attr.name}{suffix}"
                field_type = GraphQLList(GraphQLNonNull(scalar)) if op in ("in", "not_in") else scalar
                fields[name] = GraphQLInputField(field_type)
                terms[name] = (attr.name, op)
        fields["id_in"] = GraphQLInputField(GraphQLList(GraphQLNonNull(GraphQLID)))
        terms["id_in"] = ("id", "in")
        return GraphQLInputObjectType(name=f"{classify(model.type)}WhereInput", fields=fields), terms

    def _order_by_enum(self, model: ModelDef) -> GraphQLEnumType:
        values: dict[str, GraphQLEnumValue] = {}
        for name in ["id", *model.attributes]:
            values[f"{name}_ASC"] = GraphQLEnumValue((name, "asc"))
            values[f"{name}_DESC"] = GraphQLEnumValue((name, "desc"))
        return GraphQLEnumType(name=f"{classify(model.type)}OrderByInput", values=values)


def build_graphql_schema(schema: Schema) -> GraphQLSchema:
    """Build an executable GraphQL schema. Raises SchemaConfigError for unsupported models."""
    return _SchemaBuilder(schema).build()


# =============================================================================
# Resolvers
# =============================================================================


def _resolve_id(record, info) -> str:
    return record.id


def _attribute_resolver(name: str):
    def resolve(record, info):
        return record.attributes.get(name)
    return resolve


def _relationship_resolver(type: str, relationship: str):
    async def resolve(record, info):
        context: GraphQLContext = info.context
        return await context.loaders.related(type, relationship).load(record.id)
    return resolve


def _record_resolver(type: str):
    async def resolve(_root, info, id: str):
        context: GraphQLContext = info.context
        record = await context.source.query(FindRecord(Identity(type, id)), context.options)
        context.loaders.prime([record])
        return record
    return resolve


def _records_resolver(type: str, where_terms: dict[str, tuple[str, str]]):
    async def resolve(_root, info, where: Optional[dict[str, Any]] = None, orderBy: Optional[list] = None):
        context: GraphQLContext = info.context
        filters = [
            AttributeFilter(field=where_terms[key][0], op=where_terms[key][1], value=value)
            for key, value in (where or {}).items()
        ]
        sort = [AttributeSort(field=field, dir=direction) for field, direction in (orderBy or [])]
        records = await context.source.query(FindRecords(type=type, filter=filters, sort=sort), context.options)
        context.loaders.prime(records)
        return records
    return resolve


# =============================================================================
# Execution
# =============================================================================


async def execute_graphql(
    graphql_schema: GraphQLSchema,
    source: Source,
    query: str,
    variables: Optional[dict[str, Any]] = None,
    operation_name: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    """Execute one GraphQL request with a fresh loader context. Returns {data, errors?}."""
    context = create_context(source, headers)
    result = await graphql(
        graphql_schema,
        query,
        variable_values=variables,
        operation_name=operation_name,
        context_value=context,
    )
    for error in result.errors or []:
        logger.debug(f"GraphQL error: {error.message}")
    return result.formatted
