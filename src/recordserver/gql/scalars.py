"""
Date and DateTime scalars (ISO-8601 strings on the wire).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from graphql import GraphQLError, GraphQLScalarType, StringValueNode


def _serialize_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    raise GraphQLError(f"Date cannot represent value: {value!r}")


def _parse_date(value: Any) -> date:
    if not isinstance(value, str):
        raise GraphQLError(f"Date must be an ISO-8601 string, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise GraphQLError(f"Invalid Date: {value!r}") from None


def _serialize_datetime(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        return value
    raise GraphQLError(f"DateTime cannot represent value: {value!r}")


def _parse_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise GraphQLError(f"DateTime must be an ISO-8601 string, got {value!r}")
    try:
        return datetime.fromisoformat(value[:-1] + "+00:00" if value.endswith("Z") else value)
    except ValueError:
        raise GraphQLError(f"Invalid DateTime: {value!r}") from None


def _literal(parse):
    def parse_literal(node, _variables=None):
        if not isinstance(node, StringValueNode):
            raise GraphQLError("Expected an ISO-8601 string literal")
        return parse(node.value)
    return parse_literal


GraphQLDate = GraphQLScalarType(
    name="Date",
    description="Calendar date, ISO-8601 (YYYY-MM-DD)",
    serialize=_serialize_date,
    parse_value=_parse_date,
    parse_literal=_literal(_parse_date),
)

GraphQLDateTime = GraphQLScalarType(
    name="DateTime",
    description="Date and time, ISO-8601",
    serialize=_serialize_datetime,
    parse_value=_parse_datetime,
    parse_literal=_literal(_parse_datetime),
)
