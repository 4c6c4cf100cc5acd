"""
Filtering and sorting of in-memory record lists.
"""

from __future__ import annotations

from typing import Any, Iterable

from ..core.records import AttributeFilter, AttributeSort, Record


def record_value(record: Record, field: str) -> Any:
    if field == "id":
        return record.id
    return record.attributes.get(field)


def _matches(record: Record, term: AttributeFilter) -> bool:
    value = record_value(record, term.field)
    if term.op == "eq":
        return value == term.value
    if term.op == "ne":
        return value != term.value
    if term.op == "in":
        return value in (term.value or [])
    if term.op == "not_in":
        return value not in (term.value or [])
    raise ValueError(f"Unsupported filter operator: {term.op}")


def filter_records(records: Iterable[Record], filters: list[AttributeFilter]) -> list[Record]:
    """Keep records matching every filter term."""
    return [r for r in records if all(_matches(r, term) for term in filters)]


def sort_records(records: Iterable[Record], sorts: list[AttributeSort]) -> list[Record]:
    """
    Sort records by several keys.

    Missing values sort after present ones in ascending order.
    """
    result = list(records)
    # Stable sort: apply the least significant key first.
    for term in reversed(sorts):
        result.sort(
            key=lambda r: (record_value(r, term.field) is None, record_value(r, term.field)),
            reverse=term.dir == "desc",
        )
    return result
