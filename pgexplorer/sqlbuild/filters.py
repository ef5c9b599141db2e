"""Compile filter descriptors into parameterized WHERE fragments."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

from .identifiers import sanitize_identifier
from .models import (
    LIST_OPERATORS,
    NULLARY_OPERATORS,
    RANGE_OPERATORS,
    FilterDescriptor,
    FilterOperator,
    ListFilter,
    NullFilter,
    RangeFilter,
    ScalarFilter,
    WhereFragment,
)

LOG = logging.getLogger(__name__)

_COMPARISONS: dict[FilterOperator, str] = {
    FilterOperator.EQ: "=",
    FilterOperator.NEQ: "<>",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
}

_IS_LITERALS = frozenset({"TRUE", "FALSE", "NULL"})
_DESCRIPTOR_TYPES = (NullFilter, ScalarFilter, RangeFilter, ListFilter)


def parse_filter(raw: object) -> FilterDescriptor | None:
    """Turn one raw payload entry into a descriptor, or None when invalid."""

    if not isinstance(raw, Mapping):
        return None
    column = raw.get("column")
    operator_name = raw.get("operator")
    if not isinstance(column, str) or not column or not isinstance(operator_name, str):
        return None
    try:
        operator = FilterOperator(operator_name)
    except ValueError:
        return None

    value = raw.get("value")
    if operator in NULLARY_OPERATORS:
        return NullFilter(column, operator)
    if operator in RANGE_OPERATORS:
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return RangeFilter(column, operator, value[0], value[1])
        return None
    if operator in LIST_OPERATORS:
        values = _list_values(value)
        return ListFilter(column, operator, values) if values else None
    if value is None or isinstance(value, (list, tuple, Mapping)):
        return None
    return ScalarFilter(column, operator, value)


def parse_filters(raw: object) -> list[FilterDescriptor]:
    """Parse a JSON string or native list of filter payloads, dropping invalid entries."""

    entries = decode_payload(raw)
    filters: list[FilterDescriptor] = []
    for entry in entries:
        descriptor = parse_filter(entry)
        if descriptor is None:
            LOG.debug("Dropping invalid filter payload: %r", entry)
            continue
        filters.append(descriptor)
    return filters


def compile_filters(filters: Iterable[FilterDescriptor | Mapping[str, Any]] | None) -> WhereFragment:
    """Return the AND-joined WHERE body and its bindings.

    Values only ever travel as bindings; the TRUE/FALSE/NULL tokens of the
    IS operators are the sole literals written into the SQL text.
    """

    conditions: list[str] = []
    bindings: list[Any] = []
    for entry in filters or ():
        descriptor = entry if isinstance(entry, _DESCRIPTOR_TYPES) else parse_filter(entry)
        if descriptor is None:
            continue
        compiled = _compile_one(descriptor)
        if compiled is None:
            continue
        sql, values = compiled
        conditions.append(sql)
        bindings.extend(values)
    if not conditions:
        return WhereFragment("", [])
    return WhereFragment(" AND ".join(conditions), bindings)


def _compile_one(descriptor: FilterDescriptor) -> tuple[str, list[Any]] | None:
    column = sanitize_identifier(descriptor.column)
    if not column:
        return None
    operator = descriptor.operator

    if isinstance(descriptor, NullFilter):
        keyword = "IS NULL" if operator is FilterOperator.IS_NULL else "IS NOT NULL"
        return f"{column} {keyword}", []

    if isinstance(descriptor, RangeFilter):
        keyword = "BETWEEN" if operator is FilterOperator.BETWEEN else "NOT BETWEEN"
        return f"{column} {keyword} ? AND ?", [descriptor.low, descriptor.high]

    if isinstance(descriptor, ListFilter):
        keyword = "IN" if operator is FilterOperator.IN else "NOT IN"
        placeholders = ", ".join("?" for _ in descriptor.values)
        return f"{column} {keyword} ({placeholders})", list(descriptor.values)

    value = descriptor.value
    if operator in _COMPARISONS:
        return f"{column} {_COMPARISONS[operator]} ?", [value]
    if operator is FilterOperator.LIKE:
        return f"CAST({column} AS TEXT) LIKE ?", [f"%{value}%"]
    if operator is FilterOperator.ILIKE:
        return f"CAST({column} AS TEXT) ILIKE ?", [f"%{value}%"]

    negate = operator is FilterOperator.IS_NOT
    token = str(value).upper()
    if token in _IS_LITERALS:
        return f"{column} {'IS NOT' if negate else 'IS'} {token}", []
    return f"{column} {'<>' if negate else '='} ?", [value]


def _list_values(value: object) -> tuple[Any, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    if isinstance(value, bool) or value is None:
        return ()
    if isinstance(value, (str, int, float)):
        items = (item.strip() for item in str(value).split(","))
        return tuple(item for item in items if item)
    return ()


def decode_payload(raw: object) -> list[object]:
    """Accept a JSON-encoded array or a native list; anything else is empty."""

    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return []


__all__ = ["compile_filters", "decode_payload", "parse_filter", "parse_filters"]
