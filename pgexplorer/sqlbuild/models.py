"""Typed descriptors for user-supplied filters and sorts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple


class FilterOperator(str, Enum):
    """Closed set of operators accepted from filter payloads."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IS = "is"
    IS_NOT = "is_not"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


NULLARY_OPERATORS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})
RANGE_OPERATORS = frozenset({FilterOperator.BETWEEN, FilterOperator.NOT_BETWEEN})
LIST_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})
SCALAR_OPERATORS = frozenset(FilterOperator) - NULLARY_OPERATORS - RANGE_OPERATORS - LIST_OPERATORS


def _check_operator(operator: FilterOperator, allowed: frozenset[FilterOperator], variant: str) -> None:
    if operator not in allowed:
        raise ValueError(f"{variant} does not accept operator '{operator.value}'")


@dataclass(frozen=True, slots=True)
class NullFilter:
    """`IS [NOT] NULL` check; carries no value."""

    column: str
    operator: FilterOperator

    def __post_init__(self) -> None:
        _check_operator(self.operator, NULLARY_OPERATORS, "NullFilter")


@dataclass(frozen=True, slots=True)
class ScalarFilter:
    """Comparison, pattern or IS test against a single value."""

    column: str
    operator: FilterOperator
    value: Any

    def __post_init__(self) -> None:
        _check_operator(self.operator, SCALAR_OPERATORS, "ScalarFilter")
        if self.value is None:
            raise ValueError(f"Operator '{self.operator.value}' requires a value")


@dataclass(frozen=True, slots=True)
class RangeFilter:
    """`[NOT] BETWEEN low AND high`."""

    column: str
    operator: FilterOperator
    low: Any
    high: Any

    def __post_init__(self) -> None:
        _check_operator(self.operator, RANGE_OPERATORS, "RangeFilter")


@dataclass(frozen=True, slots=True)
class ListFilter:
    """`[NOT] IN (...)` over a non-empty value list."""

    column: str
    operator: FilterOperator
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        _check_operator(self.operator, LIST_OPERATORS, "ListFilter")
        if not self.values:
            raise ValueError(f"Operator '{self.operator.value}' requires at least one value")


FilterDescriptor = NullFilter | ScalarFilter | RangeFilter | ListFilter


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class SortDescriptor:
    """Column plus normalized direction."""

    column: str
    direction: SortDirection = SortDirection.ASC


class WhereFragment(NamedTuple):
    """Compiled WHERE body (without the keyword) and its ordered bindings."""

    sql: str
    bindings: list[Any]


__all__ = [
    "FilterDescriptor",
    "FilterOperator",
    "LIST_OPERATORS",
    "ListFilter",
    "NULLARY_OPERATORS",
    "NullFilter",
    "RANGE_OPERATORS",
    "RangeFilter",
    "SCALAR_OPERATORS",
    "ScalarFilter",
    "SortDescriptor",
    "SortDirection",
    "WhereFragment",
]
