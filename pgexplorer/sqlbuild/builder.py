"""Structured query objects composed into SQL at render time.

Clauses are explicit fields, so WHERE, ORDER BY and LIMIT always come out in
that order no matter which of them a template or a caller supplies. Every
identifier stored on these objects must already be sanitized; values only
travel as bindings behind ``?`` placeholders.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, NamedTuple, Sequence

from .identifiers import require_identifier
from .models import WhereFragment


class RenderedQuery(NamedTuple):
    """Final SQL using ``?`` placeholders plus the ordered bindings."""

    sql: str
    bindings: list[Any]

    def numbered(self) -> RenderedQuery:
        """Rewrite ``?`` placeholders into asyncpg's ``$n`` form."""

        return RenderedQuery(number_placeholders(self.sql), list(self.bindings))


@dataclass(frozen=True, slots=True)
class Predicate:
    sql: str
    bindings: tuple[Any, ...] = ()


def _predicates_from(where: str | WhereFragment, bindings: Sequence[Any] = ()) -> tuple[Predicate, ...]:
    if isinstance(where, WhereFragment):
        where, bindings = where.sql, where.bindings
    if not where:
        return ()
    return (Predicate(where, tuple(bindings)),)


def _render_where(predicates: Sequence[Predicate]) -> tuple[str, list[Any]]:
    if not predicates:
        return "", []
    if len(predicates) == 1:
        sql = predicates[0].sql
    else:
        sql = " AND ".join(f"({predicate.sql})" for predicate in predicates)
    bindings = [value for predicate in predicates for value in predicate.bindings]
    return f" WHERE {sql}", bindings


@dataclass(frozen=True, slots=True)
class SelectQuery:
    """``SELECT columns FROM source [WHERE] [ORDER BY] [LIMIT] [OFFSET]``."""

    source: str
    columns: str = "*"
    predicates: tuple[Predicate, ...] = ()
    order: str = ""
    limit: int | None = None
    offset: int | None = None

    def where(self, where: str | WhereFragment, bindings: Sequence[Any] = ()) -> SelectQuery:
        """Return a copy with an extra AND-ed predicate."""

        return replace(self, predicates=self.predicates + _predicates_from(where, bindings))

    def ordered_by(self, order: str) -> SelectQuery:
        """Return a copy whose ORDER BY is replaced when ``order`` is non-empty."""

        return replace(self, order=order) if order else self

    def paginate(self, limit: int, offset: int = 0) -> SelectQuery:
        return replace(self, limit=int(limit), offset=int(offset))

    def count(self) -> CountQuery:
        """Matching row count for the same source and predicates."""

        return CountQuery(self.source, self.predicates)

    def render(self) -> RenderedQuery:
        where_sql, bindings = _render_where(self.predicates)
        sql = f"SELECT {self.columns} FROM {self.source}{where_sql}"
        if self.order:
            sql += f" ORDER BY {self.order}"
        if self.limit is not None:
            sql += f" LIMIT {int(self.limit)}"
        if self.offset is not None:
            sql += f" OFFSET {int(self.offset)}"
        return RenderedQuery(sql, bindings)


@dataclass(frozen=True, slots=True)
class CountQuery:
    """``SELECT COUNT(*) AS count FROM source [WHERE]``."""

    source: str
    predicates: tuple[Predicate, ...] = ()

    def where(self, where: str | WhereFragment, bindings: Sequence[Any] = ()) -> CountQuery:
        return replace(self, predicates=self.predicates + _predicates_from(where, bindings))

    def render(self) -> RenderedQuery:
        where_sql, bindings = _render_where(self.predicates)
        return RenderedQuery(f"SELECT COUNT(*) AS count FROM {self.source}{where_sql}", bindings)


def _assignments(values: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> tuple[tuple[str, Any], ...]:
    items = values.items() if isinstance(values, Mapping) else values
    return tuple((require_identifier(column, kind="column"), value) for column, value in items)


def _match_predicates(match: Mapping[str, Any]) -> tuple[Predicate, ...]:
    predicates: list[Predicate] = []
    for column, value in match.items():
        name = require_identifier(column, kind="column")
        if value is None:
            predicates.append(Predicate(f"{name} IS NULL"))
        else:
            predicates.append(Predicate(f"{name} = ?", (value,)))
    return tuple(predicates)


@dataclass(frozen=True, slots=True)
class InsertQuery:
    """``INSERT INTO target (cols) VALUES (?, ...)``; empty strings bind as NULL."""

    target: str
    values: tuple[tuple[str, Any], ...] = ()

    def with_values(self, values: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> InsertQuery:
        return replace(self, values=_assignments(values))

    def render(self) -> RenderedQuery:
        if not self.values:
            return RenderedQuery(f"INSERT INTO {self.target} DEFAULT VALUES", [])
        columns = ", ".join(column for column, _ in self.values)
        placeholders = ", ".join("?" for _ in self.values)
        bindings = [None if value == "" else value for _, value in self.values]
        return RenderedQuery(f"INSERT INTO {self.target} ({columns}) VALUES ({placeholders})", bindings)


@dataclass(frozen=True, slots=True)
class UpdateQuery:
    """``UPDATE target SET col = ? ... WHERE ...``; refuses to render unbounded."""

    target: str
    assignments: tuple[tuple[str, Any], ...] = ()
    predicates: tuple[Predicate, ...] = ()

    def with_values(self, values: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> UpdateQuery:
        return replace(self, assignments=_assignments(values))

    def matching(self, match: Mapping[str, Any]) -> UpdateQuery:
        return replace(self, predicates=self.predicates + _match_predicates(match))

    def where(self, where: str | WhereFragment, bindings: Sequence[Any] = ()) -> UpdateQuery:
        return replace(self, predicates=self.predicates + _predicates_from(where, bindings))

    def render(self) -> RenderedQuery:
        if not self.assignments:
            raise ValueError("UPDATE requires at least one column to set")
        if not self.predicates:
            raise ValueError("UPDATE requires a row match")
        set_sql = ", ".join(f"{column} = ?" for column, _ in self.assignments)
        bindings = [None if value == "" else value for _, value in self.assignments]
        where_sql, where_bindings = _render_where(self.predicates)
        return RenderedQuery(f"UPDATE {self.target} SET {set_sql}{where_sql}", bindings + where_bindings)


@dataclass(frozen=True, slots=True)
class DeleteQuery:
    """``DELETE FROM target WHERE ...``; refuses to render unbounded."""

    target: str
    predicates: tuple[Predicate, ...] = ()

    def matching(self, match: Mapping[str, Any]) -> DeleteQuery:
        return replace(self, predicates=self.predicates + _match_predicates(match))

    def where(self, where: str | WhereFragment, bindings: Sequence[Any] = ()) -> DeleteQuery:
        return replace(self, predicates=self.predicates + _predicates_from(where, bindings))

    def render(self) -> RenderedQuery:
        if not self.predicates:
            raise ValueError("DELETE requires a row match")
        where_sql, bindings = _render_where(self.predicates)
        return RenderedQuery(f"DELETE FROM {self.target}{where_sql}", bindings)


Query = SelectQuery | CountQuery | InsertQuery | UpdateQuery | DeleteQuery


def split_placeholders(sql: str) -> list[str]:
    """Split ``sql`` around its ``?`` bind placeholders.

    Quoted text is never split, and the jsonb operators ``?|`` and ``?&`` are
    kept as operators. A bare ``?`` is always a placeholder, so a jsonb key
    test has to be written as ``jsonb_exists(col, 'key')``.
    """

    segments: list[str] = []
    current: list[str] = []
    quote: str | None = None
    for index, char in enumerate(sql):
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "?" and sql[index + 1 : index + 2] not in ("|", "&"):
            segments.append("".join(current))
            current = []
            continue
        current.append(char)
    segments.append("".join(current))
    return segments


def number_placeholders(sql: str, start: int = 1, casts: Mapping[int, str] | None = None) -> str:
    """Replace ``?`` placeholders with ``$1``, ``$2``, ...

    ``casts`` maps a placeholder number to a type name; that parameter is
    sent as text and cast by the server (``$n::text::type``).
    """

    segments = split_placeholders(sql)
    out = [segments[0]]
    for number, segment in enumerate(segments[1:], start=start):
        out.append(f"${number}")
        if casts and number in casts:
            out.append(f"::text::{casts[number]}")
        out.append(segment)
    return "".join(out)


__all__ = [
    "CountQuery",
    "DeleteQuery",
    "InsertQuery",
    "Predicate",
    "Query",
    "RenderedQuery",
    "SelectQuery",
    "UpdateQuery",
    "number_placeholders",
    "split_placeholders",
]
