"""Named query templates composed through the structured builder."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping

from .builder import CountQuery, DeleteQuery, InsertQuery, Query, SelectQuery, UpdateQuery
from .identifiers import require_identifier
from .models import WhereFragment

_PLACEHOLDER = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")
_INTEGER_PARAMS = frozenset({"limit", "offset"})


class TemplateKind(str, Enum):
    SELECT = "select"
    COUNT = "count"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class TemplateError(ValueError):
    """Raised for unknown templates or missing/invalid template parameters."""


@dataclass(frozen=True, slots=True)
class QueryTemplate:
    """Static description of a named operation.

    ``source``, ``columns``, ``where`` and ``order_by`` may contain
    ``:placeholders``; they are filled from the render parameters. A bare
    ``?`` in ``where`` is read as a bind placeholder, so jsonb key tests use
    ``jsonb_exists()`` or the ``?|`` and ``?&`` operators.
    """

    name: str
    kind: TemplateKind
    description: str = ""
    parameters: tuple[str, ...] = ()
    source: str = ":schema.:table"
    columns: str = "*"
    where: str | None = None
    order_by: str | None = None
    paginate: bool = False

    @property
    def body(self) -> str:
        """Human-readable SQL skeleton for listings and docs."""

        where = f" WHERE {self.where}" if self.where else ""
        if self.kind is TemplateKind.SELECT:
            sql = f"SELECT {self.columns} FROM {self.source}{where}"
            if self.order_by:
                sql += f" ORDER BY {self.order_by}"
            if self.paginate:
                sql += " LIMIT :limit OFFSET :offset"
            return sql
        if self.kind is TemplateKind.COUNT:
            return f"SELECT COUNT(*) AS count FROM {self.source}{where}"
        if self.kind is TemplateKind.INSERT:
            return f"INSERT INTO {self.source} (:columns) VALUES (:values)"
        if self.kind is TemplateKind.UPDATE:
            return f"UPDATE {self.source} SET :set_clause WHERE :where_clause"
        return f"DELETE FROM {self.source} WHERE :where_clause"


DEFAULT_TEMPLATES: tuple[QueryTemplate, ...] = (
    QueryTemplate(
        name="table_data",
        kind=TemplateKind.SELECT,
        description="Get data from a table with pagination",
        parameters=("schema", "table", "limit", "offset", "where"),
        paginate=True,
    ),
    QueryTemplate(
        name="table_count",
        kind=TemplateKind.COUNT,
        description="Count rows in a table",
        parameters=("schema", "table", "where"),
    ),
    QueryTemplate(
        name="insert_row",
        kind=TemplateKind.INSERT,
        description="Insert a row into a table",
        parameters=("schema", "table", "columns", "values"),
    ),
    QueryTemplate(
        name="update_row",
        kind=TemplateKind.UPDATE,
        description="Update a row in a table",
        parameters=("schema", "table", "set_clause", "where_clause"),
    ),
    QueryTemplate(
        name="delete_row",
        kind=TemplateKind.DELETE,
        description="Delete a row from a table",
        parameters=("schema", "table", "where_clause"),
    ),
)


class TemplateCatalog:
    """Immutable lookup of query templates keyed by operation name."""

    def __init__(self, templates: Iterable[QueryTemplate] | None = None) -> None:
        entries = DEFAULT_TEMPLATES if templates is None else tuple(templates)
        self._templates: dict[str, QueryTemplate] = {template.name: template for template in entries}

    @classmethod
    def default(cls) -> TemplateCatalog:
        return cls(DEFAULT_TEMPLATES)

    def with_overrides(self, overrides: Mapping[str, Mapping[str, Any]]) -> TemplateCatalog:
        """Return a catalog with config-supplied fields merged over the existing templates.

        Unknown names define new templates and must then carry a ``kind``.
        """

        merged = dict(self._templates)
        for name, fields in overrides.items():
            updates = {key: value for key, value in fields.items() if value is not None}
            if "kind" in updates:
                updates["kind"] = TemplateKind(updates["kind"])
            if "parameters" in updates:
                updates["parameters"] = tuple(updates["parameters"])
            base = merged.get(name)
            if base is None:
                if "kind" not in updates:
                    raise TemplateError(f"Template '{name}' needs a kind")
                merged[name] = QueryTemplate(name=name, **updates)
            else:
                merged[name] = replace(base, **updates)
        return TemplateCatalog(merged.values())

    def names(self) -> tuple[str, ...]:
        return tuple(self._templates)

    def get(self, name: str) -> QueryTemplate:
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateError(f"Unknown query template '{name}'") from None

    def query(self, name: str, params: Mapping[str, Any]) -> Query:
        """Build the structured query for a template with its parameters applied."""

        template = self.get(name)
        source = _substitute(template.source, params, template)
        baked = _substitute(template.where, params, template) if template.where else ""

        if template.kind is TemplateKind.SELECT:
            query = SelectQuery(source, columns=_substitute(template.columns, params, template)).where(baked)
            if template.order_by:
                query = query.ordered_by(_substitute(template.order_by, params, template))
            if template.paginate:
                if "limit" not in params:
                    raise TemplateError(f"Template '{name}' needs parameter 'limit'")
                query = query.paginate(
                    _integer_param("limit", params["limit"]),
                    _integer_param("offset", params.get("offset", 0)),
                )
            return query
        if template.kind is TemplateKind.COUNT:
            return CountQuery(source).where(baked)
        columns = _column_list(params.get("columns"))
        if template.kind is TemplateKind.INSERT:
            return InsertQuery(source).with_values((column, None) for column in columns)
        if template.kind is TemplateKind.UPDATE:
            return UpdateQuery(source).with_values((column, None) for column in columns).where(baked)
        return DeleteQuery(source).where(baked)

    def render(
        self,
        name: str,
        params: Mapping[str, Any],
        where_fragment: str | WhereFragment = "",
        order_fragment: str = "",
    ) -> str:
        """Render a template to SQL text with caller WHERE/ORDER BY fragments composed in.

        A caller WHERE is AND-ed with any condition baked into the template;
        a caller ORDER BY replaces the template's. LIMIT/OFFSET always trail.
        """

        query = self.query(name, params)
        if isinstance(query, SelectQuery):
            query = query.where(where_fragment).ordered_by(order_fragment)
        elif isinstance(query, (CountQuery, UpdateQuery, DeleteQuery)):
            query = query.where(where_fragment)
        return query.render().sql


def _substitute(text: str, params: Mapping[str, Any], template: QueryTemplate) -> str:
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in params:
            return _param_text(key, params[key])
        if key in template.parameters:
            raise TemplateError(f"Template '{template.name}' needs parameter '{key}'")
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, text)


def _param_text(key: str, value: Any) -> str:
    if key in _INTEGER_PARAMS:
        return str(_integer_param(key, value))
    if key == "columns":
        return ", ".join(_column_list(value))
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return require_identifier(str(value), kind=key)


def _integer_param(key: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise TemplateError(f"Parameter '{key}' must be an integer, got {value!r}") from None
    if number < 0:
        raise TemplateError(f"Parameter '{key}' must not be negative")
    return number


def _column_list(value: Any) -> list[str]:
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    return [require_identifier(str(item).strip(), kind="column") for item in items if str(item).strip()]


__all__ = [
    "DEFAULT_TEMPLATES",
    "QueryTemplate",
    "TemplateCatalog",
    "TemplateError",
    "TemplateKind",
]
