"""Tests for the named query templates."""

from __future__ import annotations

import pytest

from pgexplorer.sqlbuild import (
    InsertQuery,
    InvalidIdentifierError,
    QueryTemplate,
    SelectQuery,
    TemplateCatalog,
    TemplateError,
    TemplateKind,
    UpdateQuery,
)


@pytest.fixture
def catalog() -> TemplateCatalog:
    return TemplateCatalog.default()


def test_default_catalog_names(catalog: TemplateCatalog) -> None:
    assert catalog.names() == ("table_data", "table_count", "insert_row", "update_row", "delete_row")


def test_table_data_places_where_before_order_before_limit(catalog: TemplateCatalog) -> None:
    sql = catalog.render(
        "table_data",
        {"schema": "public", "table": "users", "limit": 10, "offset": 0},
        where_fragment="age > ?",
        order_fragment="id DESC",
    )

    assert sql == "SELECT * FROM public.users WHERE age > ? ORDER BY id DESC LIMIT 10 OFFSET 0"
    assert sql.index("WHERE") < sql.index("ORDER BY") < sql.index("LIMIT")


def test_table_data_without_fragments(catalog: TemplateCatalog) -> None:
    sql = catalog.render("table_data", {"schema": "public", "table": "users", "limit": 25, "offset": 50})

    assert sql == "SELECT * FROM public.users LIMIT 25 OFFSET 50"


def test_table_count_accepts_where(catalog: TemplateCatalog) -> None:
    sql = catalog.render("table_count", {"schema": "sales", "table": "orders"}, where_fragment="total > ?")

    assert sql == "SELECT COUNT(*) AS count FROM sales.orders WHERE total > ?"


def test_identifier_params_are_sanitized(catalog: TemplateCatalog) -> None:
    sql = catalog.render("table_count", {"schema": "public", "table": "users; DROP TABLE x"})

    assert sql == "SELECT COUNT(*) AS count FROM public.usersDROPTABLEx"

    with pytest.raises(InvalidIdentifierError):
        catalog.render("table_count", {"schema": "public", "table": "';"})


def test_missing_parameters_raise(catalog: TemplateCatalog) -> None:
    with pytest.raises(TemplateError, match="table"):
        catalog.render("table_count", {"schema": "public"})
    with pytest.raises(TemplateError, match="limit"):
        catalog.render("table_data", {"schema": "public", "table": "users"})


@pytest.mark.parametrize("limit", ["ten", -1, None])
def test_limit_must_be_a_non_negative_integer(catalog: TemplateCatalog, limit: object) -> None:
    with pytest.raises(TemplateError):
        catalog.render("table_data", {"schema": "public", "table": "users", "limit": limit})


def test_unknown_template(catalog: TemplateCatalog) -> None:
    with pytest.raises(TemplateError, match="Unknown"):
        catalog.get("nope")


def test_insert_and_update_take_columns_from_params(catalog: TemplateCatalog) -> None:
    insert = catalog.query("insert_row", {"schema": "public", "table": "users", "columns": "name, email"})
    update = catalog.query("update_row", {"schema": "public", "table": "users", "columns": ["name"]})

    assert isinstance(insert, InsertQuery)
    assert insert.render().sql == "INSERT INTO public.users (name, email) VALUES (?, ?)"
    assert isinstance(update, UpdateQuery)
    assert update.where("id = ?", [1]).render().sql == "UPDATE public.users SET name = ? WHERE id = ?"


def test_delete_template_with_caller_where(catalog: TemplateCatalog) -> None:
    sql = catalog.render("delete_row", {"schema": "public", "table": "users"}, where_fragment="id = ?")

    assert sql == "DELETE FROM public.users WHERE id = ?"


def test_overrides_merge_and_add_templates(catalog: TemplateCatalog) -> None:
    merged = catalog.with_overrides(
        {
            "table_data": {"order_by": "id"},
            "recent_orders": {
                "kind": "select",
                "source": ":schema.orders",
                "columns": "id, total",
                "where": "created_at > now() - interval '1 day'",
                "parameters": ["schema"],
            },
        }
    )

    base = merged.render("table_data", {"schema": "public", "table": "users", "limit": 5, "offset": 0})
    custom = merged.render("recent_orders", {"schema": "sales"}, where_fragment="total > ?")

    assert base == "SELECT * FROM public.users ORDER BY id LIMIT 5 OFFSET 0"
    assert custom == (
        "SELECT id, total FROM sales.orders WHERE (created_at > now() - interval '1 day') AND (total > ?)"
    )
    assert catalog.get("table_data").order_by is None


def test_caller_order_replaces_template_order(catalog: TemplateCatalog) -> None:
    merged = catalog.with_overrides({"table_data": {"order_by": "id"}})

    sql = merged.render(
        "table_data",
        {"schema": "public", "table": "users", "limit": 5, "offset": 0},
        order_fragment="name DESC",
    )

    assert sql == "SELECT * FROM public.users ORDER BY name DESC LIMIT 5 OFFSET 0"


def test_new_template_needs_kind(catalog: TemplateCatalog) -> None:
    with pytest.raises(TemplateError, match="kind"):
        catalog.with_overrides({"mystery": {"source": "public.t"}})


def test_template_body_describes_skeleton() -> None:
    template = QueryTemplate(name="t", kind=TemplateKind.SELECT, paginate=True)

    assert template.body == "SELECT * FROM :schema.:table LIMIT :limit OFFSET :offset"


def test_select_template_builds_select_query(catalog: TemplateCatalog) -> None:
    query = catalog.query("table_data", {"schema": "public", "table": "t", "limit": 1})

    assert isinstance(query, SelectQuery)
    assert (query.limit, query.offset) == (1, 0)
