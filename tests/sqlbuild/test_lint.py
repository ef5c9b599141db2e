"""Tests for the advisory statement linter."""

from __future__ import annotations

from pgexplorer.sqlbuild import DiagnosticSeverity, lint_statement, lint_statements


def test_delete_without_where_warns() -> None:
    diagnostics = lint_statement("DELETE FROM accounts")

    assert [diag.message for diag in diagnostics] == ["DELETE statement is missing a WHERE clause."]
    assert diagnostics[0].severity is DiagnosticSeverity.WARNING


def test_update_with_where_is_clean() -> None:
    assert lint_statement("UPDATE accounts SET active = false WHERE id = 1") == []
    assert lint_statement("SELECT * FROM accounts") == []


def test_update_without_where_warns() -> None:
    diagnostics = lint_statement("UPDATE accounts SET active = false")

    assert diagnostics and "UPDATE" in diagnostics[0].message


def test_destructive_ddl_warns() -> None:
    assert lint_statement("DROP TABLE accounts")
    assert lint_statement("TRUNCATE TABLE accounts")


def test_unparseable_sql_is_left_to_the_server() -> None:
    assert lint_statement("SELEC * FRM") == []
    assert lint_statement("   ") == []


def test_batch_diagnostics_carry_statement_index() -> None:
    diagnostics = lint_statements(["SELECT 1", "DELETE FROM t", "UPDATE t SET a = 1"])

    assert [diag.statement for diag in diagnostics] == [2, 3]
