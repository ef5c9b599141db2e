"""Advisory lint rules for ad-hoc statements, backed by sqlglot."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from sqlglot import exp, parse_one
from sqlglot.errors import SqlglotError


class DiagnosticSeverity(str, Enum):
    """Severity levels for lint feedback."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """Represents an issue discovered while linting."""

    message: str
    severity: DiagnosticSeverity
    statement: int | None = None


def lint_statement(statement: str, *, dialect: str = "postgres") -> list[Diagnostic]:
    """Run lightweight rules on one statement.

    Statements sqlglot cannot parse produce no diagnostics; the server is the
    authority on syntax and reports it with position information.
    """

    stripped = statement.strip()
    if not stripped:
        return []
    try:
        expr = parse_one(stripped, read=dialect)
    except SqlglotError:
        return []

    diagnostics: list[Diagnostic] = []
    if isinstance(expr, exp.Delete) and not expr.args.get("where"):
        diagnostics.append(
            Diagnostic(
                message="DELETE statement is missing a WHERE clause.",
                severity=DiagnosticSeverity.WARNING,
            )
        )
    if isinstance(expr, exp.Update) and not expr.args.get("where"):
        diagnostics.append(
            Diagnostic(
                message="UPDATE statement is missing a WHERE clause.",
                severity=DiagnosticSeverity.WARNING,
            )
        )
    if isinstance(expr, exp.Drop):
        diagnostics.append(
            Diagnostic(
                message="DROP statement removes objects permanently.",
                severity=DiagnosticSeverity.WARNING,
            )
        )
    if isinstance(expr, exp.TruncateTable):
        diagnostics.append(
            Diagnostic(
                message="TRUNCATE statement removes every row.",
                severity=DiagnosticSeverity.WARNING,
            )
        )
    return diagnostics


def lint_statements(statements: Iterable[str], *, dialect: str = "postgres") -> list[Diagnostic]:
    """Lint a batch, tagging each diagnostic with its 1-based statement index."""

    diagnostics: list[Diagnostic] = []
    for index, statement in enumerate(statements, start=1):
        for diagnostic in lint_statement(statement, dialect=dialect):
            diagnostics.append(Diagnostic(diagnostic.message, diagnostic.severity, statement=index))
    return diagnostics


__all__ = ["Diagnostic", "DiagnosticSeverity", "lint_statement", "lint_statements"]
