"""Split raw SQL scripts into statements on unquoted semicolons."""

from __future__ import annotations

import re

_SELECT_HEAD = re.compile(r"^\s*SELECT\b", re.IGNORECASE)


def split_statements(sql: str) -> list[str]:
    """Return the trimmed, non-empty statements found in ``sql``.

    Single and double quoted runs are tracked independently. A quote is
    ignored while inside the other kind of quote, or when escaped by an odd
    run of backslashes. Doubled quotes (``'it''s'``) toggle twice and so stay
    balanced. Dollar quoting and comments are not recognized.
    """

    statements: list[str] = []
    current: list[str] = []
    in_single = False
    in_double = False
    backslashes = 0

    for char in sql:
        escaped = backslashes % 2 == 1
        if char == "'" and not in_double and not escaped:
            in_single = not in_single
        elif char == '"' and not in_single and not escaped:
            in_double = not in_double

        if char == ";" and not in_single and not in_double:
            statements.append("".join(current))
            current = []
        else:
            current.append(char)
        backslashes = backslashes + 1 if char == "\\" else 0

    statements.append("".join(current))
    return [statement.strip() for statement in statements if statement.strip()]


def is_select_statement(statement: str) -> bool:
    """True when the statement starts with the SELECT keyword."""

    return bool(_SELECT_HEAD.match(statement))


__all__ = ["is_select_statement", "split_statements"]
