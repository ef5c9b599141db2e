"""Allowlist filter for identifiers spliced into SQL text."""

from __future__ import annotations

import re

_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


class InvalidIdentifierError(ValueError):
    """Raised when an identifier has no safe characters left."""


def sanitize_identifier(identifier: str) -> str:
    """Keep `[A-Za-z0-9_]` in each dotted segment; drop empty segments.

    This is not an escaping function: quotes, whitespace and punctuation are
    removed, never passed through. Returns an empty string when nothing
    survives.
    """

    parts = (_UNSAFE.sub("", part) for part in str(identifier).split("."))
    return ".".join(part for part in parts if part)


def require_identifier(identifier: str, *, kind: str = "identifier") -> str:
    """Sanitize and raise when the result is empty."""

    sanitized = sanitize_identifier(identifier)
    if not sanitized:
        raise InvalidIdentifierError(f"Invalid {kind}: {identifier!r}")
    return sanitized


def qualify(schema: str, table: str) -> str:
    """Return a sanitized `schema.table` reference."""

    return f"{require_identifier(schema, kind='schema')}.{require_identifier(table, kind='table')}"


__all__ = ["InvalidIdentifierError", "qualify", "require_identifier", "sanitize_identifier"]
