"""Query history sink and helpers for human-readable log entries."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, Sequence, runtime_checkable

from .models import QueryLogEntry
from .sqlbuild import split_placeholders

DEFAULT_HISTORY_LIMIT = 50


@runtime_checkable
class QueryLogSink(Protocol):
    """Receives executed-statement records; persistence is up to the implementation."""

    async def record(self, entry: QueryLogEntry) -> None: ...

    async def recent(self, connection_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[QueryLogEntry]: ...

    async def forget(self, connection_id: str) -> None: ...


class InMemoryQueryLog:
    """Process-local sink used in tests and embedded setups."""

    def __init__(self) -> None:
        self._entries: dict[str, list[QueryLogEntry]] = {}
        self._lock = asyncio.Lock()

    async def record(self, entry: QueryLogEntry) -> None:
        async with self._lock:
            self._entries.setdefault(entry.connection_id, []).append(entry)

    async def recent(self, connection_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[QueryLogEntry]:
        """Newest first, capped at ``limit``."""

        async with self._lock:
            entries = list(self._entries.get(connection_id, ()))
        entries.reverse()
        entries.sort(key=lambda entry: entry.created_at, reverse=True)
        return entries[: max(limit, 0)]

    async def forget(self, connection_id: str) -> None:
        async with self._lock:
            self._entries.pop(connection_id, None)


def interpolate_query(sql: str, values: Sequence[Any]) -> str:
    """Inline bound values into ``?`` placeholders for display only; never execute the result."""

    parts = split_placeholders(sql)
    if len(parts) == 1:
        return sql
    out = [parts[0]]
    for index, part in enumerate(parts[1:]):
        out.append(_literal(values[index]) if index < len(values) else "?")
        out.append(part)
    return "".join(out)


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    text = str(value).replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"').replace("\0", "\\0")
    return f"'{text}'"


__all__ = ["DEFAULT_HISTORY_LIMIT", "InMemoryQueryLog", "QueryLogSink", "interpolate_query"]
