"""Statement execution against provisioned handles."""

from __future__ import annotations

import datetime as dt
import logging
import re
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Sequence

import asyncpg

from .connections import HandleState, ProvisionedHandle
from .models import Row
from .sqlbuild import is_select_statement, number_placeholders

LOG = logging.getLogger(__name__)


class QueryExecutionError(RuntimeError):
    """Raised when a query cannot be run or an internally built query fails."""


@dataclass(frozen=True, slots=True)
class QueryDiagnostics:
    """Driver diagnostics surfaced for ad-hoc SQL failures."""

    message: str
    sql_state: str | None = None
    code: str | None = None
    detail: str | None = None
    hint: str | None = None
    position: int | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> QueryDiagnostics:
        """Read the driver's structured fields, falling back to markers in the message text."""

        message = str(exc)
        detail = getattr(exc, "detail", None) or _marker(_DETAIL, message)
        hint = getattr(exc, "hint", None) or _marker(_HINT, message)
        position = getattr(exc, "position", None) or _marker(_POSITION, message)
        return cls(
            message=message,
            sql_state=getattr(exc, "sqlstate", None),
            code=type(exc).__name__,
            detail=detail,
            hint=hint,
            position=int(position) if position is not None else None,
        )


_DETAIL = re.compile(r"DETAIL:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_HINT = re.compile(r"HINT:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_POSITION = re.compile(r"Position:\s*(\d+)", re.IGNORECASE)


def _marker(pattern: re.Pattern[str], message: str) -> str | None:
    match = pattern.search(message)
    return match.group(1) if match else None


class QueryExecutor:
    """Runs SQL on an open handle.

    Builder-generated SQL arrives with ``?`` placeholders and is numbered for
    asyncpg here; user SQL runs without bindings and is passed through
    untouched.
    """

    async def execute_single(
        self,
        handle: ProvisionedHandle,
        sql: str,
        bindings: Sequence[Any] = (),
    ) -> list[Row]:
        """Run one statement and return its rows (empty for statements without output)."""

        conn = _connection(handle)
        started = time.perf_counter()
        if bindings:
            statement, values = await _prepare(conn, sql, bindings)
            records = await statement.fetch(*values)
        else:
            records = await conn.fetch(sql)
        LOG.debug("%s returned %d row(s) in %.1f ms", handle.name, len(records), _elapsed_ms(started))
        return _records_to_rows(records)

    async def execute_many(self, handle: ProvisionedHandle, statements: Iterable[str]) -> list[Row]:
        """Run statements in one transaction and return the rows of the last SELECT.

        Any failure rolls the whole batch back and re-raises the original error.
        """

        conn = _connection(handle)
        transaction = conn.transaction()
        await transaction.start()
        results: list[Row] = []
        try:
            for statement in statements:
                if is_select_statement(statement):
                    results = _records_to_rows(await conn.fetch(statement))
                else:
                    await conn.execute(statement)
        except BaseException:
            LOG.debug("Rolling back batch on %s", handle.name)
            await transaction.rollback()
            raise
        await transaction.commit()
        return results

    async def execute_command(
        self,
        handle: ProvisionedHandle,
        sql: str,
        bindings: Sequence[Any] = (),
    ) -> str:
        """Run one parameterized statement and return the server's status tag, e.g. ``UPDATE 1``."""

        conn = _connection(handle)
        statement, values = await _prepare(conn, sql, bindings)
        await statement.fetch(*values)
        return statement.get_statusmsg()

    async def fetch_count(
        self,
        handle: ProvisionedHandle,
        sql: str,
        bindings: Sequence[Any] = (),
    ) -> int:
        rows = await self.execute_single(handle, sql, bindings)
        if not rows:
            return 0
        return int(next(iter(rows[0].values())))


def affected_rows(status: str) -> int:
    """Trailing row count of a status tag (``INSERT 0 3`` -> 3)."""

    tail = status.rsplit(" ", 1)[-1] if status else ""
    return int(tail) if tail.isdigit() else 0


async def _prepare(conn: Any, sql: str, bindings: Sequence[Any]) -> tuple[Any, list[Any]]:
    """Prepare ``sql`` and fit the bindings to the parameter types the server inferred.

    When a value has no Python form the driver can encode, the statement is
    prepared again with that parameter sent as text and cast by the server,
    so the type's own input rules apply (``'1 day'`` for interval, ``'\\x00'``
    for bytea, domains).
    """

    statement = await conn.prepare(number_placeholders(sql))
    parameter_types = statement.get_parameters()
    values = coerce_bindings(parameter_types, bindings)
    casts = text_input_casts(parameter_types, values)
    if not casts:
        return statement, values
    LOG.debug("Sending parameter(s) %s as text", sorted(casts))
    statement = await conn.prepare(number_placeholders(sql, casts=casts))
    return statement, [str(value) if index in casts else value for index, value in enumerate(values, start=1)]


def _connection(handle: ProvisionedHandle) -> Any:
    if handle.state is not HandleState.OPEN or handle.connection is None:
        raise QueryExecutionError(f"Handle {handle.name} is not open.")
    return handle.connection


def _records_to_rows(records: Iterable[Any]) -> list[Row]:
    return [dict(record) for record in records]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"t", "true", "1", "yes", "y", "on"}:
        return True
    if lowered in {"f", "false", "0", "no", "n", "off"}:
        return False
    raise ValueError(value)


_COERCERS: dict[str, Callable[[str], Any]] = {
    "int2": int,
    "int4": int,
    "int8": int,
    "oid": int,
    "float4": float,
    "float8": float,
    "numeric": Decimal,
    "bool": _parse_bool,
    "date": dt.date.fromisoformat,
    "time": dt.time.fromisoformat,
    "timestamp": dt.datetime.fromisoformat,
    "timestamptz": dt.datetime.fromisoformat,
    "uuid": uuid.UUID,
}

_TEXT_TYPES = frozenset({"text", "varchar", "bpchar", "name", "char", "citext"})

# Encoded from str by the driver itself.
_STR_NATIVE_TYPES = frozenset({"json", "jsonb", "unknown"})

_INTEGER_TYPES = frozenset({"int2", "int4", "int8", "oid"})


def coerce_bindings(parameter_types: Sequence[Any], bindings: Sequence[Any]) -> list[Any]:
    """Convert textual values to the Python types the server expects for each parameter.

    Values that do not convert are passed unchanged so the driver reports the
    mismatch itself.
    """

    coerced: list[Any] = []
    for index, value in enumerate(bindings):
        type_name = getattr(parameter_types[index], "name", None) if index < len(parameter_types) else None
        coerced.append(_coerce(type_name, value))
    return coerced


def _coerce(type_name: str | None, value: Any) -> Any:
    if value is None or type_name is None:
        return value
    if type_name in _TEXT_TYPES:
        return value if isinstance(value, str) else str(value)
    if type_name in _INTEGER_TYPES and isinstance(value, float) and value.is_integer():
        return int(value)
    converter = _COERCERS.get(type_name)
    if converter is None or not isinstance(value, str):
        return value
    try:
        return converter(value.strip())
    except (ValueError, InvalidOperation):
        return value


def text_input_casts(parameter_types: Sequence[Any], values: Sequence[Any]) -> dict[int, str]:
    """Placeholder numbers whose coerced value must travel as text, mapped to the target type.

    That covers strings left for a non-text parameter (no converter, or one
    that rejected the input) and fractional floats for integer parameters;
    the server then parses or rejects them with a regular SQL error.
    """

    casts: dict[int, str] = {}
    for index, value in enumerate(values):
        if value is None or index >= len(parameter_types):
            continue
        parameter = parameter_types[index]
        type_name = getattr(parameter, "name", None)
        if type_name is None or type_name in _TEXT_TYPES or type_name in _STR_NATIVE_TYPES:
            continue
        if isinstance(value, str) or (type_name in _INTEGER_TYPES and isinstance(value, float)):
            casts[index + 1] = _qualified_type(parameter)
    return casts


def _qualified_type(parameter: Any) -> str:
    name = _quote(parameter.name)
    schema = getattr(parameter, "schema", None)
    return f"{_quote(schema)}.{name}" if schema else name


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


__all__ = [
    "QueryDiagnostics",
    "QueryExecutionError",
    "QueryExecutor",
    "affected_rows",
    "coerce_bindings",
    "text_input_casts",
]
