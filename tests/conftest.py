"""Shared fakes standing in for asyncpg connections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest


@dataclass(frozen=True)
class FakeType:
    name: str


class FakeStatement:
    def __init__(self, connection: FakeConnection, sql: str) -> None:
        self._connection = connection
        self.sql = sql

    def get_parameters(self) -> tuple[FakeType, ...]:
        return tuple(FakeType(name) for name in self._connection.db.parameter_types)

    async def fetch(self, *args: Any) -> list[dict[str, Any]]:
        db = self._connection.db
        db.prepared.append((self.sql, args))
        return db.respond(self.sql, args)

    def get_statusmsg(self) -> str:
        return self._connection.db.status


class FakeTransaction:
    def __init__(self, connection: FakeConnection) -> None:
        self._connection = connection

    async def start(self) -> None:
        self._connection.db.events.append("begin")
        self._connection.pending = []

    async def commit(self) -> None:
        db = self._connection.db
        db.events.append("commit")
        db.committed.extend(self._connection.pending or [])
        self._connection.pending = None

    async def rollback(self) -> None:
        self._connection.db.events.append("rollback")
        self._connection.pending = None


class FakeConnection:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.closed = False
        self.terminated = False
        self.pending: list[str] | None = None

    async def fetch(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        self.db.fetched.append(sql)
        return self.db.respond(sql, args)

    async def fetchrow(self, sql: str, *args: Any) -> dict[str, Any] | None:
        rows = await self.fetch(sql, *args)
        return rows[0] if rows else None

    async def fetchval(self, sql: str, *args: Any) -> Any:
        row = await self.fetchrow(sql, *args)
        return next(iter(row.values())) if row else None

    async def execute(self, sql: str, *args: Any) -> str:
        self.db.executed.append(sql)
        self.db.respond(sql, args)
        if self.pending is not None:
            self.pending.append(sql)
        else:
            self.db.committed.append(sql)
        return self.db.status

    async def prepare(self, sql: str) -> FakeStatement:
        return FakeStatement(self, sql)

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True


class FakeDatabase:
    """Routes SQL to canned results by substring; the first matching rule wins."""

    def __init__(self) -> None:
        self.rules: list[tuple[str, Any]] = []
        self.connections: list[FakeConnection] = []
        self.connect_kwargs: list[dict[str, Any]] = []
        self.fetched: list[str] = []
        self.executed: list[str] = []
        self.prepared: list[tuple[str, tuple[Any, ...]]] = []
        self.committed: list[str] = []
        self.events: list[str] = []
        self.parameter_types: tuple[str, ...] = ()
        self.status = "SELECT 0"
        self.connect_error: BaseException | None = None

    def on(self, fragment: str, result: Any) -> None:
        """``result`` may be rows, an exception to raise, or a callable taking (sql, args)."""

        self.rules.append((fragment, result))

    def respond(self, sql: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        for fragment, result in self.rules:
            if fragment in sql:
                if isinstance(result, BaseException):
                    raise result
                if callable(result):
                    return result(sql, args)
                return list(result)
        return []

    async def connect(self, **kwargs: Any) -> FakeConnection:
        self.connect_kwargs.append(kwargs)
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> FakeDatabase:
    db = FakeDatabase()
    monkeypatch.setattr("pgexplorer.connections.asyncpg.connect", db.connect)
    return db
