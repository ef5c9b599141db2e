"""Shared dataclasses used across connection/query modules."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

Row = dict[str, Any]
MetadataSnapshot = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Runtime representation of a stored PostgreSQL connection."""

    id: str
    name: str
    host: str
    port: int
    username: str
    password: str = field(default="", repr=False)
    database: str = "postgres"
    sslmode: str = "prefer"
    sslcert: str | None = field(default=None, repr=False)
    sslkey: str | None = field(default=None, repr=False)
    sslrootcert: str | None = field(default=None, repr=False)
    metadata: MetadataSnapshot | None = None
    owner: str | None = None

    def public_dict(self) -> dict[str, Any]:
        """Serializable view without the write-only credential fields."""

        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "database": self.database,
            "sslmode": self.sslmode,
            "metadata": dict(self.metadata) if self.metadata else {},
            "owner": self.owner,
        }

    def with_metadata(self, metadata: MetadataSnapshot) -> ConnectionProfile:
        """Return a copy carrying a refreshed metadata snapshot."""

        return replace(self, metadata=dict(metadata))


class ExecutorKind(str, Enum):
    """Who triggered a logged statement."""

    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class QueryLogEntry:
    """Immutable record of an executed statement group."""

    connection_id: str
    query: str
    executor: ExecutorKind
    executor_id: str | int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "query": self.query,
            "executor": self.executor.value,
            "executor_id": self.executor_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class TablePage:
    """One page of table rows plus the filtered total."""

    data: list[Row]
    total: int

    def as_dict(self) -> dict[str, Any]:
        return {"data": self.data, "total": self.total}


__all__ = [
    "ConnectionProfile",
    "ExecutorKind",
    "MetadataSnapshot",
    "QueryLogEntry",
    "Row",
    "TablePage",
]
