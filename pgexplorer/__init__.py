"""PostgreSQL browsing core: safe SQL construction and per-request execution."""

from __future__ import annotations

from .config import ConnectionCredentials, ConnectionProfileConfig, ExplorerConfig, load_config
from .connections import ConnectionProvisioner, ConnectionProvisioningError
from .models import ConnectionProfile, ExecutorKind, QueryLogEntry, TablePage
from .query import QueryDiagnostics, QueryExecutionError, QueryExecutor
from .querylog import InMemoryQueryLog, QueryLogSink
from .service import PostgresService, QueryOutcome

__version__ = "0.1.0"

__all__ = [
    "ConnectionCredentials",
    "ConnectionProfile",
    "ConnectionProfileConfig",
    "ConnectionProvisioner",
    "ConnectionProvisioningError",
    "ExecutorKind",
    "ExplorerConfig",
    "InMemoryQueryLog",
    "PostgresService",
    "QueryDiagnostics",
    "QueryExecutionError",
    "QueryExecutor",
    "QueryLogEntry",
    "QueryLogSink",
    "QueryOutcome",
    "TablePage",
    "load_config",
]
