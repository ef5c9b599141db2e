"""High-level operations over stored PostgreSQL connections.

Each call provisions its own handle for the requested database and releases
it before returning, so nothing leaks between requests or tenants.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import asyncpg

from .config import ConnectionCredentials, ExplorerConfig
from .connections import ConnectionProvisioner, ConnectionProvisioningError, fetch_server_metadata
from .models import ConnectionProfile, ExecutorKind, QueryLogEntry, Row, TablePage
from .query import QueryDiagnostics, QueryExecutionError, QueryExecutor, affected_rows
from .querylog import InMemoryQueryLog, QueryLogSink, interpolate_query
from .sqlbuild import (
    CountQuery,
    DeleteQuery,
    InsertQuery,
    SelectQuery,
    TemplateCatalog,
    TemplateError,
    TemplateKind,
    UpdateQuery,
    compile_filters,
    compile_sorts,
    lint_statements,
    parse_filters,
    parse_sorts,
    qualify,
    split_statements,
)

LOG = logging.getLogger(__name__)

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)

_DATABASES_QUERY = "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"

_SCHEMAS_QUERY = "SELECT schema_name FROM information_schema.schemata ORDER BY schema_name"

_TABLES_QUERY = """
    SELECT table_schema, table_name
    FROM information_schema.tables
    WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
    ORDER BY table_schema, table_name
"""

_COLUMNS_QUERY = """
    SELECT
        c.column_name,
        c.data_type,
        c.is_nullable,
        c.column_default,
        c.character_maximum_length,
        c.ordinal_position,
        EXISTS (
            SELECT 1
            FROM pg_index i
            JOIN pg_class rel ON rel.oid = i.indrelid
            JOIN pg_namespace nsp ON nsp.oid = rel.relnamespace
            JOIN pg_attribute a ON a.attrelid = rel.oid AND a.attnum = ANY(i.indkey)
            WHERE i.indisprimary
              AND rel.relname = ?
              AND nsp.nspname = ?
              AND a.attname = c.column_name
        ) AS is_primary_key
    FROM information_schema.columns c
    WHERE c.table_name = ? AND c.table_schema = ?
    ORDER BY c.ordinal_position
"""


@dataclass(frozen=True, slots=True)
class QueryOutcome:
    """Result of ad-hoc SQL; failures carry the driver's diagnostics."""

    success: bool
    data: list[Row] = field(default_factory=list)
    error: str | None = None
    diagnostics: QueryDiagnostics | None = None
    statements_count: int = 0
    warnings: tuple[str, ...] = ()

    @property
    def multi_statement(self) -> bool:
        return self.statements_count > 1

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "multiStatement": self.multi_statement,
            "statementsCount": self.statements_count,
            "warnings": list(self.warnings),
        }
        if self.success:
            payload["data"] = self.data
            return payload
        diagnostics = self.diagnostics
        payload["error"] = self.error
        payload["sqlState"] = diagnostics.sql_state if diagnostics else None
        payload["code"] = diagnostics.code if diagnostics else None
        payload["detail"] = diagnostics.detail if diagnostics else None
        payload["hint"] = diagnostics.hint if diagnostics else None
        payload["position"] = diagnostics.position if diagnostics else None
        return payload


class PostgresService:
    """Browse and modify data behind stored connection profiles."""

    def __init__(
        self,
        provisioner: ConnectionProvisioner | None = None,
        *,
        executor: QueryExecutor | None = None,
        templates: TemplateCatalog | None = None,
        query_log: QueryLogSink | None = None,
        config: ExplorerConfig | None = None,
    ) -> None:
        self._config = config or ExplorerConfig()
        self._provisioner = provisioner or ConnectionProvisioner(self._config)
        self._executor = executor or QueryExecutor()
        self._templates = templates or TemplateCatalog.default().with_overrides(self._config.template_overrides())
        self._query_log = query_log if query_log is not None else InMemoryQueryLog()

    @property
    def provisioner(self) -> ConnectionProvisioner:
        return self._provisioner

    @property
    def templates(self) -> TemplateCatalog:
        return self._templates

    @property
    def query_log(self) -> QueryLogSink:
        return self._query_log

    async def test_connection(self, credentials: ConnectionCredentials | Mapping[str, Any]) -> bool:
        """Validate credentials and check the server answers ``SELECT 1``."""

        if not isinstance(credentials, ConnectionCredentials):
            credentials = ConnectionCredentials.model_validate(credentials)
        return await self._provisioner.test_connection(credentials)

    async def list_databases(self, profile: ConnectionProfile) -> list[Row]:
        async with self._provisioner.session(profile) as handle:
            return await self._executor.execute_single(handle, _DATABASES_QUERY)

    async def list_schemas(self, profile: ConnectionProfile, database: str | None = None) -> list[Row]:
        async with self._provisioner.session(profile, database) as handle:
            return await self._executor.execute_single(handle, _SCHEMAS_QUERY)

    async def list_tables(self, profile: ConnectionProfile, database: str | None = None) -> list[Row]:
        """User tables and views, system schemas excluded."""

        async with self._provisioner.session(profile, database) as handle:
            return await self._executor.execute_single(handle, _TABLES_QUERY)

    async def table_columns(
        self,
        profile: ConnectionProfile,
        database: str | None,
        table: str,
        schema: str = "public",
    ) -> list[Row]:
        """Column definitions in ordinal order, flagging primary-key members."""

        async with self._provisioner.session(profile, database) as handle:
            return await self._executor.execute_single(handle, _COLUMNS_QUERY, [table, schema, table, schema])

    async def table_data(
        self,
        profile: ConnectionProfile,
        database: str | None,
        table: str,
        *,
        schema: str = "public",
        page: int = 1,
        per_page: int | None = None,
        filters: Any = None,
        sorting: Any = None,
        executor_id: str | None = None,
    ) -> TablePage:
        """One page of rows plus the total matching the same filters."""

        page = max(1, int(page))
        per_page = self._per_page(per_page)
        where = compile_filters(_filter_entries(filters))
        order = compile_sorts(_sort_entries(sorting))

        select = self._template_query(
            "table_data",
            {"schema": schema, "table": table, "limit": per_page, "offset": (page - 1) * per_page},
            SelectQuery,
        )
        rendered = select.where(where).ordered_by(order).render()
        counted = self._template_query("table_count", {"schema": schema, "table": table}, CountQuery)
        count_rendered = counted.where(where).render()

        try:
            async with self._provisioner.session(profile, database) as handle:
                rows = await self._executor.execute_single(handle, rendered.sql, rendered.bindings)
                total = await self._executor.fetch_count(handle, count_rendered.sql, count_rendered.bindings)
        except _DRIVER_ERRORS as exc:
            raise QueryExecutionError(f"Failed to load data from {schema}.{table}: {exc}") from exc

        if where.sql or order:
            await self._log(profile, interpolate_query(rendered.sql, rendered.bindings), ExecutorKind.SYSTEM, executor_id)
        return TablePage(rows, total)

    async def table_count(
        self,
        profile: ConnectionProfile,
        database: str | None,
        table: str,
        *,
        schema: str = "public",
        filters: Any = None,
    ) -> int:
        where = compile_filters(_filter_entries(filters))
        rendered = CountQuery(qualify(schema, table)).where(where).render()
        try:
            async with self._provisioner.session(profile, database) as handle:
                return await self._executor.fetch_count(handle, rendered.sql, rendered.bindings)
        except _DRIVER_ERRORS as exc:
            raise QueryExecutionError(f"Failed to count rows in {schema}.{table}: {exc}") from exc

    async def insert_row(
        self,
        profile: ConnectionProfile,
        database: str | None,
        schema: str,
        table: str,
        data: Mapping[str, Any],
        *,
        executor_id: str | None = None,
    ) -> bool:
        """Insert one row; empty strings are stored as NULL."""

        query = self._template_query("insert_row", {"schema": schema, "table": table}, InsertQuery)
        rendered = query.with_values(data).render()
        async with self._provisioner.session(profile, database) as handle:
            await self._executor.execute_command(handle, rendered.sql, rendered.bindings)
        await self._log(profile, interpolate_query(rendered.sql, rendered.bindings), ExecutorKind.USER, executor_id)
        return True

    async def update_row(
        self,
        profile: ConnectionProfile,
        database: str | None,
        schema: str,
        table: str,
        values: Mapping[str, Any],
        match: Mapping[str, Any],
        *,
        executor_id: str | None = None,
    ) -> int:
        """Update rows equal to ``match`` and return how many changed."""

        query = self._template_query("update_row", {"schema": schema, "table": table}, UpdateQuery)
        rendered = query.with_values(values).matching(match).render()
        async with self._provisioner.session(profile, database) as handle:
            status = await self._executor.execute_command(handle, rendered.sql, rendered.bindings)
        await self._log(profile, interpolate_query(rendered.sql, rendered.bindings), ExecutorKind.USER, executor_id)
        return affected_rows(status)

    async def delete_row(
        self,
        profile: ConnectionProfile,
        database: str | None,
        schema: str,
        table: str,
        match: Mapping[str, Any],
        *,
        executor_id: str | None = None,
    ) -> int:
        query = self._template_query("delete_row", {"schema": schema, "table": table}, DeleteQuery)
        rendered = query.matching(match).render()
        async with self._provisioner.session(profile, database) as handle:
            status = await self._executor.execute_command(handle, rendered.sql, rendered.bindings)
        await self._log(profile, interpolate_query(rendered.sql, rendered.bindings), ExecutorKind.USER, executor_id)
        return affected_rows(status)

    async def execute_query(
        self,
        profile: ConnectionProfile,
        database: str | None,
        sql: str,
        *,
        executor_id: str | None = None,
    ) -> QueryOutcome:
        """Run user SQL; several statements share one transaction.

        Driver errors and connection failures come back as a failed outcome
        instead of raising; only driver errors carry diagnostics.
        """

        statements = split_statements(sql)
        if not statements:
            return QueryOutcome(success=False, error="No SQL statement to execute.")
        warnings = tuple(diagnostic.message for diagnostic in lint_statements(statements))

        try:
            async with self._provisioner.session(profile, database) as handle:
                if len(statements) == 1:
                    rows = await self._executor.execute_single(handle, statements[0])
                else:
                    rows = await self._executor.execute_many(handle, statements)
        except ConnectionProvisioningError as exc:
            LOG.info("Query on %s not run: %s", profile.name, exc)
            return QueryOutcome(success=False, error=str(exc), statements_count=len(statements), warnings=warnings)
        except _DRIVER_ERRORS as exc:
            diagnostics = QueryDiagnostics.from_exception(exc)
            LOG.info("Query on %s failed (%s): %s", profile.name, diagnostics.sql_state, diagnostics.message)
            return QueryOutcome(
                success=False,
                error=diagnostics.message,
                diagnostics=diagnostics,
                statements_count=len(statements),
                warnings=warnings,
            )

        await self._log(profile, sql, ExecutorKind.USER, executor_id)
        return QueryOutcome(success=True, data=rows, statements_count=len(statements), warnings=warnings)

    async def execute_stored_query(
        self,
        profile: ConnectionProfile,
        database: str | None,
        name: str,
        params: Mapping[str, Any],
        *,
        executor_id: str | None = None,
    ) -> list[Row]:
        """Run a read-only named template with its parameters filled in."""

        template = self._templates.get(name)
        if template.kind not in (TemplateKind.SELECT, TemplateKind.COUNT):
            raise TemplateError(f"Template '{name}' does not return rows")
        sql = self._templates.render(name, params)
        async with self._provisioner.session(profile, database) as handle:
            rows = await self._executor.execute_single(handle, sql)
        await self._log(profile, sql, ExecutorKind.SYSTEM, executor_id)
        return rows

    async def refresh_metadata(self, profile: ConnectionProfile, database: str | None = None) -> ConnectionProfile:
        """Return the profile with a fresh server snapshot merged into its metadata."""

        async with self._provisioner.session(profile, database) as handle:
            metadata = await fetch_server_metadata(handle, profile.metadata)
        LOG.debug("Refreshed metadata for %s", profile.name)
        return profile.with_metadata(metadata)

    async def history(self, profile: ConnectionProfile, limit: int | None = None) -> list[QueryLogEntry]:
        cap = self._config.history_limit
        return await self._query_log.recent(profile.id, cap if limit is None else max(1, min(int(limit), cap)))

    async def forget_connection(self, profile: ConnectionProfile) -> None:
        """Drop every log entry recorded for the profile."""

        await self._query_log.forget(profile.id)

    def _per_page(self, per_page: int | None) -> int:
        if per_page is None:
            return self._config.default_per_page
        return min(max(1, int(per_page)), self._config.max_per_page)

    def _template_query(self, name: str, params: Mapping[str, Any], expected: type) -> Any:
        query = self._templates.query(name, params)
        if not isinstance(query, expected):
            raise TemplateError(f"Template '{name}' must build a {expected.__name__}")
        return query

    async def _log(
        self,
        profile: ConnectionProfile,
        query: str,
        executor: ExecutorKind,
        executor_id: str | None,
    ) -> None:
        await self._query_log.record(
            QueryLogEntry(connection_id=profile.id, query=query, executor=executor, executor_id=executor_id)
        )


def _filter_entries(raw: Any) -> Sequence[Any]:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        return parse_filters(raw)
    return list(raw)


def _sort_entries(raw: Any) -> Sequence[Any]:
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        return parse_sorts(raw)
    return list(raw)


__all__ = ["PostgresService", "QueryOutcome"]
