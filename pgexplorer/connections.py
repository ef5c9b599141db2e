"""Per-request connection provisioning for stored PostgreSQL profiles."""

from __future__ import annotations

import asyncio
import logging
import ssl
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator

import asyncpg

from .config import ConnectionCredentials, ExplorerConfig
from .models import ConnectionProfile, MetadataSnapshot

LOG = logging.getLogger(__name__)


class ConnectionProvisioningError(RuntimeError):
    """Raised when a handle cannot be opened for a profile."""


class HandleState(str, Enum):
    """Lifecycle of one provisioned handle."""

    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class DriverSettings:
    """Connection parameters registered under a handle key."""

    host: str
    port: int
    user: str
    database: str
    password: str = field(default="", repr=False)
    sslmode: str = "prefer"
    sslcert: str | None = field(default=None, repr=False)
    sslkey: str | None = field(default=None, repr=False)
    sslrootcert: str | None = field(default=None, repr=False)

    @classmethod
    def from_profile(
        cls,
        profile: ConnectionProfile,
        database: str | None = None,
        *,
        default_sslmode: str = "prefer",
    ) -> DriverSettings:
        return cls(
            host=profile.host,
            port=profile.port,
            user=profile.username,
            database=database or profile.database,
            password=profile.password,
            sslmode=profile.sslmode or default_sslmode,
            sslcert=profile.sslcert,
            sslkey=profile.sslkey,
            sslrootcert=profile.sslrootcert,
        )

    @classmethod
    def from_credentials(cls, credentials: ConnectionCredentials) -> DriverSettings:
        return cls(
            host=credentials.host,
            port=credentials.port,
            user=credentials.username,
            database=credentials.database,
            password=credentials.password.get_secret_value(),
            sslmode=credentials.sslmode,
            sslcert=credentials.sslcert,
            sslkey=credentials.sslkey,
            sslrootcert=credentials.sslrootcert,
        )

    def ssl_argument(self) -> str | ssl.SSLContext:
        """Value for asyncpg's ``ssl`` argument.

        Without certificate material the sslmode string is passed through;
        with it, a context is built and SSL becomes mandatory.
        """

        if self.sslmode == "disable" or not (self.sslcert or self.sslkey or self.sslrootcert):
            return self.sslmode
        context = ssl.create_default_context(cafile=self.sslrootcert)
        if self.sslcert:
            context.load_cert_chain(self.sslcert, self.sslkey)
        if self.sslmode in ("verify-ca", "verify-full"):
            context.check_hostname = self.sslmode == "verify-full"
        else:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


@dataclass(slots=True)
class ProvisionedHandle:
    """A leased live connection bound to one configuration key."""

    key: str
    lease: str
    settings: DriverSettings
    state: HandleState = HandleState.UNCONFIGURED
    connection: Any = None

    @property
    def name(self) -> str:
        return f"{self.key}#{self.lease}"


class ConnectionProvisioner:
    """Registry of driver settings and the leases currently opened against them.

    Every acquisition re-registers the settings for its key, so edits to a
    profile take effect on the next request, and gets its own lease, so two
    requests on the same key never close each other's connection. A key's
    settings are dropped once its last lease is released.
    """

    def __init__(self, config: ExplorerConfig | None = None) -> None:
        self._config = config or ExplorerConfig()
        self._lock = asyncio.Lock()
        self._settings: dict[str, DriverSettings] = {}
        self._leases: dict[str, set[str]] = {}

    @staticmethod
    def key_for(profile: ConnectionProfile, database: str | None = None) -> str:
        key = f"postgres_{profile.id}"
        return f"{key}_{database}" if database else key

    @property
    def registered_keys(self) -> tuple[str, ...]:
        """Keys with at least one outstanding lease."""

        return tuple(self._settings)

    def settings_for(self, key: str) -> DriverSettings | None:
        return self._settings.get(key)

    async def acquire(self, profile: ConnectionProfile, database: str | None = None) -> ProvisionedHandle:
        """Register settings for the profile and open a fresh connection."""

        settings = DriverSettings.from_profile(
            profile,
            database,
            default_sslmode=self._config.default_sslmode,
        )
        handle = await self._register(self.key_for(profile, database), settings)
        try:
            await self._open(handle, label=profile.name)
        except BaseException:
            await self.release(handle)
            raise
        return handle

    async def release(self, handle: ProvisionedHandle) -> None:
        """Close the handle's connection and drop its lease."""

        connection, handle.connection = handle.connection, None
        try:
            if connection is not None and not connection.is_closed():
                await connection.close()
        except Exception as exc:  # pragma: no cover - best effort cleanup
            LOG.warning("Closing %s failed, terminating instead: %s", handle.name, exc)
            connection.terminate()
        finally:
            await self._unregister(handle)
            handle.state = HandleState.CLOSED

    @asynccontextmanager
    async def session(
        self,
        profile: ConnectionProfile,
        database: str | None = None,
    ) -> AsyncIterator[ProvisionedHandle]:
        """Scoped acquisition; the handle is released even when the body raises."""

        handle = await self.acquire(profile, database)
        try:
            yield handle
        finally:
            await self.release(handle)

    async def test_connection(self, credentials: ConnectionCredentials) -> bool:
        """Open a throwaway handle, run ``SELECT 1`` and always tear it down."""

        key = f"postgres_test_{uuid.uuid4().hex}"
        handle = await self._register(key, DriverSettings.from_credentials(credentials))
        try:
            await self._open(handle, label=credentials.host)
            await handle.connection.fetchval("SELECT 1")
        except (ConnectionProvisioningError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            LOG.warning("Connection test against %s:%s failed: %s", credentials.host, credentials.port, exc)
            return False
        finally:
            await self.release(handle)
        return True

    async def _register(self, key: str, settings: DriverSettings) -> ProvisionedHandle:
        handle = ProvisionedHandle(key=key, lease=uuid.uuid4().hex[:12], settings=settings)
        async with self._lock:
            previous = self._settings.get(key)
            if previous is not None and previous != settings:
                LOG.info("Settings for %s changed; new leases use the update", key)
            self._settings[key] = settings
            self._leases.setdefault(key, set()).add(handle.lease)
        handle.state = HandleState.CONFIGURED
        return handle

    async def _unregister(self, handle: ProvisionedHandle) -> None:
        async with self._lock:
            leases = self._leases.get(handle.key)
            if leases is not None:
                leases.discard(handle.lease)
                if not leases:
                    del self._leases[handle.key]
                    self._settings.pop(handle.key, None)

    async def _open(self, handle: ProvisionedHandle, *, label: str) -> None:
        try:
            handle.connection = await asyncpg.connect(**self._connect_kwargs(handle.settings))
        except Exception as exc:
            raise ConnectionProvisioningError(f"Failed to connect to '{label}': {exc}") from exc
        handle.state = HandleState.OPEN
        LOG.debug("Opened %s", handle.name)

    def _connect_kwargs(self, settings: DriverSettings) -> dict[str, object]:
        server_settings = {"application_name": self._config.application_name}
        if self._config.statement_timeout_ms:
            server_settings["statement_timeout"] = str(self._config.statement_timeout_ms)
        kwargs: dict[str, object] = {
            "host": settings.host,
            "port": settings.port,
            "user": settings.user,
            "database": settings.database,
            "ssl": settings.ssl_argument(),
            "timeout": self._config.connect_timeout,
            "server_settings": server_settings,
        }
        if settings.password:
            kwargs["password"] = settings.password
        if self._config.command_timeout is not None:
            kwargs["command_timeout"] = self._config.command_timeout
        return kwargs


_VERSION_QUERY = "SELECT version() AS version"

_SERVER_QUERY = """
    SELECT
        current_setting('server_version') AS server_version,
        current_setting('max_connections') AS max_connections,
        current_setting('shared_buffers') AS shared_buffers,
        current_setting('work_mem') AS work_mem,
        current_setting('timezone') AS timezone,
        pg_size_pretty(pg_database_size(current_database())) AS database_size,
        (SELECT count(*) FROM pg_stat_activity) AS active_connections
"""

_DATABASE_CONFIG_QUERY = """
    SELECT
        datname,
        pg_encoding_to_char(encoding) AS encoding,
        datcollate AS collation
    FROM pg_database
    WHERE datname = current_database()
"""


async def fetch_server_metadata(
    handle: ProvisionedHandle,
    previous: MetadataSnapshot | None = None,
) -> dict[str, Any]:
    """Collect version, server settings and encoding for the handle's database."""

    conn = handle.connection
    version = await conn.fetchrow(_VERSION_QUERY)
    server = await conn.fetchrow(_SERVER_QUERY)
    database_config = await conn.fetchrow(_DATABASE_CONFIG_QUERY)
    metadata = dict(previous or {})
    metadata["database"] = handle.settings.database
    metadata["version"] = version["version"] if version else None
    metadata["server"] = dict(server) if server else None
    metadata["database_config"] = dict(database_config) if database_config else None
    metadata["last_updated"] = datetime.now(tz=timezone.utc).isoformat()
    return metadata


__all__ = [
    "ConnectionProvisioner",
    "ConnectionProvisioningError",
    "DriverSettings",
    "HandleState",
    "ProvisionedHandle",
    "fetch_server_metadata",
]
