"""Tests for per-request connection provisioning."""

from __future__ import annotations

import asyncio
import ssl
from typing import Any

import pytest

from pgexplorer.config import ConnectionCredentials, ExplorerConfig
from pgexplorer.connections import (
    ConnectionProvisioner,
    ConnectionProvisioningError,
    DriverSettings,
    HandleState,
    fetch_server_metadata,
)
from pgexplorer.models import ConnectionProfile


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _profile(**overrides: Any) -> ConnectionProfile:
    values: dict[str, Any] = {
        "id": "42",
        "name": "Local",
        "host": "localhost",
        "port": 5432,
        "username": "postgres",
        "password": "secret",
        "database": "postgres",
    }
    values.update(overrides)
    return ConnectionProfile(**values)


def test_key_includes_database_only_when_given() -> None:
    profile = _profile()

    assert ConnectionProvisioner.key_for(profile) == "postgres_42"
    assert ConnectionProvisioner.key_for(profile, "analytics") == "postgres_42_analytics"


def test_settings_target_requested_database() -> None:
    settings = DriverSettings.from_profile(_profile(), "analytics")

    assert settings.database == "analytics"
    assert "secret" not in repr(settings)
    assert DriverSettings.from_profile(_profile()).database == "postgres"


def test_ssl_argument_passes_mode_without_certificates() -> None:
    assert DriverSettings.from_profile(_profile(sslmode="require")).ssl_argument() == "require"


def test_ssl_argument_builds_context_from_root_certificate(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def _create_default_context(cafile: str | None = None) -> ssl.SSLContext:
        captured["cafile"] = cafile
        return ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    monkeypatch.setattr("pgexplorer.connections.ssl.create_default_context", _create_default_context)
    settings = DriverSettings.from_profile(_profile(sslmode="verify-full", sslrootcert="/etc/ca.pem"))

    context = settings.ssl_argument()

    assert isinstance(context, ssl.SSLContext)
    assert captured["cafile"] == "/etc/ca.pem"
    assert context.check_hostname is True


@pytest.mark.anyio
async def test_session_opens_and_releases(fake_db: Any) -> None:
    provisioner = ConnectionProvisioner(ExplorerConfig(statement_timeout_ms=1500, application_name="tests"))

    async with provisioner.session(_profile(), "analytics") as handle:
        assert handle.state is HandleState.OPEN
        assert provisioner.registered_keys == ("postgres_42_analytics",)
        assert provisioner.settings_for(handle.key).database == "analytics"

    kwargs = fake_db.connect_kwargs[0]
    assert kwargs["database"] == "analytics"
    assert kwargs["password"] == "secret"
    assert kwargs["server_settings"] == {"application_name": "tests", "statement_timeout": "1500"}
    assert handle.state is HandleState.CLOSED
    assert fake_db.connections[0].closed is True
    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_session_releases_when_body_raises(fake_db: Any) -> None:
    provisioner = ConnectionProvisioner()

    with pytest.raises(RuntimeError, match="boom"):
        async with provisioner.session(_profile()):
            raise RuntimeError("boom")

    assert fake_db.connections[0].closed is True
    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_connect_failure_wraps_driver_error(fake_db: Any) -> None:
    fake_db.connect_error = OSError("connection refused")
    provisioner = ConnectionProvisioner()

    with pytest.raises(ConnectionProvisioningError, match="Local") as excinfo:
        await provisioner.acquire(_profile())

    assert isinstance(excinfo.value.__cause__, OSError)
    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_concurrent_leases_on_same_key_do_not_interfere(fake_db: Any) -> None:
    provisioner = ConnectionProvisioner()
    profile = _profile()
    first = await provisioner.acquire(profile)
    second = await provisioner.acquire(profile)

    assert first.key == second.key
    assert first.lease != second.lease

    await provisioner.release(first)

    assert second.state is HandleState.OPEN
    assert second.connection.is_closed() is False
    assert provisioner.registered_keys == (second.key,)

    await provisioner.release(second)

    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_parallel_sessions_each_get_their_own_connection(fake_db: Any) -> None:
    provisioner = ConnectionProvisioner()

    async def _use(database: str) -> str:
        async with provisioner.session(_profile(), database) as handle:
            await asyncio.sleep(0)
            return handle.settings.database

    databases = await asyncio.gather(*(_use(name) for name in ("a", "b", "a")))

    assert databases == ["a", "b", "a"]
    assert len(fake_db.connections) == 3
    assert all(connection.closed for connection in fake_db.connections)
    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_test_connection_succeeds(fake_db: Any) -> None:
    fake_db.on("SELECT 1", [{"?column?": 1}])
    provisioner = ConnectionProvisioner()
    credentials = ConnectionCredentials(host="db", username="app", database="main")

    assert await provisioner.test_connection(credentials) is True
    assert "password" not in fake_db.connect_kwargs[0]
    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_test_connection_unreachable_host_cleans_up(fake_db: Any) -> None:
    fake_db.connect_error = OSError("could not resolve host")
    provisioner = ConnectionProvisioner()
    credentials = ConnectionCredentials(host="nowhere.invalid", username="app", database="main")

    assert await provisioner.test_connection(credentials) is False
    assert provisioner.registered_keys == ()


@pytest.mark.anyio
async def test_fetch_server_metadata_merges_previous_snapshot(fake_db: Any) -> None:
    fake_db.on("version()", [{"version": "PostgreSQL 16.2"}])
    fake_db.on("server_version", [{"server_version": "16.2", "timezone": "UTC"}])
    fake_db.on("pg_encoding_to_char", [{"datname": "main", "encoding": "UTF8", "collation": "C"}])
    provisioner = ConnectionProvisioner()

    async with provisioner.session(_profile(), "main") as handle:
        metadata = await fetch_server_metadata(handle, {"color": "blue"})

    assert metadata["color"] == "blue"
    assert metadata["database"] == "main"
    assert metadata["version"] == "PostgreSQL 16.2"
    assert metadata["server"]["timezone"] == "UTC"
    assert metadata["database_config"]["encoding"] == "UTF8"
    assert metadata["last_updated"]
