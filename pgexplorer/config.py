"""App configuration loading helpers."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Literal, Mapping

import tomllib
from pydantic import BaseModel, Field, SecretStr, ValidationError

from .models import ConnectionProfile

CONFIG_FILE = Path.home() / ".config" / "pgexplorer" / "config.toml"

LOG = logging.getLogger(__name__)

SslMode = Literal["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]


class ConnectionCredentials(BaseModel):
    """Credentials accepted from callers before anything touches the network."""

    host: str = Field(min_length=1, max_length=255)
    port: int = Field(default=5432, ge=1, le=65535)
    username: str = Field(min_length=1, max_length=255)
    password: SecretStr = Field(default=SecretStr(""))
    database: str = Field(min_length=1, max_length=255)
    sslmode: SslMode = "prefer"
    sslcert: str | None = None
    sslkey: str | None = None
    sslrootcert: str | None = None


class ConnectionProfileConfig(ConnectionCredentials):
    """Named, stored connection."""

    name: str = Field(min_length=1, max_length=255)
    id: str | None = None
    owner: str | None = None
    metadata: dict[str, Any] | None = None

    def to_profile(self) -> ConnectionProfile:
        """Build the runtime profile, minting a stable id when none was stored."""

        return ConnectionProfile(
            id=self.id or uuid.uuid4().hex,
            name=self.name,
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password.get_secret_value(),
            database=self.database,
            sslmode=self.sslmode,
            sslcert=self.sslcert,
            sslkey=self.sslkey,
            sslrootcert=self.sslrootcert,
            metadata=self.metadata,
            owner=self.owner,
        )


class TemplateConfig(BaseModel):
    """Override or addition for a named query template."""

    kind: Literal["select", "count", "insert", "update", "delete"] | None = None
    description: str | None = None
    parameters: list[str] | None = None
    source: str | None = None
    columns: str | None = None
    where: str | None = None
    order_by: str | None = None
    paginate: bool | None = None


class ExplorerConfig(BaseModel):
    """Shape of the configuration file."""

    connect_timeout: float = Field(default=5.0, gt=0)
    command_timeout: float | None = Field(default=None, gt=0)
    statement_timeout_ms: int | None = Field(default=30_000, ge=0)
    application_name: str = "pgexplorer"
    default_sslmode: SslMode = "prefer"
    default_per_page: int = Field(default=20, ge=1)
    max_per_page: int = Field(default=500, ge=1)
    history_limit: int = Field(default=50, ge=1)
    templates: dict[str, TemplateConfig] = Field(default_factory=dict)

    def template_overrides(self) -> dict[str, Mapping[str, Any]]:
        """Template fields as plain mappings, ready for ``TemplateCatalog.with_overrides``."""

        return {name: entry.model_dump(exclude_none=True) for name, entry in self.templates.items()}


def load_config(path: Path | None = None) -> ExplorerConfig:
    """Load configuration from disk; fall back to defaults if missing or invalid."""

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return ExplorerConfig()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config file %s: %s", target, exc)
        return ExplorerConfig()

    try:
        return ExplorerConfig.model_validate(raw)
    except ValidationError as exc:
        LOG.warning("Ignoring invalid config file %s: %s", target, exc)
        return ExplorerConfig()


__all__ = [
    "CONFIG_FILE",
    "ConnectionCredentials",
    "ConnectionProfileConfig",
    "ExplorerConfig",
    "SslMode",
    "TemplateConfig",
    "load_config",
]
