"""Configuration loading and validation for cvmfs-scraper."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from errors import ConfigError
from models import BackendKind, Server, ServerRole


DEFAULT_CONFIG_PATH = Path("config.toml")

DEFAULT_TIMEOUT = 10.0

DEFAULTS = {
    "timeout": DEFAULT_TIMEOUT,
    "concurrent_servers": 4,
    "concurrent_repositories": 1,
    "servers": [],
}


@dataclass(frozen=True)
class ServerEntry:
    """A server to scrape together with the repositories expected on it."""

    server: Server
    repositories: list[str] = field(default_factory=list)


@dataclass
class Config:
    timeout: float
    concurrent_servers: int
    concurrent_repositories: int
    servers: list[ServerEntry]

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        timeout_override: float | None = None,
        concurrency_override: int | None = None,
        servers_override: list[ServerEntry] | None = None,
    ) -> "Config":
        """Load configuration from TOML file with defaults.

        Raises:
            ConfigError: if the file can't be parsed or holds invalid values
        """
        config_data = dict(DEFAULTS)

        path = config_path or DEFAULT_CONFIG_PATH
        if path.exists():
            try:
                with open(path, "rb") as f:
                    file_config = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {path}: {e}") from e
            config_data.update(file_config)

        if timeout_override is not None:
            config_data["timeout"] = timeout_override
        if concurrency_override is not None:
            config_data["concurrent_servers"] = concurrency_override

        if servers_override is not None:
            servers = servers_override
        else:
            servers = [
                parse_server_entry(entry, index)
                for index, entry in enumerate(config_data["servers"])
            ]

        try:
            timeout = float(config_data["timeout"])
            concurrent_servers = int(config_data["concurrent_servers"])
            concurrent_repositories = int(config_data["concurrent_repositories"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        if timeout <= 0:
            raise ConfigError("timeout must be positive")
        if concurrent_servers < 1 or concurrent_repositories < 1:
            raise ConfigError("concurrency settings must be at least 1")

        return cls(
            timeout=timeout,
            concurrent_servers=concurrent_servers,
            concurrent_repositories=concurrent_repositories,
            servers=servers,
        )


def make_server_entry(
    hostname: str,
    server_type: str = "stratum1",
    backend: str = "autodetect",
    repositories: list[str] | None = None,
) -> ServerEntry:
    """Build a ServerEntry from plain strings, as found in TOML or on the CLI.

    Raises:
        ConfigError: on an unknown type/backend or an invalid hostname
    """
    try:
        server = Server(
            role=ServerRole.parse(server_type),
            backend=BackendKind.parse(backend),
            hostname=hostname,
        )
    except ValueError as e:
        raise ConfigError(str(e)) from e
    return ServerEntry(server=server, repositories=list(repositories or []))


def parse_server_entry(entry: Any, index: int = 0) -> ServerEntry:
    """Parse one [[servers]] table."""
    if not isinstance(entry, dict):
        raise ConfigError(f"servers[{index}] must be a table")
    if not isinstance(entry.get("hostname"), str):
        raise ConfigError(f"servers[{index}] needs a hostname")
    if "type" not in entry:
        raise ConfigError(f"servers[{index}] ({entry['hostname']}) needs a type")

    repositories = entry.get("repositories", [])
    if not isinstance(repositories, list) or not all(
        isinstance(name, str) for name in repositories
    ):
        raise ConfigError(f"servers[{index}] repositories must be a list of strings")

    return make_server_entry(
        hostname=entry["hostname"],
        server_type=str(entry["type"]),
        backend=str(entry.get("backend", BackendKind.AUTO_DETECT.value)),
        repositories=repositories,
    )
