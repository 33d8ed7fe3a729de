"""Decoders for the JSON documents a CVMFS server publishes.

Three documents are consumed:

- /cvmfs/info/v1/repositories.json: repositories or replicas hosted by the
  server plus optional environment details
- /cvmfs/info/v1/meta.json: administrative contact details
- /cvmfs/<repo>/.cvmfs_status.json: last snapshot and garbage collection times
"""

import ipaddress
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from errors import DocumentFormatError


HOSTNAME_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")

# Fully qualified repository names, e.g. software.example.org
REPOSITORY_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# Format written by `date` on the publisher, e.g. "Tue Jan 14 10:03:21 UTC 2025"
DATE_FORMATS = (
    "%a %b %d %H:%M:%S %Z %Y",
    "%a %b %d %H:%M:%S %Y",
)


def normalize_hostname(hostname: str) -> str:
    """Validate a hostname (optionally with :port) and return it lowercased.

    Raises:
        ValueError: if the hostname is not a DNS name or IP address
    """
    value = hostname.strip().lower()
    if not value:
        raise ValueError("Hostname is empty")

    host, port = value, None
    if value.startswith("["):
        # Bracketed IPv6, e.g. [::1]:8000
        end = value.find("]")
        if end == -1:
            raise ValueError(f"Invalid hostname: {hostname}")
        host = value[1:end]
        rest = value[end + 1:]
        if rest:
            if not rest.startswith(":"):
                raise ValueError(f"Invalid hostname: {hostname}")
            port = rest[1:]
    elif value.count(":") == 1:
        host, port = value.split(":")

    if port is not None and not (port.isdigit() and 0 < int(port) < 65536):
        raise ValueError(f"Invalid port in hostname: {hostname}")

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = None
    if address is not None:
        # URLs need IPv6 literals in brackets
        if address.version == 6 and not value.startswith("["):
            return f"[{host}]"
        return value

    labels = host.rstrip(".").split(".")
    if len(host) > 253 or not all(HOSTNAME_LABEL.match(label) for label in labels):
        raise ValueError(f"Invalid hostname: {hostname}")

    return value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp leniently, returning None when it can't be read.

    Accepts RFC 2822, the `date` output CVMFS writes into status files, and
    ISO 8601. Naive results are taken to be UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()

    parsed: datetime | None = None
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None

    if parsed is None:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _require_mapping(data: Any, source: str) -> dict:
    if not isinstance(data, dict):
        raise DocumentFormatError(source, "expected a JSON object")
    return data


def _optional_str(data: dict, key: str, source: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DocumentFormatError(source, f"'{key}' must be a string")
    return value


@dataclass(frozen=True)
class RepositoryEntry:
    """A repository or replica listed in repositories.json."""

    name: str
    url: str | None = None


@dataclass(frozen=True)
class RepositoriesJSON:
    schema: int
    repositories: list[RepositoryEntry] = field(default_factory=list)
    replicas: list[RepositoryEntry] = field(default_factory=list)
    cvmfs_version: str | None = None
    last_geodb_update: datetime | None = None
    os_version_id: str | None = None
    os_pretty_name: str | None = None
    os_id: str | None = None

    @property
    def has_replicas(self) -> bool:
        return bool(self.replicas)

    def repositories_and_replicas(self) -> list[RepositoryEntry]:
        """Both lists combined; they play the same role for scraping."""
        return [*self.repositories, *self.replicas]

    @classmethod
    def from_dict(cls, data: Any, source: str = "repositories.json") -> "RepositoriesJSON":
        data = _require_mapping(data, source)

        schema = data.get("schema")
        if isinstance(schema, bool) or not isinstance(schema, int):
            raise DocumentFormatError(source, "'schema' must be an integer")

        return cls(
            schema=schema,
            repositories=_parse_entries(data.get("repositories"), "repositories", source),
            replicas=_parse_entries(data.get("replicas"), "replicas", source),
            cvmfs_version=_optional_str(data, "cvmfs_version", source),
            last_geodb_update=parse_timestamp(data.get("last_geodb_update")),
            os_version_id=_optional_str(data, "os_version_id", source),
            os_pretty_name=_optional_str(data, "os_pretty_name", source),
            os_id=_optional_str(data, "os_id", source),
        )


def _parse_entries(raw: Any, key: str, source: str) -> list[RepositoryEntry]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise DocumentFormatError(source, f"'{key}' must be a list")

    entries = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise DocumentFormatError(source, f"every entry in '{key}' needs a name")
        if not REPOSITORY_NAME.match(item["name"]):
            raise DocumentFormatError(source, f"invalid repository name {item['name']!r}")
        entries.append(RepositoryEntry(name=item["name"], url=_optional_str(item, "url", source)))
    return entries


@dataclass(frozen=True)
class MetaJSON:
    administrator: str
    email: str
    organisation: str
    custom: Any

    @classmethod
    def from_dict(cls, data: Any, source: str = "meta.json") -> "MetaJSON":
        data = _require_mapping(data, source)

        missing = [
            key for key in ("administrator", "email", "organisation", "custom")
            if key not in data
        ]
        if missing:
            raise DocumentFormatError(source, f"missing fields: {', '.join(missing)}")

        for key in ("administrator", "email", "organisation"):
            if not isinstance(data[key], str):
                raise DocumentFormatError(source, f"'{key}' must be a string")

        return cls(
            administrator=data["administrator"],
            email=data["email"],
            organisation=data["organisation"],
            custom=data["custom"],
        )


@dataclass(frozen=True)
class StatusJSON:
    last_snapshot: datetime | None = None
    last_gc: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any, source: str = ".cvmfs_status.json") -> "StatusJSON":
        data = _require_mapping(data, source)
        return cls(
            last_snapshot=parse_timestamp(data.get("last_snapshot")),
            last_gc=parse_timestamp(data.get("last_gc")),
        )
