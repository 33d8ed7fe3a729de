"""Server descriptors, scraped records and scrape outcomes."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import semver

from documents import MetaJSON, RepositoriesJSON, normalize_hostname
from errors import ConversionError, MisuseError, ScraperError
from manifest import Manifest


class ServerRole(Enum):
    """The role a server plays in the distribution topology.

    ORIGIN: a Stratum0, holding the master copy of the repositories
    MIRROR: a Stratum1, replicating repositories from a Stratum0
    SYNC_MIRROR: a sync server, replicating without being a Stratum1
    """

    ORIGIN = "stratum0"
    MIRROR = "stratum1"
    SYNC_MIRROR = "syncserver"

    @classmethod
    def parse(cls, text: str) -> "ServerRole":
        return _parse_enum(cls, text)


class BackendKind(Enum):
    """The backend a server publishes its repositories with.

    AUTO_DETECT tries repositories.json: a failed fetch means S3, a
    successful one means a CVMFS web server. It is only ever configured,
    never detected.
    """

    OBJECT_STORAGE = "s3"
    REPO_PROTOCOL = "cvmfs"
    AUTO_DETECT = "autodetect"

    @classmethod
    def parse(cls, text: str) -> "BackendKind":
        return _parse_enum(cls, text)


def _parse_enum(enum_cls, text: str):
    key = text.strip().lower().replace("-", "_")
    for member in enum_cls:
        if key in (member.value, member.name.lower()):
            return member
    choices = ", ".join(member.value for member in enum_cls)
    raise ValueError(f"Unknown {enum_cls.__name__} {text!r}, expected one of: {choices}")


@dataclass(frozen=True)
class Server:
    """A CVMFS server to scrape."""

    role: ServerRole
    backend: BackendKind
    hostname: str

    def __post_init__(self):
        object.__setattr__(self, "hostname", normalize_hostname(self.hostname))

    def __str__(self) -> str:
        return f"{self.hostname} ({self.role.value}, {self.backend.value})"


@dataclass(frozen=True)
class RepositoryRecord:
    """A scraped repository (or replica)."""

    name: str
    manifest: Manifest = field(compare=False)
    last_snapshot: datetime | None = field(default=None, compare=False)
    last_gc: datetime | None = field(default=None, compare=False)

    @property
    def revision(self) -> int:
        return self.manifest.revision

    def render(self) -> list[str]:
        lines = [
            f"Name: {self.name}",
            f"Last Snapshot: {_format_time(self.last_snapshot)}",
            f"Last GC: {_format_time(self.last_gc)}",
        ]
        lines.extend(self.manifest.render())
        return lines


@dataclass(frozen=True)
class RepoJSONMetadata:
    """Server metadata taken from repositories.json.

    Every field is optional: nothing is known for S3 servers, and a CVMFS
    server may leave fields out.
    """

    schema_version: int | None = None
    cvmfs_version: semver.Version | None = None
    last_geodb_update: datetime | None = None
    os_version_id: str | None = None
    os_pretty_name: str | None = None
    os_id: str | None = None

    @classmethod
    def from_repositories_json(cls, repos_json: RepositoriesJSON) -> "RepoJSONMetadata":
        """Extract metadata, validating the CVMFS version string.

        Raises:
            ConversionError: if cvmfs_version is not a semantic version
        """
        cvmfs_version = None
        if repos_json.cvmfs_version is not None:
            try:
                cvmfs_version = semver.Version.parse(repos_json.cvmfs_version)
            except (TypeError, ValueError) as e:
                raise ConversionError(
                    f"Invalid cvmfs_version {repos_json.cvmfs_version!r}: {e}"
                ) from e

        return cls(
            schema_version=repos_json.schema,
            cvmfs_version=cvmfs_version,
            last_geodb_update=repos_json.last_geodb_update,
            os_version_id=repos_json.os_version_id,
            os_pretty_name=repos_json.os_pretty_name,
            os_id=repos_json.os_id,
        )


@dataclass(frozen=True)
class ServerMetadata:
    """Metadata merged from repositories.json and meta.json."""

    schema_version: int | None = None
    cvmfs_version: semver.Version | None = None
    last_geodb_update: datetime | None = None
    os_version_id: str | None = None
    os_pretty_name: str | None = None
    os_id: str | None = None
    administrator: str | None = None
    email: str | None = None
    organisation: str | None = None
    custom: Any = None

    def render(self) -> list[str]:
        labels = [
            ("Schema Version", self.schema_version),
            ("CVMFS Version", self.cvmfs_version),
            ("Last GeoDB Update", self.last_geodb_update),
            ("OS Version ID", self.os_version_id),
            ("OS Pretty Name", self.os_pretty_name),
            ("OS ID", self.os_id),
            ("Administrator", self.administrator),
            ("Email", self.email),
            ("Organisation", self.organisation),
            ("Custom", self.custom),
        ]
        lines = ["Metadata:"]
        for label, value in labels:
            if value is None:
                continue
            if isinstance(value, datetime):
                value = _format_time(value)
            elif label == "Custom" and not isinstance(value, str):
                value = json.dumps(value, sort_keys=True)
            lines.append(f"  {label}: {value}")
        return lines


def merge_metadata(
    repo_meta: RepoJSONMetadata | None,
    meta_json: MetaJSON | None,
) -> ServerMetadata:
    """Combine both metadata sources into one record.

    meta.json provides the administrative fields and repositories.json the
    protocol and OS fields; neither source touches the other's fields.
    """
    repo_meta = repo_meta or RepoJSONMetadata()

    ownership = {}
    if meta_json is not None:
        ownership = {
            "administrator": meta_json.administrator,
            "email": meta_json.email,
            "organisation": meta_json.organisation,
            "custom": meta_json.custom,
        }

    return ServerMetadata(
        schema_version=repo_meta.schema_version,
        cvmfs_version=repo_meta.cvmfs_version,
        last_geodb_update=repo_meta.last_geodb_update,
        os_version_id=repo_meta.os_version_id,
        os_pretty_name=repo_meta.os_pretty_name,
        os_id=repo_meta.os_id,
        **ownership,
    )


class ScrapedServer:
    """Outcome of scraping one server: either populated or failed.

    Callers must branch on is_ok()/is_failed() before reading
    variant-specific fields.
    """

    hostname: str

    def is_ok(self) -> bool:
        return isinstance(self, PopulatedServer)

    def is_failed(self) -> bool:
        return isinstance(self, FailedServer)

    def get_populated_server(self) -> "PopulatedServer":
        if not isinstance(self, PopulatedServer):
            raise MisuseError(f"{self.hostname} is a failed server")
        return self

    def get_failed_server(self) -> "FailedServer":
        if not isinstance(self, FailedServer):
            raise MisuseError(f"{self.hostname} is a populated server")
        return self


@dataclass(frozen=True)
class PopulatedServer(ScrapedServer):
    """A successfully scraped server.

    Replicas and repositories are both kept in `repositories`; a server
    never has both. `backend_detected` is never AUTO_DETECT.
    """

    role: ServerRole
    backend: BackendKind
    backend_detected: BackendKind
    hostname: str
    repositories: frozenset[RepositoryRecord]
    metadata: ServerMetadata

    def __post_init__(self):
        if self.backend_detected is BackendKind.AUTO_DETECT:
            raise ValueError("AUTO_DETECT is not a detectable backend")

    def has_repository(self, name: str) -> bool:
        return any(repo.name == name for repo in self.repositories)

    def repository(self, name: str) -> RepositoryRecord | None:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None

    def render(self) -> str:
        lines = [
            f"Server: {self.hostname}",
            f"Type: {self.role.value}",
            f"Backend: {self.backend.value}",
        ]
        if self.backend is BackendKind.AUTO_DETECT:
            lines.append(f"Detected Backend: {self.backend_detected.value}")

        if self.backend_detected is BackendKind.OBJECT_STORAGE:
            lines.append("Metadata: Not available for S3 servers.")
        else:
            lines.extend(self.metadata.render())

        lines.append("Repositories:")
        for repo in sorted(self.repositories, key=lambda r: r.name):
            lines.append(f"  {repo.name}")
            lines.extend(f"    {line}" for line in repo.render())
        return "\n".join(lines)


@dataclass(frozen=True)
class FailedServer(ScrapedServer):
    """A server that could not be scraped, with the error that stopped it."""

    hostname: str
    role: ServerRole
    backend: BackendKind
    error: ScraperError

    def render(self) -> str:
        return (
            f"Server: {self.hostname} ({self.role.value}, {self.backend.value}) "
            f"FAILED: {self.error}"
        )


def _format_time(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "unknown"
