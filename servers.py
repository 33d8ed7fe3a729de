"""Scraping of CVMFS servers: backend detection, repository collection and
metadata assembly.

Backend handling of repositories.json:

- AUTO_DETECT: fetch repositories.json. If the fetch fails the server is
  taken to be S3 backed and only the supplied repositories are scraped
  (an empty list is accepted). If it succeeds the backend is CVMFS and the
  listed repositories are scraped as well.
- OBJECT_STORAGE: never fetch repositories.json. The supplied repository
  list must not be empty.
- REPO_PROTOCOL: repositories.json must be fetched; any failure is fatal.

Any transport failure under AUTO_DETECT is read as "S3", including
transient outages of a CVMFS server. Malformed documents are always fatal.
"""

from collections.abc import Iterable
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass

import httpx

from config import DEFAULT_TIMEOUT
from documents import MetaJSON, RepositoriesJSON, StatusJSON
from errors import (
    EmptyRepositoryList,
    ScraperError,
    ServerTypeMismatch,
    TransportFailure,
)
from fetch import fetch_json, fetch_text, server_url
from logging_setup import get_logger
from manifest import parse_manifest
from models import (
    BackendKind,
    FailedServer,
    PopulatedServer,
    RepoJSONMetadata,
    RepositoryRecord,
    ScrapedServer,
    Server,
    ServerRole,
    merge_metadata,
)


REPOSITORIES_JSON_PATH = "info/v1/repositories.json"
META_JSON_PATH = "info/v1/meta.json"


@dataclass(frozen=True)
class BackendResolution:
    """What backend resolution learned about a server."""

    detected: BackendKind
    metadata: RepoJSONMetadata | None
    discovered: tuple[str, ...] = ()


def fetch_repositories_json(server: Server, client: httpx.Client) -> RepositoriesJSON:
    url = server_url(server.hostname, REPOSITORIES_JSON_PATH)
    return RepositoriesJSON.from_dict(fetch_json(client, url), source=url)


def fetch_meta_json(server: Server, client: httpx.Client) -> MetaJSON:
    url = server_url(server.hostname, META_JSON_PATH)
    return MetaJSON.from_dict(fetch_json(client, url), source=url)


def validate_server_type(server: Server, repos_json: RepositoriesJSON) -> None:
    """Check the server role against the replicas in repositories.json.

    A Stratum0 must list no replicas; a Stratum1 or sync server must list
    at least one.

    Raises:
        ServerTypeMismatch: if the role and the replicas disagree
    """
    get_logger().debug("Validating server type of %s", server.hostname)

    match (server.role, repos_json.has_replicas):
        case (ServerRole.ORIGIN, True):
            message = (
                f"{server.hostname} is a Stratum0 server, "
                "but replicas were found in the repositories.json"
            )
        case (ServerRole.MIRROR, False):
            message = (
                f"{server.hostname} is a Stratum1 server, "
                "but no replicas were found in the repositories.json"
            )
        case (ServerRole.SYNC_MIRROR, False):
            message = (
                f"{server.hostname} is a SyncServer, "
                "but no replicas were found in the repositories.json"
            )
        case _:
            return

    get_logger().error("%s", message)
    raise ServerTypeMismatch(message)


def _resolve_from_repositories_json(
    server: Server, repos_json: RepositoriesJSON
) -> BackendResolution:
    validate_server_type(server, repos_json)
    metadata = RepoJSONMetadata.from_repositories_json(repos_json)
    return BackendResolution(
        detected=BackendKind.REPO_PROTOCOL,
        metadata=metadata,
        discovered=tuple(entry.name for entry in repos_json.repositories_and_replicas()),
    )


def resolve_backend(
    server: Server,
    repositories: Iterable[str],
    client: httpx.Client,
) -> BackendResolution:
    """Work out the backend of a server and what repositories.json says.

    Raises:
        EmptyRepositoryList: explicit S3 backend without repositories
        ServerTypeMismatch: replicas don't match the server role
        ConversionError: repositories.json holds an invalid version
        TransportFailure: repositories.json is unreachable for an explicit
            CVMFS backend
        DocumentFormatError: repositories.json is malformed
    """
    logger = get_logger()

    match server.backend:
        case BackendKind.AUTO_DETECT:
            try:
                repos_json = fetch_repositories_json(server, client)
            except TransportFailure as e:
                logger.debug("Detected S3 backend for %s (%s)", server.hostname, e.reason)
                return BackendResolution(detected=BackendKind.OBJECT_STORAGE, metadata=None)
            logger.debug("Detected CVMFS backend for %s", server.hostname)
            return _resolve_from_repositories_json(server, repos_json)

        case BackendKind.OBJECT_STORAGE:
            if not any(name.strip() for name in repositories):
                logger.error(
                    "Empty repository list with explicit S3 backend: %s", server.hostname
                )
                raise EmptyRepositoryList(server.hostname)
            return BackendResolution(detected=BackendKind.OBJECT_STORAGE, metadata=None)

        case BackendKind.REPO_PROTOCOL:
            repos_json = fetch_repositories_json(server, client)
            return _resolve_from_repositories_json(server, repos_json)

    raise ValueError(f"Unsupported backend {server.backend!r}")


def reconcile_repositories(
    supplied: Iterable[str],
    discovered: Iterable[str] = (),
) -> frozenset[str]:
    """Union of supplied and discovered repository names, without duplicates."""
    names = (name.strip() for source in (supplied, discovered) for name in source)
    return frozenset(name for name in names if name)


def collect_repository(server: Server, name: str, client: httpx.Client) -> RepositoryRecord:
    """Scrape the status file and manifest of one repository.

    Raises:
        TransportFailure: either document can't be fetched
        DocumentFormatError: the status file is not a JSON object
        ManifestFormatError: the manifest can't be parsed
    """
    get_logger().debug("Scraping repository %s on %s", name, server.hostname)

    status_url = server_url(server.hostname, f"{name}/.cvmfs_status.json")
    status = StatusJSON.from_dict(fetch_json(client, status_url), source=status_url)

    manifest_url = server_url(server.hostname, f"{name}/.cvmfspublished")
    manifest = parse_manifest(fetch_text(client, manifest_url))

    return RepositoryRecord(
        name=name,
        manifest=manifest,
        last_snapshot=status.last_snapshot,
        last_gc=status.last_gc,
    )


def collect_repositories(
    server: Server,
    names: Iterable[str],
    client: httpx.Client,
    max_workers: int = 1,
) -> frozenset[RepositoryRecord]:
    """Scrape every repository, failing as soon as one of them fails.

    With max_workers > 1 repositories are scraped on a thread pool. Either
    way the first error observed is raised and no partial result escapes.
    """
    ordered = sorted(names)

    if max_workers <= 1 or len(ordered) <= 1:
        return frozenset(collect_repository(server, name, client) for name in ordered)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(collect_repository, server, name, client) for name in ordered
        ]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in pending:
            future.cancel()
        for future in futures:
            if future in done and future.exception() is not None:
                raise future.exception()
        return frozenset(future.result() for future in futures)


def _fetch_optional_meta_json(server: Server, client: httpx.Client) -> MetaJSON | None:
    try:
        return fetch_meta_json(server, client)
    except ScraperError as e:
        get_logger().debug("No usable meta.json on %s: %s", server.hostname, e)
        return None


def _scrape(
    server: Server,
    repositories: list[str],
    client: httpx.Client,
    max_workers: int,
) -> PopulatedServer:
    resolution = resolve_backend(server, repositories, client)
    names = reconcile_repositories(repositories, resolution.discovered)
    records = collect_repositories(server, names, client, max_workers=max_workers)
    meta_json = _fetch_optional_meta_json(server, client)

    return PopulatedServer(
        role=server.role,
        backend=server.backend,
        backend_detected=resolution.detected,
        hostname=server.hostname,
        repositories=records,
        metadata=merge_metadata(resolution.metadata, meta_json),
    )


def scrape_server(
    server: Server,
    repositories: Iterable[str] = (),
    client: httpx.Client | None = None,
    max_workers: int = 1,
    timeout: float = DEFAULT_TIMEOUT,
) -> ScrapedServer:
    """Scrape a server and its repositories.

    Returns a PopulatedServer, or a FailedServer carrying the error that
    stopped the scrape. When no client is given one is created with the
    given timeout and closed afterwards.
    """
    logger = get_logger()
    logger.debug("Scraping server %s", server)
    repositories = list(repositories)

    try:
        if client is None:
            with httpx.Client(timeout=timeout) as own_client:
                result = _scrape(server, repositories, own_client, max_workers)
        else:
            result = _scrape(server, repositories, client, max_workers)
    except ScraperError as e:
        logger.debug("Scrape of %s failed: %s", server.hostname, e)
        return FailedServer(
            hostname=server.hostname,
            role=server.role,
            backend=server.backend,
            error=e,
        )

    logger.debug(
        "Scraped %s: %d repositories, backend %s",
        server.hostname,
        len(result.repositories),
        result.backend_detected.value,
    )
    return result
