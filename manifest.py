"""Parsing of the .cvmfspublished repository manifest."""

from dataclasses import dataclass
from datetime import datetime, timezone

from errors import ManifestFormatError


SIGNATURE_SEPARATOR = "--"

REQUIRED_KEYS = ("C", "R", "D", "S", "N")


@dataclass(frozen=True)
class Manifest:
    """The published state of a repository.

    Fields map to the one-letter keys of the manifest:

    - root_catalog (C): content hash of the root catalog
    - catalog_size (B): size of the root catalog in bytes
    - root_path_hash (R): MD5 of the repository root path
    - ttl (D): time-to-live of the root catalog in seconds
    - revision (S): revision number of the repository
    - garbage_collectable (G): whether the repository is garbage collected
    - alternative_name (A): whether alternative names are in use
    - name (N): fully qualified repository name
    - certificate (X): hash of the signing certificate
    - history (H): hash of the tag history database
    - timestamp (T): time of publication
    - metainfo (M): hash of the repository metainfo object
    - reflog (Y): hash of the reflog database
    - micro_catalog (L): hash of the micro catalogs
    """

    root_catalog: str
    root_path_hash: str
    ttl: int
    revision: int
    name: str
    catalog_size: int | None = None
    garbage_collectable: bool | None = None
    alternative_name: bool | None = None
    certificate: str | None = None
    history: str | None = None
    timestamp: datetime | None = None
    metainfo: str | None = None
    reflog: str | None = None
    micro_catalog: str | None = None

    def render(self) -> list[str]:
        """Summary lines for the text report."""
        lines = [
            f"Revision: {self.revision}",
            f"Root Catalog: {self.root_catalog}",
            f"TTL: {self.ttl}",
        ]
        if self.timestamp is not None:
            lines.append(f"Published: {self.timestamp.isoformat()}")
        if self.catalog_size is not None:
            lines.append(f"Catalog Size: {self.catalog_size}")
        if self.garbage_collectable is not None:
            lines.append(f"Garbage Collectable: {self.garbage_collectable}")
        if self.certificate:
            lines.append(f"Certificate: {self.certificate}")
        if self.history:
            lines.append(f"History: {self.history}")
        return lines


def _to_int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ManifestFormatError(f"Field {key} is not an integer: {value!r}")


def _to_bool(key: str, value: str) -> bool:
    if value in ("yes", "true"):
        return True
    if value in ("no", "false"):
        return False
    raise ManifestFormatError(f"Field {key} is not a boolean: {value!r}")


def parse_manifest(content: str) -> Manifest:
    """Parse the text of a .cvmfspublished file.

    Lines before the "--" separator are a one-letter key immediately followed
    by its value. Everything after the separator is the signature and is
    ignored, as are unknown keys.

    Raises:
        ManifestFormatError: if required fields are missing or malformed
    """
    fields: dict[str, str] = {}

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if line == SIGNATURE_SEPARATOR:
            break
        if not line:
            continue
        fields[line[0]] = line[1:].strip()

    missing = [key for key in REQUIRED_KEYS if not fields.get(key)]
    if missing:
        raise ManifestFormatError(f"Missing required fields: {', '.join(missing)}")

    timestamp = None
    if "T" in fields:
        timestamp = datetime.fromtimestamp(_to_int("T", fields["T"]), tz=timezone.utc)

    return Manifest(
        root_catalog=fields["C"],
        root_path_hash=fields["R"],
        ttl=_to_int("D", fields["D"]),
        revision=_to_int("S", fields["S"]),
        name=fields["N"],
        catalog_size=_to_int("B", fields["B"]) if "B" in fields else None,
        garbage_collectable=_to_bool("G", fields["G"]) if "G" in fields else None,
        alternative_name=_to_bool("A", fields["A"]) if "A" in fields else None,
        certificate=fields.get("X"),
        history=fields.get("H"),
        timestamp=timestamp,
        metainfo=fields.get("M"),
        reflog=fields.get("Y"),
        micro_catalog=fields.get("L"),
    )
