"""Shared fixtures for cvmfs-scraper tests."""

import sys
from pathlib import Path

import httpx
import pytest

# Add project root to path so we can import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import BackendKind, Server, ServerRole


HOSTNAME = "cvmfs.example.org"


def make_manifest_text(name: str, revision: int = 42) -> str:
    """Text of a .cvmfspublished file, signature included."""
    return (
        "C600230b0ba7620426f2e898f1e1f43c5466efe59\n"
        "B311296\n"
        "Rd41d8cd98f00b204e9800998ecf8427e\n"
        "D240\n"
        f"S{revision}\n"
        "Gno\n"
        "Ano\n"
        f"N{name}\n"
        "X2a3f2f8e1ebc2f2cc3ad4ba9c3cba1ce1a5e3b01\n"
        "Hbd2e59e29d4d4bdf28d5d0c21ba1d4b72c76c8fe\n"
        "T1700000000\n"
        "--\n"
        "8c1e1dc2ee5ac0c3a0e8b2f0cc7e5b2f1d3c4a5b\n"
        "\x01\x02binary-signature\n"
    )


def add_repository_responses(
    httpx_mock,
    name: str,
    hostname: str = HOSTNAME,
    revision: int = 42,
    manifest_status: int = 200,
) -> None:
    """Register status and manifest responses for one repository."""
    httpx_mock.add_response(
        url=f"http://{hostname}/cvmfs/{name}/.cvmfs_status.json",
        json={
            "last_snapshot": "Tue Jan 14 10:03:21 UTC 2025",
            "last_gc": "Sun Jan 12 03:00:01 UTC 2025",
        },
    )
    if manifest_status == 200:
        httpx_mock.add_response(
            url=f"http://{hostname}/cvmfs/{name}/.cvmfspublished",
            text=make_manifest_text(name, revision),
        )
    else:
        httpx_mock.add_response(
            url=f"http://{hostname}/cvmfs/{name}/.cvmfspublished",
            status_code=manifest_status,
        )


def repositories_json(
    repositories: tuple[str, ...] = (),
    replicas: tuple[str, ...] = (),
    **extra,
) -> dict:
    data = {
        "schema": 1,
        "repositories": [{"name": name, "url": f"/cvmfs/{name}"} for name in repositories],
        "replicas": [{"name": name, "url": f"/cvmfs/{name}"} for name in replicas],
    }
    data.update(extra)
    return data


@pytest.fixture
def client():
    """HTTP client for scrapes; requests are intercepted by httpx_mock."""
    with httpx.Client(timeout=5.0) as c:
        yield c


@pytest.fixture
def stratum1():
    return Server(role=ServerRole.MIRROR, backend=BackendKind.AUTO_DETECT, hostname=HOSTNAME)


@pytest.fixture
def sample_meta_json():
    return {
        "administrator": "Jane Admin",
        "email": "cvmfs-admin@example.org",
        "organisation": "Example Lab",
        "custom": {"site": "EX-T1"},
    }


@pytest.fixture
def config_toml_content():
    """Sample config.toml content."""
    return """
timeout = 3.5
concurrent_servers = 8

[[servers]]
hostname = "cvmfs-s1.example.org"
type = "stratum1"
backend = "cvmfs"
repositories = ["software.example.org"]

[[servers]]
hostname = "s3.example.org"
type = "stratum1"
backend = "s3"
repositories = ["data.example.org", "software.example.org"]

[[servers]]
hostname = "stratum0.example.org"
type = "stratum0"
"""
