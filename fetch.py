"""HTTP fetching of CVMFS server documents."""

from typing import Any

import httpx

from errors import DocumentFormatError, TransportFailure


def server_url(hostname: str, path: str) -> str:
    """Build the plain-HTTP URL of a document under /cvmfs on a server."""
    return f"http://{hostname}/cvmfs/{path.lstrip('/')}"


def _get(client: httpx.Client, url: str) -> httpx.Response:
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise TransportFailure(url, f"HTTP {e.response.status_code}") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise TransportFailure(url, str(e) or type(e).__name__) from e
    return response


def fetch_text(client: httpx.Client, url: str) -> str:
    """Fetch a document and return its body as text.

    Raises:
        TransportFailure: on connection errors, timeouts and non-2xx statuses
    """
    return _get(client, url).text


def fetch_json(client: httpx.Client, url: str) -> Any:
    """Fetch a document and decode it as JSON.

    Raises:
        TransportFailure: if the document can't be fetched
        DocumentFormatError: if the body is not valid JSON
    """
    response = _get(client, url)
    try:
        return response.json()
    except ValueError as e:
        raise DocumentFormatError(url, f"invalid JSON ({e})") from e
