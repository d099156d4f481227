"""Shared contract and helpers for index sources."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx

from siterag.config import config
from siterag.errors import IndexUnavailableError

if TYPE_CHECKING:
    from siterag.models import Index, IndexStatus

logger = config.get_logger(__name__)


class IndexSource(Protocol):
    """Something that can produce an :class:`Index`, or fail trying."""

    name: str
    tier: IndexStatus

    async def load(self) -> Index:
        """Load the index.

        Raises:
            IndexUnavailableError: If the index cannot be produced.
        """
        ...


def is_url(location: str | Path) -> bool:
    """Check whether a location is an http(s) URL rather than a file path.

    Returns:
        True for ``http://`` and ``https://`` locations.
    """
    return isinstance(location, str) and location.startswith(("http://", "https://"))


async def fetch_bytes(
    url: str,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """Fetch a URL and return the body.

    Raises:
        IndexUnavailableError: On network errors or a non-success status.

    Returns:
        The raw response body.
    """
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers=config.get_api_headers(),
            transport=transport,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        msg = f"Failed to fetch {url}: {exc}"
        raise IndexUnavailableError(msg) from exc

    logger.info("Fetched %s (%d bytes)", url, len(response.content))
    return response.content


def read_local(path: Path) -> bytes:
    """Read a local artifact.

    Raises:
        IndexUnavailableError: If the file is missing or unreadable.

    Returns:
        The file contents.
    """
    try:
        return path.read_bytes()
    except OSError as exc:
        msg = f"Failed to read {path}: {exc}"
        raise IndexUnavailableError(msg) from exc
