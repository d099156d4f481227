"""Index artifacts and the sources that load them."""

from __future__ import annotations

from typing import TYPE_CHECKING

from siterag.config import config

from .base import IndexSource, is_url
from .json_store import JsonIndexSource, index_from_dict, index_to_dict, write_json
from .page_source import LivePageSource
from .sqlite_store import SQLiteIndexSource, write_sqlite

if TYPE_CHECKING:
    from pathlib import Path


def get_index_sources(
    backend: str | None = None,
    *,
    index_path: str | Path | None = None,
    current_page: str | Path | None = None,
    current_page_title: str | None = None,
    timeout: float | None = None,
) -> list[IndexSource]:
    """Return the fallback ladder of index sources, preferred first.

    The persisted artifact comes first; the live page is added only when a
    current page is configured. An exhausted ladder means an empty index.

    Raises:
        ValueError: If an unsupported backend is requested.
    """  # noqa: DOC201
    backend = (backend or config.INDEX_BACKEND).lower()
    if current_page is None:
        current_page = config.CURRENT_PAGE
    if current_page_title is None:
        current_page_title = config.CURRENT_PAGE_TITLE

    sources: list[IndexSource] = []
    if backend == "json":
        location = index_path if index_path is not None else config.INDEX_PATH
        sources.append(JsonIndexSource(location, timeout=timeout))
    elif backend == "sqlite":
        location = index_path if index_path is not None else config.SQLITE_INDEX_PATH
        sources.append(SQLiteIndexSource(location, timeout=timeout))
    else:
        msg = f"Unsupported index backend: {backend}"
        raise ValueError(msg)

    if current_page:
        sources.append(
            LivePageSource(current_page, title=current_page_title, timeout=timeout)
        )
    return sources


__all__ = [
    "IndexSource",
    "JsonIndexSource",
    "LivePageSource",
    "SQLiteIndexSource",
    "get_index_sources",
    "index_from_dict",
    "index_to_dict",
    "is_url",
    "write_json",
    "write_sqlite",
]
