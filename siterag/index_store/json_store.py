"""JSON index artifact: serialization, atomic writes and loading."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import httpx
import numpy as np

from siterag.config import config
from siterag.errors import IndexFormatError
from siterag.index_store.base import fetch_bytes, is_url, read_local
from siterag.models import (
    INDEX_VERSION,
    Chunk,
    Index,
    IndexMetadata,
    IndexStatus,
    PageSummary,
)

logger = config.get_logger(__name__)


def index_to_dict(index: Index) -> dict[str, Any]:
    """Serialize an index to the artifact layout.

    Returns:
        JSON-compatible mapping with camelCase keys.
    """
    data: dict[str, Any] = {
        "version": index.metadata.version,
        "buildDate": index.metadata.build_date,
        "totalPages": index.metadata.total_pages,
        "totalChunks": index.metadata.total_chunks,
        "pages": [
            {
                "title": page.title,
                "url": page.url,
                "headings": list(page.headings),
                "wordCount": page.word_count,
                "sectionCount": page.section_count,
            }
            for page in index.pages
        ],
        "chunks": [],
    }
    if index.metadata.embedding_model:
        data["embeddingModel"] = index.metadata.embedding_model

    embeddings: dict[str, list[float]] = {}
    for chunk in index.chunks:
        entry: dict[str, Any] = {
            "id": chunk.id,
            "pageTitle": chunk.page_title,
            "pageUrl": chunk.page_url,
            "text": chunk.text,
            "chunkIndex": chunk.chunk_index,
            "wordCount": chunk.word_count,
        }
        if chunk.section_heading is not None:
            entry["sectionHeading"] = chunk.section_heading
        if chunk.is_section:
            entry["isSection"] = True
        data["chunks"].append(entry)
        if chunk.embedding is not None:
            embeddings[chunk.id] = [float(v) for v in chunk.embedding]

    if embeddings:
        data["embeddings"] = embeddings
    return data


def _chunk_from_dict(
    entry: object,
    position: int,
    embeddings: dict[str, Any],
) -> Chunk:
    if not isinstance(entry, dict):
        msg = f"Chunk #{position} is not an object"
        raise IndexFormatError(msg)
    try:
        page_title = str(entry["pageTitle"])
        page_url = str(entry["pageUrl"])
        text = str(entry["text"])
    except KeyError as exc:
        msg = f"Chunk #{position} is missing field {exc.args[0]!r}"
        raise IndexFormatError(msg) from exc

    chunk_id = str(entry.get("id") or f"{page_url}-chunk-{position}")
    heading = entry.get("sectionHeading")
    vector = embeddings.get(chunk_id)
    try:
        return Chunk(
            id=chunk_id,
            page_title=page_title,
            page_url=page_url,
            text=text,
            section_heading=str(heading) if heading is not None else None,
            chunk_index=int(entry.get("chunkIndex", 0)),
            is_section=bool(entry.get("isSection", heading is not None)),
            embedding=(
                np.asarray(vector, dtype="float32") if vector is not None else None
            ),
        )
    except (TypeError, ValueError) as exc:
        msg = f"Chunk #{position} has invalid values: {exc}"
        raise IndexFormatError(msg) from exc


def index_from_dict(data: object) -> Index:
    """Build an index from a parsed JSON artifact.

    Raises:
        IndexFormatError: If the structure is not a valid index.

    Returns:
        The deserialized index.
    """
    if not isinstance(data, dict) or not isinstance(data.get("chunks"), list):
        msg = "Index artifact must be an object with a 'chunks' list"
        raise IndexFormatError(msg)

    embeddings = data.get("embeddings") or {}
    if not isinstance(embeddings, dict):
        msg = "'embeddings' must map chunk ids to vectors"
        raise IndexFormatError(msg)

    chunks = tuple(
        _chunk_from_dict(entry, i, embeddings) for i, entry in enumerate(data["chunks"])
    )
    try:
        pages = tuple(
            PageSummary(
                title=str(page["title"]),
                url=str(page["url"]),
                headings=tuple(page.get("headings", ())),
                word_count=int(page.get("wordCount", 0)),
                section_count=int(page.get("sectionCount", 0)),
            )
            for page in data.get("pages") or ()
        )
        metadata = IndexMetadata(
            version=str(data.get("version", INDEX_VERSION)),
            build_date=str(data.get("buildDate", "")),
            total_pages=int(data.get("totalPages", len(pages))),
            total_chunks=int(data.get("totalChunks", len(chunks))),
            embedding_model=data.get("embeddingModel"),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        msg = f"Invalid index metadata: {exc}"
        raise IndexFormatError(msg) from exc

    return Index(metadata=metadata, chunks=chunks, pages=pages)


def write_json(index: Index, path: Path) -> None:
    """Persist an index atomically.

    The artifact is written to a temporary file in the target directory and
    renamed over the destination, so readers never see a partial file.
    """
    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(index_to_dict(index), handle, indent=2, ensure_ascii=False)
        Path(tmp_name).replace(path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Saved JSON index with %d chunks to %s", len(index.chunks), path)


class JsonIndexSource:
    """Loads the persisted JSON index from a file path or URL."""

    tier = IndexStatus.ARTIFACT

    def __init__(
        self,
        location: str | Path,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Configure the source.

        Args:
            location: File path or http(s) URL of the artifact.
            timeout: Fetch timeout in seconds. If None, uses
                config.INDEX_FETCH_TIMEOUT.
            transport: Optional httpx transport (used by tests).
        """
        self.location = location
        self.timeout = config.INDEX_FETCH_TIMEOUT if timeout is None else timeout
        self.transport = transport
        self.name = f"json:{location}"

    async def load(self) -> Index:
        """Fetch or read the artifact and parse it.

        Raises:
            IndexFormatError: If the body is not valid index JSON.

        Returns:
            The loaded index.
        """
        if is_url(self.location):
            raw = await fetch_bytes(
                str(self.location), timeout=self.timeout, transport=self.transport
            )
        else:
            raw = read_local(Path(self.location))

        try:
            data = json.loads(raw)
        except ValueError as exc:
            msg = f"Index artifact {self.location} is not valid JSON: {exc}"
            raise IndexFormatError(msg) from exc

        index = index_from_dict(data)
        logger.info(
            "Loaded JSON index %s: %d chunks from %d pages",
            self.location,
            len(index.chunks),
            index.metadata.total_pages,
        )
        return index
