"""SQLite index artifact with an FTS5 table and embedding blobs."""

from __future__ import annotations

import json
import sqlite3
import tempfile
from contextlib import closing
from pathlib import Path

import httpx
import numpy as np

from siterag.config import config
from siterag.errors import IndexFormatError, IndexUnavailableError
from siterag.index_store.base import fetch_bytes, is_url
from siterag.models import (
    INDEX_VERSION,
    Chunk,
    Index,
    IndexMetadata,
    IndexStatus,
    PageSummary,
)

logger = config.get_logger(__name__)


def _create_tables(cursor: sqlite3.Cursor) -> None:
    """Create the artifact schema."""
    cursor.execute("""
        CREATE TABLE metadata (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """)

    cursor.execute("""
        CREATE TABLE pages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            url TEXT NOT NULL UNIQUE,
            headings TEXT,
            word_count INTEGER,
            section_count INTEGER
        )
    """)

    cursor.execute("""
        CREATE TABLE chunks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            chunk_key TEXT NOT NULL UNIQUE,
            page_title TEXT NOT NULL,
            page_url TEXT NOT NULL,
            section_heading TEXT,
            chunk_text TEXT NOT NULL,
            chunk_index INTEGER,
            is_section INTEGER NOT NULL DEFAULT 0,
            word_count INTEGER
        )
    """)

    cursor.execute("""
        CREATE TABLE chunks_embedding (
            embedding_id INTEGER PRIMARY KEY,
            embedding BLOB NOT NULL,
            FOREIGN KEY (embedding_id) REFERENCES chunks (id)
        )
    """)


def _create_indexes(cursor: sqlite3.Cursor) -> None:
    """Create lookup indexes and, when available, the FTS5 table."""
    cursor.execute("CREATE INDEX idx_chunks_page_url ON chunks(page_url)")
    cursor.execute("CREATE INDEX idx_chunks_page_title ON chunks(page_title)")
    cursor.execute(
        "CREATE INDEX idx_chunks_section_heading ON chunks(section_heading)"
    )
    try:
        cursor.execute("""
            CREATE VIRTUAL TABLE chunks_fts USING fts5(
                chunk_text,
                content='chunks',
                content_rowid='id'
            )
        """)
        cursor.execute(
            "INSERT INTO chunks_fts(rowid, chunk_text) SELECT id, chunk_text FROM chunks"
        )
    except sqlite3.OperationalError:
        logger.warning("SQLite build lacks FTS5; artifact written without chunks_fts")


def write_sqlite(index: Index, path: Path) -> None:
    """Persist an index as a SQLite database, replacing any previous file atomically.

    Raises:
        sqlite3.Error: If the database cannot be written.
    """
    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)
    with tempfile.NamedTemporaryFile(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as handle:
        tmp_path = Path(handle.name)

    try:
        with closing(sqlite3.connect(str(tmp_path))) as conn:
            cursor = conn.cursor()
            _create_tables(cursor)

            metadata = index.metadata
            cursor.executemany(
                "INSERT INTO metadata (key, value) VALUES (?, ?)",
                [
                    ("version", metadata.version),
                    ("build_date", metadata.build_date),
                    ("total_pages", str(metadata.total_pages)),
                    ("total_chunks", str(metadata.total_chunks)),
                    ("embedding_model", metadata.embedding_model or ""),
                ],
            )
            cursor.executemany(
                """
                INSERT INTO pages (title, url, headings, word_count, section_count)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        page.title,
                        page.url,
                        json.dumps(list(page.headings)),
                        page.word_count,
                        page.section_count,
                    )
                    for page in index.pages
                ],
            )

            for chunk in index.chunks:
                cursor.execute(
                    """
                    INSERT INTO chunks (
                        chunk_key,
                        page_title,
                        page_url,
                        section_heading,
                        chunk_text,
                        chunk_index,
                        is_section,
                        word_count
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.id,
                        chunk.page_title,
                        chunk.page_url,
                        chunk.section_heading,
                        chunk.text,
                        chunk.chunk_index,
                        int(chunk.is_section),
                        chunk.word_count,
                    ),
                )
                if chunk.embedding is not None:
                    blob = np.asarray(chunk.embedding, dtype="float32").tobytes()
                    cursor.execute(
                        "INSERT INTO chunks_embedding (embedding_id, embedding) "
                        "VALUES (?, ?)",
                        (cursor.lastrowid, blob),
                    )

            _create_indexes(cursor)
            conn.commit()
        tmp_path.replace(path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info("Saved SQLite index with %d chunks to %s", len(index.chunks), path)


def read_index(conn: sqlite3.Connection) -> Index:
    """Read a full index from an open artifact connection.

    Raises:
        IndexFormatError: If the schema or values are invalid.

    Returns:
        The index held by the database.
    """
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT key, value FROM metadata")
        meta = dict(cursor.fetchall())

        cursor.execute(
            "SELECT title, url, headings, word_count, section_count "
            "FROM pages ORDER BY id"
        )
        pages = tuple(
            PageSummary(
                title=title,
                url=url,
                headings=tuple(json.loads(headings or "[]")),
                word_count=int(word_count or 0),
                section_count=int(section_count or 0),
            )
            for title, url, headings, word_count, section_count in cursor.fetchall()
        )

        cursor.execute("""
            SELECT
                c.chunk_key,
                c.page_title,
                c.page_url,
                c.section_heading,
                c.chunk_text,
                c.chunk_index,
                c.is_section,
                e.embedding
            FROM chunks c
            LEFT JOIN chunks_embedding e ON e.embedding_id = c.id
            ORDER BY c.id
        """)
        chunks = tuple(
            Chunk(
                id=chunk_key,
                page_title=page_title,
                page_url=page_url,
                text=chunk_text,
                section_heading=section_heading,
                chunk_index=int(chunk_index or 0),
                is_section=bool(is_section),
                embedding=(
                    np.frombuffer(blob, dtype="float32").copy()
                    if blob is not None
                    else None
                ),
            )
            for (
                chunk_key,
                page_title,
                page_url,
                section_heading,
                chunk_text,
                chunk_index,
                is_section,
                blob,
            ) in cursor.fetchall()
        )

        metadata = IndexMetadata(
            version=meta.get("version", INDEX_VERSION),
            build_date=meta.get("build_date", ""),
            total_pages=int(meta.get("total_pages", len(pages))),
            total_chunks=int(meta.get("total_chunks", len(chunks))),
            embedding_model=meta.get("embedding_model") or None,
        )
    except (sqlite3.Error, ValueError) as exc:
        msg = f"Invalid SQLite index: {exc}"
        raise IndexFormatError(msg) from exc

    return Index(metadata=metadata, chunks=chunks, pages=pages)


class SQLiteIndexSource:
    """Loads the SQLite index artifact from a file path or URL."""

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
            location: File path or http(s) URL of the database.
            timeout: Fetch timeout in seconds. If None, uses
                config.INDEX_FETCH_TIMEOUT.
            transport: Optional httpx transport (used by tests).
        """
        self.location = location
        self.timeout = config.INDEX_FETCH_TIMEOUT if timeout is None else timeout
        self.transport = transport
        self.name = f"sqlite:{location}"

    async def load(self) -> Index:
        """Open the database (fetched databases are deserialized in memory).

        Raises:
            IndexUnavailableError: If the database is missing or unreadable.

        Returns:
            The loaded index.
        """
        if is_url(self.location):
            raw = await fetch_bytes(
                str(self.location), timeout=self.timeout, transport=self.transport
            )
            index = self._load_bytes(raw)
        else:
            index = self._load_file(Path(self.location))

        logger.info(
            "Loaded SQLite index %s: %d chunks", self.location, len(index.chunks)
        )
        return index

    @staticmethod
    def _load_file(path: Path) -> Index:
        if not path.exists():
            msg = f"SQLite index not found at {path}"
            raise IndexUnavailableError(msg)
        try:
            with closing(
                sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
            ) as conn:
                return read_index(conn)
        except sqlite3.Error as exc:
            msg = f"Failed to open SQLite index {path}: {exc}"
            raise IndexUnavailableError(msg) from exc

    @staticmethod
    def _load_bytes(raw: bytes) -> Index:
        try:
            with closing(sqlite3.connect(":memory:")) as conn:
                conn.deserialize(raw)
                return read_index(conn)
        except sqlite3.Error as exc:
            msg = f"Fetched SQLite index is unreadable: {exc}"
            raise IndexUnavailableError(msg) from exc
