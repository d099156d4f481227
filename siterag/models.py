"""Data models for the site retrieval pipeline."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

import numpy as np

from .errors import IndexFormatError

INDEX_VERSION = "1.0"

Role = Literal["user", "assistant"]


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens.

    Returns:
        Number of tokens in ``text``; zero for blank text.
    """
    return len(text.split())


@dataclass(frozen=True)
class Heading:
    """A heading found in a page's content region."""

    level: int
    text: str


@dataclass(frozen=True)
class Section:
    """A heading-delimited span of page text."""

    heading: str | None
    text: str


@dataclass(frozen=True)
class PageRecord:
    """Plain-text rendition of one source page."""

    title: str
    url: str
    headings: tuple[str, ...] = ()
    full_text: str = ""
    sections: tuple[Section, ...] = ()

    @property
    def word_count(self) -> int:
        return count_words(self.full_text)

    def summary(self) -> PageSummary:
        """Return the listing entry persisted alongside the chunks."""
        return PageSummary(
            title=self.title,
            url=self.url,
            headings=self.headings,
            word_count=self.word_count,
            section_count=len(self.sections),
        )


@dataclass(frozen=True)
class PageSummary:
    """Page listing entry stored in an index artifact."""

    title: str
    url: str
    headings: tuple[str, ...] = ()
    word_count: int = 0
    section_count: int = 0


@dataclass(frozen=True)
class Chunk:
    """Represents a retrievable passage of page or section text."""

    id: str
    page_title: str
    page_url: str
    text: str
    section_heading: str | None = None
    chunk_index: int = 0
    is_section: bool = False
    embedding: np.ndarray | None = field(default=None, compare=False, repr=False)

    @property
    def word_count(self) -> int:
        return count_words(self.text)


@dataclass(frozen=True)
class IndexMetadata:
    """Build metadata of a persisted index."""

    version: str = INDEX_VERSION
    build_date: str = ""
    total_pages: int = 0
    total_chunks: int = 0
    embedding_model: str | None = None

    @classmethod
    def now(
        cls,
        *,
        total_pages: int,
        total_chunks: int,
        embedding_model: str | None = None,
    ) -> IndexMetadata:
        """Create metadata stamped with the current UTC time.

        Returns:
            Metadata for a freshly built index.
        """
        return cls(
            build_date=datetime.datetime.now(tz=datetime.UTC).isoformat(),
            total_pages=total_pages,
            total_chunks=total_chunks,
            embedding_model=embedding_model,
        )


@dataclass(frozen=True)
class Index:
    """Read-only collection of chunks plus build metadata."""

    metadata: IndexMetadata
    chunks: tuple[Chunk, ...] = ()
    pages: tuple[PageSummary, ...] = ()

    def __post_init__(self) -> None:
        """Check that chunks only reference listed pages.

        Raises:
            IndexFormatError: If a chunk points at a page missing from a
                non-empty page listing.
        """
        if not self.pages:
            return
        known_urls = {page.url for page in self.pages}
        orphans = sorted({c.page_url for c in self.chunks} - known_urls)
        if orphans:
            msg = f"Chunks reference unknown pages: {', '.join(orphans)}"
            raise IndexFormatError(msg)

    @classmethod
    def empty(cls) -> Index:
        """Return an index with no chunks."""  # noqa: DOC201
        return cls(metadata=IndexMetadata())

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def has_embeddings(self) -> bool:
        return bool(self.chunks) and all(
            chunk.embedding is not None for chunk in self.chunks
        )


@dataclass(frozen=True)
class Message:
    """A single chat turn."""

    role: Role
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "text": self.text}


@dataclass(frozen=True)
class RetrievalResult:
    """Outcome of one retrieval: bounded context plus what contributed to it."""

    query: str
    context_text: str = ""
    cited_chunks: tuple[Chunk, ...] = ()
    ranked: tuple[tuple[Chunk, float], ...] = ()

    @property
    def sources(self) -> list[str]:
        """Unique page titles of the cited chunks, in citation order."""
        return list(dict.fromkeys(chunk.page_title for chunk in self.cited_chunks))


class IndexStatus(Enum):
    """Which tier of the fallback ladder produced the loaded index."""

    NOT_LOADED = "not_loaded"
    ARTIFACT = "artifact"
    LIVE_PAGE = "live_page"
    EMPTY = "empty"


@dataclass(frozen=True)
class ChatReply:
    """Answer produced for one user message."""

    text: str
    sequence: int
    sources: tuple[str, ...] = ()
    superseded: bool = False
    status: IndexStatus = IndexStatus.NOT_LOADED
