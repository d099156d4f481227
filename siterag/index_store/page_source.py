"""Single-page index improvised from the currently displayed page."""

from __future__ import annotations

from pathlib import Path

import httpx

from siterag.chunking import TextChunker
from siterag.config import config
from siterag.errors import IndexUnavailableError
from siterag.extraction import ContentExtractor
from siterag.index_store.base import fetch_bytes, is_url, read_local
from siterag.models import Index, IndexMetadata, IndexStatus

logger = config.get_logger(__name__)


class LivePageSource:
    """Extracts and chunks one page at query time when no artifact is available."""

    tier = IndexStatus.LIVE_PAGE

    def __init__(  # noqa: PLR0913
        self,
        location: str | Path,
        *,
        title: str | None = None,
        extractor: ContentExtractor | None = None,
        chunker: TextChunker | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Configure the source.

        Args:
            location: File path or http(s) URL of the current page.
            title: Page title; resolved from the markup when omitted.
            extractor: Content extractor. If None, a default one is used.
            chunker: Text chunker. If None, a default one is used.
            timeout: Fetch timeout in seconds. If None, uses
                config.INDEX_FETCH_TIMEOUT.
            transport: Optional httpx transport (used by tests).
        """
        self.location = location
        self.title = title
        self.extractor = extractor or ContentExtractor()
        self.chunker = chunker or TextChunker()
        self.timeout = config.INDEX_FETCH_TIMEOUT if timeout is None else timeout
        self.transport = transport
        self.name = f"page:{location}"

    async def load(self) -> Index:
        """Build a one-page index from the page's content.

        Raises:
            IndexUnavailableError: If the page cannot be fetched or has no
                retrievable text.

        Returns:
            Index holding the page's chunks.
        """
        if is_url(self.location):
            raw = await fetch_bytes(
                str(self.location), timeout=self.timeout, transport=self.transport
            )
            url = str(self.location)
        else:
            path = Path(self.location)
            raw = read_local(path)
            url = path.name

        page = self.extractor.extract(
            raw.decode("utf-8", errors="replace"), url=url, title=self.title
        )
        chunks = self.chunker.chunk_page(page)
        if not chunks:
            msg = f"Page {self.location} has no retrievable content"
            raise IndexUnavailableError(msg)

        logger.info("Improvised single-page index from %s", self.location)
        return Index(
            metadata=IndexMetadata.now(total_pages=1, total_chunks=len(chunks)),
            chunks=tuple(chunks),
            pages=(page.summary(),),
        )
