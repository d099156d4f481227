"""Index build pipeline orchestrating Discover -> Extract -> Chunk -> Embed -> Write."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from pathlib import Path

from .chunking import TextChunker
from .config import config
from .embeddings import EmbeddingService
from .extraction import ContentExtractor
from .index_store import json_store, sqlite_store
from .models import Chunk, Index, IndexMetadata, PageRecord

logger = config.get_logger(__name__)

DEFAULT_PATTERNS = ("*.html", "compounds/*.html")


class IndexBuildPipeline:
    """Builds the persisted site index from a directory of HTML pages."""

    def __init__(
        self,
        extractor: ContentExtractor | None = None,
        chunker: TextChunker | None = None,
        embedding_service: EmbeddingService | None = None,
    ) -> None:
        """Initialize the build pipeline.

        Args:
            extractor: HTML to text extractor. If None, a default one is used.
            chunker: Page chunker. If None, uses configured chunk sizes.
            embedding_service: When given, every chunk is embedded and the
                model name is recorded in the index metadata.
        """
        self.extractor = extractor or ContentExtractor()
        self.chunker = chunker or TextChunker()
        self.embedding_service = embedding_service

    @staticmethod
    def discover_pages(
        site_root: Path,
        patterns: Iterable[str] = DEFAULT_PATTERNS,
    ) -> list[Path]:
        """Find the pages to index under ``site_root``.

        Returns:
            Matching files, de-duplicated, in pattern order then name order.
        """
        site_root = Path(site_root)
        pages: dict[Path, None] = {}
        for pattern in patterns:
            for path in sorted(site_root.glob(pattern)):
                if path.is_file():
                    pages.setdefault(path, None)
        logger.info("Discovered %d pages under %s", len(pages), site_root)
        return list(pages)

    def build(
        self,
        site_root: Path,
        patterns: Iterable[str] | None = None,
        titles: Mapping[str, str] | None = None,
    ) -> Index:
        """Build an index from every discoverable page.

        A page that cannot be read or parsed is logged and skipped.

        Args:
            site_root: Directory holding the site's HTML files.
            patterns: Glob patterns relative to ``site_root``.
            titles: Optional title overrides keyed by relative page url.

        Returns:
            The built index.
        """
        site_root = Path(site_root)
        titles = titles or {}
        logger.info("Starting index build for site: %s", site_root)

        records: list[PageRecord] = []
        chunks: list[Chunk] = []
        for path in self.discover_pages(site_root, patterns or DEFAULT_PATTERNS):
            url = path.relative_to(site_root).as_posix()
            try:
                record = self.extractor.extract_file(
                    path, site_root=site_root, title=titles.get(url)
                )
            except (OSError, ValueError):
                logger.exception("Skipping page %s", url)
                continue

            page_chunks = self.chunker.chunk_page(record)
            if not page_chunks:
                logger.warning("Page %s produced no chunks", url)
            records.append(record)
            chunks.extend(page_chunks)

        embedding_model = None
        if self.embedding_service is not None and chunks:
            chunks = self.embed_chunks(chunks)
            embedding_model = self.embedding_service.model

        index = Index(
            metadata=IndexMetadata.now(
                total_pages=len(records),
                total_chunks=len(chunks),
                embedding_model=embedding_model,
            ),
            chunks=tuple(chunks),
            pages=tuple(record.summary() for record in records),
        )
        logger.info(
            "Index build completed: %d pages, %d chunks", len(records), len(chunks)
        )
        return index

    def embed_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Attach embeddings to chunks.

        Raises:
            ValueError: If the pipeline has no embedding service.

        Returns:
            New chunks carrying their embedding vectors.
        """
        if self.embedding_service is None:
            msg = "An embedding service is required to embed chunks"
            raise ValueError(msg)
        embeddings = self.embedding_service.get_embeddings_batch(
            [chunk.text for chunk in chunks]
        )
        return [
            dataclasses.replace(chunk, embedding=embedding)
            for chunk, embedding in zip(chunks, embeddings, strict=True)
        ]

    @staticmethod
    def write_json(index: Index, path: Path) -> None:
        json_store.write_json(index, path)

    @staticmethod
    def write_sqlite(index: Index, path: Path) -> None:
        sqlite_store.write_sqlite(index, path)
