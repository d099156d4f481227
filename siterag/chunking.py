"""Sentence-aligned text chunking."""

import re

from .config import config
from .models import Chunk, PageRecord

logger = config.get_logger(__name__)

# A sentence is a run of non-terminal characters closed by one or more of
# ``.``, ``!`` or ``?``; a trailing run without terminal punctuation is
# matched by the second alternative.
_SENTENCE = re.compile(r"[^.!?]+[.!?]+|[^.!?]+$|[.!?]+")


def split_sentences(text: str) -> list[str]:
    """Split text into sentences at terminal punctuation.

    Sentences keep their leading whitespace so that joining them reproduces
    the input exactly.

    Returns:
        The sentences in order; empty for blank text.
    """
    if not text or not text.strip():
        return []
    return _SENTENCE.findall(text)


class TextChunker:
    """Handles greedy, sentence-aligned chunking of page and section text."""

    def __init__(
        self,
        page_chunk_size: int | None = None,
        section_chunk_size: int | None = None,
        min_chunk_length: int | None = None,
    ) -> None:
        """Initialize the TextChunker.

        Args:
            page_chunk_size: Target size for whole-page chunks. If None, uses
                config.PAGE_CHUNK_SIZE.
            section_chunk_size: Target size for section chunks. If None, uses
                config.SECTION_CHUNK_SIZE.
            min_chunk_length: Chunks not longer than this are dropped. If
                None, uses config.MIN_CHUNK_LENGTH.

        Raises:
            ValueError: If a target size is not positive.
        """
        self.page_chunk_size = (
            config.PAGE_CHUNK_SIZE if page_chunk_size is None else page_chunk_size
        )
        self.section_chunk_size = (
            config.SECTION_CHUNK_SIZE
            if section_chunk_size is None
            else section_chunk_size
        )
        self.min_chunk_length = (
            config.MIN_CHUNK_LENGTH if min_chunk_length is None else min_chunk_length
        )
        if self.page_chunk_size <= 0 or self.section_chunk_size <= 0:
            msg = "chunk sizes must be positive integers"
            raise ValueError(msg)

    def chunk(self, text: str, target_size: int) -> list[str]:
        """Split text into passages of roughly ``target_size`` characters.

        Sentences are accumulated greedily; the buffer is flushed when the
        next sentence would push it past ``target_size``. A single sentence
        longer than the target becomes its own oversized chunk.

        Returns:
            Trimmed passages longer than ``min_chunk_length``.
        """
        chunks: list[str] = []
        buffer = ""

        for sentence in split_sentences(text):
            candidate = buffer + sentence
            if len(candidate.strip()) > target_size and buffer.strip():
                chunks.append(buffer.strip())
                buffer = sentence
            else:
                buffer = candidate

        if buffer.strip():
            chunks.append(buffer.strip())

        return [c for c in chunks if len(c) > self.min_chunk_length]

    def chunk_page(self, page: PageRecord) -> list[Chunk]:
        """Create whole-page chunks followed by per-section chunks.

        Returns:
            Both chunk populations for the page, page chunks first.
        """
        chunks = [
            Chunk(
                id=f"{page.url}-chunk-{i}",
                page_title=page.title,
                page_url=page.url,
                text=text,
                chunk_index=i,
            )
            for i, text in enumerate(self.chunk(page.full_text, self.page_chunk_size))
        ]

        for section_number, section in enumerate(page.sections):
            section_texts = self.chunk(section.text, self.section_chunk_size)
            chunks.extend(
                Chunk(
                    id=f"{page.url}-section-{section_number}-{i}",
                    page_title=page.title,
                    page_url=page.url,
                    text=text,
                    section_heading=section.heading or None,
                    chunk_index=i,
                    is_section=True,
                )
                for i, text in enumerate(section_texts)
            )

        logger.info("Page %s split into %d chunks", page.url, len(chunks))
        return chunks
