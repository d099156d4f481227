"""Retrieval orchestration: index loading ladder, ranking and context assembly."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .config import config
from .errors import IndexUnavailableError
from .models import Chunk, Index, IndexStatus, Message, RetrievalResult
from .scoring import KeywordScorer, ScoringStrategy, tokenize_query

if TYPE_CHECKING:
    from .index_store import IndexSource

logger = config.get_logger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


class Retriever:
    """Loads the index once and answers queries with bounded context."""

    def __init__(
        self,
        sources: Sequence[IndexSource],
        scorer: ScoringStrategy | None = None,
        *,
        top_k: int | None = None,
        max_context_chars: int | None = None,
        load_timeout: float | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            sources: Index sources in fallback order, preferred first. An
                exhausted ladder leaves the retriever with an empty index.
            scorer: Ranking strategy. If None, keyword scoring is used.
            top_k: Number of ranked chunks considered for context. If None,
                uses config.TOP_K.
            max_context_chars: Upper bound of the assembled context. If None,
                uses config.MAX_CONTEXT_CHARS.
            load_timeout: Seconds allowed per index source. If None, uses
                config.INDEX_FETCH_TIMEOUT.
        """
        self.sources = list(sources)
        self.scorer: ScoringStrategy = scorer or KeywordScorer()
        self.top_k = config.TOP_K if top_k is None else top_k
        self.max_context_chars = (
            config.MAX_CONTEXT_CHARS if max_context_chars is None else max_context_chars
        )
        self.load_timeout = (
            config.INDEX_FETCH_TIMEOUT if load_timeout is None else load_timeout
        )
        self._index: Index | None = None
        self._status = IndexStatus.NOT_LOADED
        self._lock = asyncio.Lock()

    @property
    def status(self) -> IndexStatus:
        return self._status

    @property
    def index(self) -> Index | None:
        return self._index

    async def load(self) -> Index:
        """Acquire the index, descending the fallback ladder on failure.

        Only the first call does any work; later calls return the same index.

        Returns:
            The loaded (possibly empty) index.
        """
        async with self._lock:
            if self._index is None:
                self._index, self._status = await self._descend_ladder()
            return self._index

    async def _descend_ladder(self) -> tuple[Index, IndexStatus]:
        for source in self.sources:
            try:
                index = await asyncio.wait_for(source.load(), timeout=self.load_timeout)
            except (IndexUnavailableError, TimeoutError) as exc:
                logger.warning("Index source %s unavailable: %s", source.name, exc)
                continue
            except Exception:
                logger.exception("Unexpected error loading index from %s", source.name)
                continue

            if index.is_empty:
                logger.warning("Index source %s produced no chunks", source.name)
                continue

            logger.info(
                "Using index from %s (%d chunks)", source.name, len(index.chunks)
            )
            return index, source.tier

        logger.warning("No index source available; operating without knowledge base")
        return Index.empty(), IndexStatus.EMPTY

    async def retrieve(
        self,
        query: str,
        history: Sequence[Message] = (),
    ) -> RetrievalResult:
        """Rank the index against a query and assemble bounded context.

        Args:
            query: The user's question.
            history: Earlier conversation turns; a query without searchable
                words is widened with the last user turn.

        Returns:
            Context text, the chunks that contributed to it and the ranking.
        """
        index = await self.load()
        search_query = self._search_query(query, history)
        if index.is_empty or not search_query.strip():
            return RetrievalResult(query=query)

        ranked = await self.scorer.score_async(search_query, index.chunks)
        ranked = ranked[: self.top_k]
        context_text, cited = self.assemble_context(ranked)

        logger.info(
            "Retrieved %d chunks (%d cited) for query: %s",
            len(ranked),
            len(cited),
            search_query,
        )
        for i, (chunk, score) in enumerate(ranked):
            logger.debug("  Context %d: %s (score: %.4f)", i + 1, chunk.id, score)

        return RetrievalResult(
            query=query,
            context_text=context_text,
            cited_chunks=tuple(cited),
            ranked=tuple(ranked),
        )

    @staticmethod
    def _search_query(query: str, history: Sequence[Message]) -> str:
        if tokenize_query(query):
            return query
        previous = next(
            (m.text for m in reversed(history) if m.role == "user" and m.text != query),
            None,
        )
        return f"{previous} {query}" if previous else query

    def assemble_context(
        self,
        ranked: Sequence[tuple[Chunk, float]],
    ) -> tuple[str, list[Chunk]]:
        """Join ranked chunk texts up to ``max_context_chars``.

        Passages already contained in the selected context are skipped, so
        overlapping page and section chunks are not repeated. A first passage
        longer than the limit is truncated.

        Returns:
            The context string and the chunks that contributed to it.
        """
        parts: list[str] = []
        cited: list[Chunk] = []
        total = 0

        for chunk, _score in ranked:
            text = chunk.text.strip()
            if not text or any(text in part for part in parts):
                continue

            added = len(text) + (len(CONTEXT_SEPARATOR) if parts else 0)
            if total + added > self.max_context_chars:
                if parts:
                    continue
                text = text[: self.max_context_chars].rstrip()
                added = len(text)

            parts.append(text)
            cited.append(chunk)
            total += added

        return CONTEXT_SEPARATOR.join(parts), cited
