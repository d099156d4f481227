"""Relevance scoring strategies for ranking chunks against a query."""

from __future__ import annotations

import asyncio
import re
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import faiss
import numpy as np

from .config import config
from .embeddings import EmbeddingService
from .extraction import normalize_whitespace

if TYPE_CHECKING:
    from .models import Chunk

logger = config.get_logger(__name__)

MIN_TOKEN_LENGTH = 3

_WORD = re.compile(r"\w+")

Ranked = list[tuple["Chunk", float]]


def tokenize_query(query: str) -> list[str]:
    """Lower-case word tokens longer than two characters, de-duplicated.

    Returns:
        Tokens in first-seen order.
    """
    tokens = (t for t in _WORD.findall(query.lower()) if len(t) >= MIN_TOKEN_LENGTH)
    return list(dict.fromkeys(tokens))


def normalize_phrase(query: str) -> str:
    """Lower-case, whitespace-collapsed query with trailing ``.!?`` removed.

    Returns:
        The phrase used for exact-phrase matching.
    """
    return normalize_whitespace(query.lower()).rstrip(".!?").strip()


def compile_token_patterns(tokens: Sequence[str]) -> list[re.Pattern[str]]:
    """Build word-boundary patterns so ``cat`` does not match ``category``.

    Returns:
        One compiled pattern per token.
    """
    return [re.compile(rf"\b{re.escape(token)}\b") for token in tokens]


def compile_phrase_pattern(phrase: str) -> re.Pattern[str] | None:
    """Build a word-boundary pattern for the exact-phrase bonus.

    Returns:
        The compiled pattern, or None when the phrase is too short to match.
    """
    if len(phrase) < MIN_TOKEN_LENGTH:
        return None
    return re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)")


def rank(scored: Ranked) -> Ranked:
    """Sort by descending score; ties keep their original order.

    Returns:
        A new, ranked list.
    """
    return sorted(scored, key=lambda item: -item[1])


@dataclass(frozen=True)
class ScoringWeights:
    """Heuristic weights of the keyword scorer."""

    exact_phrase: float = 15.0
    keyword: float = 1.0
    heading: float = 3.0
    title: float = 2.0
    position: float = 0.5

    @classmethod
    def from_config(cls) -> ScoringWeights:
        """Read weights from configuration.

        Returns:
            Weights as configured through the environment.
        """
        return cls(
            exact_phrase=config.EXACT_PHRASE_WEIGHT,
            keyword=config.KEYWORD_WEIGHT,
            heading=config.HEADING_WEIGHT,
            title=config.TITLE_WEIGHT,
            position=config.POSITION_WEIGHT,
        )


class ScoringStrategy(Protocol):
    """Ranks chunks against a query."""

    name: str

    def score(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        """Return ``(chunk, score)`` pairs, best first, ties in original order."""
        ...

    async def score_async(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        """Rank from inside the event loop without blocking it."""
        ...


class QueryEmbedder(Protocol):
    """Anything that can embed a query string."""

    def get_embedding(self, text: str) -> np.ndarray:
        """Return the embedding vector for ``text``."""
        ...


class BaseScorer:
    """Scorer base whose async entry point scores inline on the event loop."""

    name: str

    def score(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        raise NotImplementedError

    async def score_async(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        return self.score(query, chunks)


class KeywordScorer(BaseScorer):
    """Deterministic lexical scorer; the always-available default.

    A chunk's score is the sum of an exact-phrase bonus, word-boundary
    occurrence counts of each query token, bonuses for tokens found in the
    section heading or page title, and a small position bonus favouring
    early chunks. Chunks scoring zero are left out.
    """

    name = "keyword"

    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self.weights = weights or ScoringWeights.from_config()

    def score_chunk(
        self,
        chunk: Chunk,
        phrase: re.Pattern[str] | None,
        patterns: Sequence[re.Pattern[str]],
    ) -> float:
        """Score one chunk against a prepared query.

        Returns:
            The chunk's relevance score; 0.0 when nothing matched.
        """
        text = chunk.text.lower()
        score = 0.0

        if phrase is not None and phrase.search(text):
            score += self.weights.exact_phrase

        heading = (chunk.section_heading or "").lower()
        title = chunk.page_title.lower()
        for pattern in patterns:
            score += len(pattern.findall(text)) * self.weights.keyword
            if heading and pattern.search(heading):
                score += self.weights.heading
            if pattern.search(title):
                score += self.weights.title

        if score > 0:
            score += self.weights.position / (1 + chunk.chunk_index)
        return score

    def score(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        """Rank chunks by keyword relevance.

        Returns:
            Matching chunks with positive scores, best first.
        """
        phrase = compile_phrase_pattern(normalize_phrase(query))
        patterns = compile_token_patterns(tokenize_query(query))
        if not patterns and phrase is None:
            return []

        scored = [(c, self.score_chunk(c, phrase, patterns)) for c in chunks]
        return rank([(chunk, score) for chunk, score in scored if score > 0])


class FullTextScorer(BaseScorer):
    """Ranks with SQLite FTS5 ``bm25`` over OR-combined query terms.

    Falls back to the keyword scorer on any SQLite error, including a SQLite
    build without FTS5.
    """

    name = "fulltext"

    def __init__(self, fallback: KeywordScorer | None = None) -> None:
        self.fallback = fallback or KeywordScorer()
        self._conn: sqlite3.Connection | None = None
        self._indexed: Sequence[Chunk] | None = None

    def _connection(self, chunks: Sequence[Chunk]) -> sqlite3.Connection:
        """Return an in-memory FTS table over ``chunks``, rebuilt when they change."""  # noqa: DOC201
        if self._conn is not None and self._indexed is chunks:
            return self._conn

        if self._conn is not None:
            self._conn.close()
        self._conn = None
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE VIRTUAL TABLE chunks_fts USING fts5(chunk_text)")
            conn.executemany(
                "INSERT INTO chunks_fts(rowid, chunk_text) VALUES (?, ?)",
                [(i + 1, chunk.text) for i, chunk in enumerate(chunks)],
            )
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        self._conn = conn
        self._indexed = chunks
        logger.info("Built full-text index over %d chunks", len(chunks))
        return conn

    def score(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        """Rank chunks with the full-text index.

        Returns:
            Matching chunks with positive scores, best first.
        """
        tokens = tokenize_query(query)
        if not tokens or not chunks:
            return []

        match = " OR ".join(f'"{token}"' for token in tokens)
        try:
            conn = self._connection(chunks)
            rows = conn.execute(
                """
                SELECT rowid, bm25(chunks_fts) AS rank
                FROM chunks_fts
                WHERE chunks_fts MATCH ?
                ORDER BY rank, rowid
                """,
                (match,),
            ).fetchall()
        except sqlite3.Error:
            logger.warning(
                "Full-text search failed; falling back to keyword scoring",
                exc_info=True,
            )
            return self.fallback.score(query, chunks)

        return rank([(chunks[rowid - 1], -float(bm25)) for rowid, bm25 in rows])


class SemanticScorer(BaseScorer):
    """Ranks by cosine similarity between query and chunk embeddings.

    Usable only when every chunk carries an embedding and the query embeds
    successfully; otherwise the keyword scorer answers.
    """

    name = "semantic"

    def __init__(
        self,
        embedder: QueryEmbedder,
        min_similarity: float | None = None,
        fallback: KeywordScorer | None = None,
        timeout: float | None = None,
    ) -> None:
        """Configure the scorer.

        Args:
            embedder: Produces query embeddings.
            min_similarity: Similarities below this are not matches. If None,
                uses config.SEMANTIC_MIN_SIMILARITY.
            fallback: Scorer used when semantic scoring is impossible.
            timeout: Seconds allowed for embedding a query from the event
                loop. If None, uses config.EMBEDDING_TIMEOUT.
        """
        self.embedder = embedder
        self.min_similarity = (
            config.SEMANTIC_MIN_SIMILARITY if min_similarity is None else min_similarity
        )
        self.fallback = fallback or KeywordScorer()
        self.timeout = config.EMBEDDING_TIMEOUT if timeout is None else timeout
        self._index: faiss.IndexFlatIP | None = None
        self._indexed: Sequence[Chunk] | None = None

    def _faiss_index(self, chunks: Sequence[Chunk]) -> faiss.IndexFlatIP:
        """Return an inner-product index over normalized chunk embeddings."""  # noqa: DOC201
        if self._index is not None and self._indexed is chunks:
            return self._index

        vectors = np.vstack(
            [np.asarray(chunk.embedding, dtype="float32") for chunk in chunks]
        )
        vectors = np.ascontiguousarray(vectors, dtype="float32")
        faiss.normalize_L2(vectors)
        index = faiss.IndexFlatIP(vectors.shape[1])
        index.add(vectors)  # pyright: ignore[reportCallIssue]
        self._index = index
        self._indexed = chunks
        logger.info("Built FAISS index with %d vectors", index.ntotal)
        return index

    def _usable(self, chunks: Sequence[Chunk]) -> bool:
        if any(chunk.embedding is None for chunk in chunks):
            logger.info("Index has no embeddings; using keyword scoring")
            return False
        return True

    def score(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        """Rank chunks by embedding similarity.

        Returns:
            Chunks at or above ``min_similarity``, best first.
        """
        if not chunks:
            return []
        if not self._usable(chunks):
            return self.fallback.score(query, chunks)

        try:
            embedding = self.embedder.get_embedding(query)
        except Exception:
            logger.exception("Query embedding failed; using keyword scoring")
            return self.fallback.score(query, chunks)
        return self.rank_embedding(query, embedding, chunks)

    async def score_async(self, query: str, chunks: Sequence[Chunk]) -> Ranked:
        """Rank chunks, embedding the query in a worker thread.

        The embedding call is bounded by ``timeout``; when it runs out the
        keyword scorer answers and the event loop is never blocked.

        Returns:
            Chunks at or above ``min_similarity``, best first.
        """
        if not chunks:
            return []
        if not self._usable(chunks):
            return self.fallback.score(query, chunks)

        try:
            embedding = await asyncio.wait_for(
                asyncio.to_thread(self.embedder.get_embedding, query),
                timeout=self.timeout,
            )
        except TimeoutError:
            logger.warning(
                "Query embedding timed out after %.1fs; using keyword scoring",
                self.timeout,
            )
            return self.fallback.score(query, chunks)
        except Exception:
            logger.exception("Query embedding failed; using keyword scoring")
            return self.fallback.score(query, chunks)
        return self.rank_embedding(query, embedding, chunks)

    def rank_embedding(
        self,
        query: str,
        embedding: np.ndarray,
        chunks: Sequence[Chunk],
    ) -> Ranked:
        """Rank chunks against an already computed query embedding.

        Returns:
            Chunks at or above ``min_similarity``, best first.
        """
        try:
            query_vector = np.asarray(embedding, dtype="float32").reshape(1, -1)
            index = self._faiss_index(chunks)
            if query_vector.shape[1] != index.d:
                msg = (
                    f"Query embedding dimension {query_vector.shape[1]} does not "
                    f"match index dimension {index.d}"
                )
                raise ValueError(msg)
        except Exception:
            logger.exception("Semantic scoring unavailable; using keyword scoring")
            return self.fallback.score(query, chunks)

        query_vector = np.ascontiguousarray(query_vector)
        faiss.normalize_L2(query_vector)
        similarities, ids = index.search(query_vector, index.ntotal)  # pyright: ignore[reportCallIssue]

        scores = np.zeros(len(chunks), dtype="float32")
        scores[ids[0]] = similarities[0]
        return rank([
            (chunk, float(score))
            for chunk, score in zip(chunks, scores, strict=True)
            if score >= self.min_similarity
        ])


def get_scoring_strategy(
    name: str | None = None,
    *,
    weights: ScoringWeights | None = None,
    embedder: QueryEmbedder | None = None,
) -> ScoringStrategy:
    """Return a configured scoring strategy.

    Raises:
        ValueError: If an unsupported strategy is requested.
    """  # noqa: DOC201
    strategy = (name or config.SCORING_STRATEGY).lower()
    keyword = KeywordScorer(weights)

    if strategy == "keyword":
        return keyword
    if strategy == "fulltext":
        return FullTextScorer(fallback=keyword)
    if strategy == "semantic":
        if embedder is None:
            embedder = EmbeddingService()
        return SemanticScorer(embedder, fallback=keyword)

    msg = f"Unsupported scoring strategy: {name}"
    raise ValueError(msg)
