"""Answer assembly from retrieved context, with optional delegated generation."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from .chunking import split_sentences
from .config import config
from .errors import GenerationError
from .generation import GenerationClient
from .models import Chunk, Message
from .scoring import compile_token_patterns, tokenize_query

logger = config.get_logger(__name__)

NO_MATCH_MESSAGE = (
    "I could not find information about that on this site. Try rephrasing "
    "your question, or browse the site using the navigation menu."
)
GENERATION_FAILED_MESSAGE = (
    "I'm having trouble reaching the answer service and found nothing on this "
    "site to answer from. Please try again in a moment, or browse the site "
    "using the navigation menu."
)
CONTEXT_PREAMBLE = "Based on the site content, here's what I found:"
MORE_DETAIL = (
    "For more detail, see the full article or use the table of contents to "
    "navigate directly to the relevant section."
)

EXCERPT_CHARS = 600
TOP_SENTENCES = 3


@dataclass(frozen=True)
class Intent:
    """A known question category answered from a fixed preamble."""

    name: str
    pattern: re.Pattern[str]
    preamble: str

    def matches(self, query: str) -> bool:
        return bool(self.pattern.search(query))


DEFAULT_INTENTS: tuple[Intent, ...] = (
    Intent(
        name="regulatory",
        pattern=re.compile(
            r"\b(fda|gras|regulat\w*|legal\w*|approv\w*|compliance|health claims?)\b",
            re.IGNORECASE,
        ),
        preamble=(
            "On regulation: ingredients used in functional flavors are subject "
            "to food additive rules, and claims about health effects are "
            "regulated separately. Here is what the site says:"
        ),
    ),
    Intent(
        name="safety",
        pattern=re.compile(
            r"\b(safe|safety|toxic\w*|side effects?|risks?|harmful|dangerous"
            r"|dos(e|age))\b",
            re.IGNORECASE,
        ),
        preamble=(
            "On safety: toxicology depends on dose and route of exposure, and "
            "the evidence for some compounds is preliminary. Here is what the "
            "site says:"
        ),
    ),
    Intent(
        name="definition",
        pattern=re.compile(
            r"^\s*(what\s+(is|are)|define|definition\s+of|tell\s+me\s+about)\b",
            re.IGNORECASE,
        ),
        preamble="Here is how the site describes it:",
    ),
)


def excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    """Cut text at a sentence boundary near ``limit`` characters.

    The first sentence is always kept, hard-truncated with an ellipsis when it
    alone exceeds the limit.

    Returns:
        The excerpt.
    """
    text = text.strip()
    if len(text) <= limit:
        return text

    kept = ""
    for sentence in split_sentences(text):
        if kept and len(kept + sentence) > limit:
            break
        kept += sentence

    kept = kept.strip()
    if len(kept) > limit:
        kept = kept[:limit].rstrip() + "..."
    return kept


def source_line(chunks: Sequence[Chunk]) -> str:
    """Build the citation line for the pages behind ``chunks``.

    Returns:
        ``"Source: A"`` or ``"Sources: A, B"``; empty when no title is known.
    """
    titles = list(dict.fromkeys(c.page_title for c in chunks if c.page_title))
    if not titles:
        return ""
    label = "Source" if len(titles) == 1 else "Sources"
    return f"*{label}: {', '.join(titles)}*"


def _join(*parts: str) -> str:
    return "\n\n".join(part for part in parts if part)


class AnswerAssembler:
    """Turns a query plus retrieved context into a display-ready answer.

    Answering proceeds through fixed fallbacks: delegated generation (when a
    client is configured), a templated intent answer, a generic answer built
    from the best-matching context sentences, and finally a no-match message.
    Every path produces non-empty text.
    """

    def __init__(
        self,
        generator: GenerationClient | None = None,
        intents: Sequence[Intent] = DEFAULT_INTENTS,
        max_history_turns: int | None = None,
    ) -> None:
        self.generator = generator
        self.intents = tuple(intents)
        self.max_history_turns = (
            config.MAX_HISTORY_TURNS if max_history_turns is None else max_history_turns
        )

    async def answer(
        self,
        query: str,
        context_text: str,
        cited_chunks: Sequence[Chunk],
        history: Sequence[Message] = (),
    ) -> str:
        """Produce the answer for one query.

        Args:
            query: The user's question.
            context_text: Retrieved context, possibly empty.
            cited_chunks: Chunks that contributed to ``context_text``, best
                first.
            history: Earlier turns; only the most recent ones are forwarded.

        Returns:
            Non-empty answer text.
        """
        generation_failed = False
        if self.generator is not None:
            recent = (
                list(history)[-self.max_history_turns :]
                if self.max_history_turns
                else []
            )
            try:
                generated = await self.generator.generate(query, recent, context_text)
            except GenerationError as exc:
                generation_failed = True
                logger.warning("Generation failed, answering locally: %s", exc)
            except Exception:
                generation_failed = True
                logger.exception("Unexpected generation failure, answering locally")
            else:
                if generated.strip():
                    return generated.strip()
                generation_failed = True

        if not cited_chunks:
            return GENERATION_FAILED_MESSAGE if generation_failed else NO_MATCH_MESSAGE

        intent = self.match_intent(query)
        if intent is not None:
            logger.info("Answering with %s intent template", intent.name)
            return self.intent_answer(intent, cited_chunks)
        return self.contextual_answer(query, context_text, cited_chunks)

    def match_intent(self, query: str) -> Intent | None:
        """Return the first intent whose pattern matches the query."""  # noqa: DOC201
        return next((intent for intent in self.intents if intent.matches(query)), None)

    @staticmethod
    def intent_answer(intent: Intent, cited_chunks: Sequence[Chunk]) -> str:
        """Blend the intent preamble with an excerpt of the best chunk.

        Returns:
            The templated answer.
        """
        best = cited_chunks[0]
        return _join(intent.preamble, excerpt(best.text), source_line([best]))

    @staticmethod
    def contextual_answer(
        query: str,
        context_text: str,
        cited_chunks: Sequence[Chunk],
    ) -> str:
        """Answer with the context sentences that best overlap the query.

        Returns:
            The top sentences in document order with sources and a pointer
            to the full article; an excerpt of the best chunk when no
            sentence overlaps.
        """
        patterns = compile_token_patterns(tokenize_query(query))
        text = context_text or "\n\n".join(chunk.text for chunk in cited_chunks)

        seen: set[str] = set()
        candidates: list[tuple[int, int, str]] = []
        for position, sentence in enumerate(split_sentences(text)):
            cleaned = " ".join(sentence.replace("---", " ").split())
            if not cleaned or cleaned.lower() in seen:
                continue
            seen.add(cleaned.lower())
            overlap = sum(1 for pattern in patterns if pattern.search(cleaned.lower()))
            if overlap:
                candidates.append((overlap, position, cleaned))

        if candidates:
            best = sorted(candidates, key=lambda c: (-c[0], c[1]))[:TOP_SENTENCES]
            in_order = sorted(best, key=lambda c: c[1])
            body = " ".join(sentence for _, _, sentence in in_order)
        else:
            body = excerpt(cited_chunks[0].text)

        return _join(CONTEXT_PREAMBLE, body, source_line(cited_chunks), MORE_DETAIL)
