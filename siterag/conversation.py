"""Chat session state: sequence-stamped questions and persisted history."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from .answers import AnswerAssembler
from .config import config
from .generation import get_generation_client
from .index_store import get_index_sources
from .models import ChatReply, IndexStatus, Message
from .retrieval import Retriever
from .scoring import get_scoring_strategy

logger = config.get_logger(__name__)

APOLOGY_MESSAGE = (
    "I apologize, but I encountered an error while answering. Please try "
    "again or browse the site using the navigation menu."
)
DEGRADED_NOTICE = (
    "Operating without knowledge base: the site index could not be loaded, "
    "so answers may be limited. Try browsing the site using the navigation menu."
)
EMPTY_QUESTION_MESSAGE = "Please type a question about this site."


class HistoryStore:
    """Key-value JSON file that keeps the chat history across restarts."""

    def __init__(self, path: Path | None = None, key: str | None = None) -> None:
        self.path = Path(path if path is not None else config.HISTORY_PATH)
        self.key = key or config.HISTORY_KEY

    def _read_all(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("Discarding unreadable history file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> list[Message]:
        """Restore saved messages.

        Missing, corrupt or malformed history is treated as no history.

        Returns:
            The saved messages, oldest first.
        """
        entries = self._read_all().get(self.key)
        if entries is None:
            return []
        if not isinstance(entries, list):
            logger.warning("Stored history under %r is not a list; ignoring", self.key)
            return []

        messages: list[Message] = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("Stored history is malformed; starting empty")
                return []
            role = entry.get("role")
            text = entry.get("text", entry.get("content"))
            if role not in {"user", "assistant"} or not isinstance(text, str):
                logger.warning("Stored history is malformed; starting empty")
                return []
            messages.append(Message(role=role, text=text))

        logger.info("Restored %d messages from %s", len(messages), self.path)
        return messages

    def _write_all(self, data: dict) -> None:
        self.path.parent.mkdir(exist_ok=True, parents=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, ensure_ascii=False)
            Path(tmp_name).replace(self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save(self, messages: list[Message]) -> None:
        """Persist messages under the store key, keeping other keys intact."""
        data = self._read_all()
        data[self.key] = [message.to_dict() for message in messages]
        self._write_all(data)

    def clear(self) -> None:
        """Remove the stored history for this key."""
        data = self._read_all()
        if data.pop(self.key, None) is not None:
            self._write_all(data)


class ChatSession:
    """Manages one user's conversation with the site assistant."""

    def __init__(
        self,
        retriever: Retriever,
        assembler: AnswerAssembler,
        store: HistoryStore | None = None,
        max_history_turns: int | None = None,
    ) -> None:
        """Initialize ChatSession.

        Args:
            retriever: Retriever over the site index.
            assembler: Produces answers from retrieved context.
            store: Optional persistence for the message history.
            max_history_turns: Messages forwarded as conversation context. If
                None, uses config.MAX_HISTORY_TURNS.
        """
        self.retriever = retriever
        self.assembler = assembler
        self.store = store
        self.max_history_turns = (
            config.MAX_HISTORY_TURNS if max_history_turns is None else max_history_turns
        )
        self.history: list[Message] = []
        self._sequence = 0
        self._in_flight = 0
        self._started = False

    @classmethod
    def from_config(cls) -> ChatSession:
        """Assemble a session from the application configuration.

        Returns:
            A session wired to the configured index, scorer and generator.
        """
        retriever = Retriever(get_index_sources(), get_scoring_strategy())
        assembler = AnswerAssembler(get_generation_client())
        store = HistoryStore(config.HISTORY_PATH, config.HISTORY_KEY)
        return cls(retriever, assembler, store)

    @property
    def context_history(self) -> list[Message]:
        """The most recent messages forwarded with each question."""
        if self.max_history_turns <= 0:
            return []
        return self.history[-self.max_history_turns :]

    @property
    def is_busy(self) -> bool:
        return self._in_flight > 0

    @property
    def status_notice(self) -> str | None:
        """Plain-language notice when the knowledge base is unavailable."""
        if self.retriever.status is IndexStatus.EMPTY:
            return DEGRADED_NOTICE
        return None

    async def start(self) -> None:
        """Restore saved history and load the index eagerly."""
        if self._started:
            return
        self._started = True
        if self.store is not None:
            self.history = self.store.load()
        await self.retriever.load()

    async def ask(self, text: str) -> ChatReply:
        """Answer one user message.

        The question is stamped with a sequence number; when a newer question
        was asked while this one was in flight, the reply is marked superseded
        and left out of the history.

        A blank message is answered with a prompt and neither recorded nor
        stamped.

        Returns:
            The reply to display.
        """
        query = text.strip()
        if not query:
            return ChatReply(
                text=EMPTY_QUESTION_MESSAGE,
                sequence=self._sequence,
                status=self.retriever.status,
            )

        self._sequence += 1
        sequence = self._sequence
        self._in_flight += 1
        history = self.context_history

        try:
            result = await self.retriever.retrieve(query, history)
            answer = await self.assembler.answer(
                query, result.context_text, result.cited_chunks, history
            )
            sources = tuple(result.sources)
        except Exception:
            logger.exception("Failed to answer question: %s", query)
            answer = APOLOGY_MESSAGE
            sources = ()
        finally:
            self._in_flight -= 1

        if sequence != self._sequence:
            logger.info("Discarding superseded reply #%d", sequence)
            return ChatReply(
                text=answer,
                sequence=sequence,
                sources=sources,
                superseded=True,
                status=self.retriever.status,
            )

        self.history.extend([
            Message(role="user", text=query),
            Message(role="assistant", text=answer),
        ])
        self._persist()
        return ChatReply(
            text=answer,
            sequence=sequence,
            sources=sources,
            status=self.retriever.status,
        )

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.history)
        except OSError:
            logger.exception("Failed to save chat history to %s", self.store.path)

    def clear(self) -> None:
        """Clear the conversation history."""
        self.history = []
        if self.store is not None:
            try:
                self.store.clear()
            except OSError:
                logger.exception("Failed to clear chat history at %s", self.store.path)
        logger.info("Conversation history cleared.")
