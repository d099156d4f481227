"""Chunk and query embeddings for the semantic scoring strategy."""

from collections.abc import Sequence

import numpy as np
from openai import OpenAI

from .config import config

logger = config.get_logger(__name__)


class EmbeddingService:
    """Embeds chunk and query text with the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        batch_size: int | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            api_key: OpenAI API key. If None, reads OPENAI_API_KEY.
            model: Embedding model name, recorded in built index metadata.
                If None, uses config.EMBEDDING_MODEL.
            batch_size: Texts sent per request when embedding chunks. If
                None, uses config.EMBEDDING_BATCH_SIZE.

        Raises:
            ValueError: If ``batch_size`` is not positive.
        """
        self.batch_size = (
            config.EMBEDDING_BATCH_SIZE if batch_size is None else batch_size
        )
        if self.batch_size <= 0:
            msg = f"batch_size must be positive, got {self.batch_size}"
            raise ValueError(msg)

        default_headers = config.get_api_headers()
        self.client = OpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=config.EMBEDDING_TIMEOUT,
        )
        self.model = model or config.EMBEDDING_MODEL

    def _embed(self, inputs: list[str]) -> list[np.ndarray]:
        response = self.client.embeddings.create(model=self.model, input=inputs)
        vectors = [np.asarray(item.embedding, dtype="float32") for item in response.data]
        if len(vectors) != len(inputs):
            msg = f"Expected {len(inputs)} embeddings, received {len(vectors)}"
            raise ValueError(msg)
        return vectors

    def get_embedding(self, text: str) -> np.ndarray:
        """Embed a single query.

        Returns:
            The float32 embedding vector.
        """
        try:
            return self._embed([text])[0]
        except Exception:
            logger.exception("Error embedding query")
            raise

    def get_embeddings_batch(self, texts: Sequence[str]) -> list[np.ndarray]:
        """Embed many texts, ``batch_size`` per request.

        Returns:
            One vector per input text, in input order.
        """
        total = (len(texts) + self.batch_size - 1) // self.batch_size
        embeddings: list[np.ndarray] = []

        for number, start in enumerate(range(0, len(texts), self.batch_size), 1):
            batch = list(texts[start : start + self.batch_size])
            try:
                embeddings.extend(self._embed(batch))
            except Exception:
                logger.exception("Error embedding batch %d/%d", number, total)
                raise
            logger.info("Embedded batch %d/%d (%d texts)", number, total, len(batch))

        return embeddings
