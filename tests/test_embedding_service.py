"""Tests for EmbeddingService."""

import os
from unittest.mock import patch

import httpx
import numpy as np
import pytest
from openai import APIConnectionError

from siterag import EmbeddingService
from siterag.config import config


def test_init_with_api_key(embedding_service, constants) -> None:
    assert embedding_service.client.api_key == constants.TEST_API_KEY
    assert embedding_service.model == config.EMBEDDING_MODEL
    assert embedding_service.batch_size == config.EMBEDDING_BATCH_SIZE
    assert embedding_service.client.timeout == config.EMBEDDING_TIMEOUT


def test_init_with_env_api_key() -> None:
    with patch.dict(os.environ, {"OPENAI_API_KEY": "env-key"}):
        service = EmbeddingService(model="text-embedding-3-large")

    assert service.model == "text-embedding-3-large"
    assert service.client.api_key == "env-key"


@pytest.mark.parametrize("batch_size", [0, -1])
def test_init_rejects_invalid_batch_size(batch_size) -> None:
    with pytest.raises(ValueError, match="batch_size must be positive"):
        EmbeddingService(api_key="test-key", batch_size=batch_size)


def test_get_embedding(
    openai_embeddings_api_mock, embedding_service, embeddings_response_factory
) -> None:
    openai_embeddings_api_mock.return_value = embeddings_response_factory([
        [0.1, 0.2, 0.3]
    ])

    result = embedding_service.get_embedding("what is linalool")

    openai_embeddings_api_mock.assert_called_once_with(
        model=config.EMBEDDING_MODEL, input=["what is linalool"]
    )
    assert result.dtype == np.float32
    np.testing.assert_allclose(result, [0.1, 0.2, 0.3], rtol=1e-6)


def test_get_embedding_api_error(openai_embeddings_api_mock, embedding_service):
    openai_embeddings_api_mock.side_effect = APIConnectionError(
        request=httpx.Request("POST", "https://api.test/embeddings")
    )

    with pytest.raises(APIConnectionError):
        embedding_service.get_embedding("text")


def test_get_embeddings_batch_in_request_sized_groups(
    openai_embeddings_api_mock, embeddings_response_factory
):
    service = EmbeddingService(api_key="test-key", batch_size=2)
    openai_embeddings_api_mock.side_effect = [
        embeddings_response_factory([[1.0, 0.0], [0.0, 1.0]]),
        embeddings_response_factory([[0.5, 0.5]]),
    ]

    result = service.get_embeddings_batch(["a", "b", "c"])

    assert [c.kwargs["input"] for c in openai_embeddings_api_mock.call_args_list] == [
        ["a", "b"],
        ["c"],
    ]
    assert len(result) == 3
    np.testing.assert_array_equal(result[2], np.array([0.5, 0.5], dtype="float32"))


def test_get_embeddings_batch_empty(openai_embeddings_api_mock, embedding_service):
    assert embedding_service.get_embeddings_batch([]) == []
    openai_embeddings_api_mock.assert_not_called()


def test_get_embeddings_batch_count_mismatch(
    openai_embeddings_api_mock, embedding_service, embeddings_response_factory
):
    openai_embeddings_api_mock.return_value = embeddings_response_factory([[1.0]])

    with pytest.raises(ValueError, match="Expected 2 embeddings, received 1"):
        embedding_service.get_embeddings_batch(["a", "b"])


def test_get_embeddings_batch_partial_failure(
    openai_embeddings_api_mock, embeddings_response_factory
):
    service = EmbeddingService(api_key="test-key", batch_size=1)
    openai_embeddings_api_mock.side_effect = [
        embeddings_response_factory([[1.0]]),
        RuntimeError("rate limited"),
    ]

    with pytest.raises(RuntimeError, match="rate limited"):
        service.get_embeddings_batch(["a", "b"])
