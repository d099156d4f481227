"""Test configuration and fixtures for siterag tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Site HTML fixtures
- Chunk and index factories
- HTTP transports for index and generation endpoints
"""

import hashlib
import json
from pathlib import Path
from unittest.mock import Mock, patch

import httpx
import numpy as np
import pytest

from siterag import (
    AnswerAssembler,
    Chunk,
    ContentExtractor,
    EmbeddingService,
    Index,
    TextChunker,
)
from siterag.index_store import JsonIndexSource, write_json
from siterag.models import IndexMetadata, IndexStatus, PageSummary
from siterag.retrieval import Retriever
from siterag.scoring import KeywordScorer, ScoringWeights


class TestConstants:
    """Centralized test constants to avoid repetition across test files.

    All test constants are defined here to maintain consistency across
    the test suite and make it easy to update values globally.
    """

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 64

    # Chunking Configuration
    PAGE_CHUNK_SIZE = 500
    SECTION_CHUNK_SIZE = 400
    MIN_CHUNK_LENGTH = 50
    SMALL_CHUNK_SIZE = 120

    # Site content
    HOME_URL = "index.html"
    HOME_TITLE = "Terpedia"
    COMPOUND_URL = "compounds/linalool.html"
    COMPOUND_TITLE = "Linalool"
    TERPEDIA_SENTENCE = (
        "Terpedia is a scientific repository for functional flavors research."
    )

    # Endpoints
    INDEX_URL = "https://site.test/rag-index.json"
    PAGE_URL = "https://site.test/index.html"
    PRIMARY_ENDPOINT = "https://api.test/chat"
    FALLBACK_ENDPOINT = "https://backup.test/chat"


HOME_HTML = f"""<!DOCTYPE html>
<html>
<head><title>{TestConstants.HOME_TITLE}</title>
<style>body {{ color: red; }}</style>
<script>var trackingNavigationScript = true;</script>
</head>
<body>
<nav><a href="/">Home</a> Navigation menu with many links to browse.</nav>
<article>
<h1>Terpedia</h1>
<p>{TestConstants.TERPEDIA_SENTENCE} It collects evidence on terpenes, aroma
compounds and their biological effects. Every article links to primary studies.</p>
<h2>Mission</h2>
<p>Our mission is to make flavor science accessible. We summarize peer-reviewed
research on how flavor compounds interact with the body and the mind.</p>
<h2>FDA Regulations</h2>
<p>The FDA regulates flavoring substances as food additives. Many terpenes are
generally recognized as safe (GRAS) when used at typical flavor levels.</p>
</article>
<footer>Copyright footer text that should never be indexed anywhere.</footer>
</body>
</html>
"""

COMPOUND_HTML = f"""<!DOCTYPE html>
<html>
<head><title>{TestConstants.COMPOUND_TITLE}</title></head>
<body>
<main>
<h1>Linalool</h1>
<p>Linalool is a floral terpene alcohol found in lavender and coriander. It is
one of the most studied aroma compounds in functional flavor research.</p>
<h2>Safety and Toxicology</h2>
<p>Linalool shows low acute toxicity in animal studies. Skin sensitization can
occur after oxidation, so formulations often include antioxidants.</p>
</main>
</body>
</html>
"""


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.model = "mock-embedding"
        self.calls: list[str] = []

    def get_embedding(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        self.calls.append(text)
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def get_embeddings_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Generate batch of mock embeddings."""
        return [self.get_embedding(text) for text in texts]


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def json_transport(routes: dict[str, httpx.Response]) -> httpx.MockTransport:
    """Build a transport answering known URLs and 404 for everything else.

    Returns:
        An httpx mock transport.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        return routes.get(str(request.url), httpx.Response(404))

    return httpx.MockTransport(handler)


class StaticSource:
    """Index source returning a fixed index, or raising a fixed error."""

    def __init__(self, index=None, error=None, name="static", tier=None) -> None:
        self.index = index
        self.error = error
        self.name = name
        self.tier = tier or IndexStatus.ARTIFACT
        self.calls = 0

    async def load(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.index


@pytest.fixture
def openai_embeddings_api_mock():
    """Base fixture that patches OpenAI embeddings.create method."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def embedding_service():
    """Default EmbeddingService with test API key."""
    return EmbeddingService(api_key=TestConstants.TEST_API_KEY)


@pytest.fixture(scope="session")
def mock_embedding_service():
    """Pre-configured MockEmbeddingService for consistent test embeddings."""
    return MockEmbeddingService()


@pytest.fixture
def extractor():
    return ContentExtractor()


@pytest.fixture
def text_chunker_factory():
    """Factory fixture that creates ``TextChunker`` instances on demand."""

    def _create_chunker(
        page_chunk_size: int = TestConstants.PAGE_CHUNK_SIZE,
        section_chunk_size: int = TestConstants.SECTION_CHUNK_SIZE,
        min_chunk_length: int = TestConstants.MIN_CHUNK_LENGTH,
    ) -> TextChunker:
        return TextChunker(
            page_chunk_size=page_chunk_size,
            section_chunk_size=section_chunk_size,
            min_chunk_length=min_chunk_length,
        )

    return _create_chunker


@pytest.fixture
def text_chunker_default(text_chunker_factory):
    """Text chunker with default sizes (500/400, minimum 50)."""
    return text_chunker_factory()


@pytest.fixture
def keyword_scorer():
    return KeywordScorer(ScoringWeights())


@pytest.fixture
def home_html():
    return HOME_HTML


@pytest.fixture
def site_root(tmp_path) -> Path:
    """Write a two-page site with a nested compounds directory."""
    root = tmp_path / "site"
    (root / "compounds").mkdir(parents=True)
    (root / TestConstants.HOME_URL).write_text(HOME_HTML, encoding="utf-8")
    (root / TestConstants.COMPOUND_URL).write_text(COMPOUND_HTML, encoding="utf-8")
    return root


@pytest.fixture
def chunk_factory():
    """Factory for creating chunks with sensible defaults."""

    def _create_chunk(
        text: str,
        *,
        chunk_id: str | None = None,
        page_title: str = TestConstants.HOME_TITLE,
        page_url: str = TestConstants.HOME_URL,
        section_heading: str | None = None,
        chunk_index: int = 0,
        is_section: bool | None = None,
        embedding: np.ndarray | None = None,
    ) -> Chunk:
        if is_section is None:
            is_section = section_heading is not None
        return Chunk(
            id=chunk_id or f"{page_url}-chunk-{chunk_index}",
            page_title=page_title,
            page_url=page_url,
            text=text,
            section_heading=section_heading,
            chunk_index=chunk_index,
            is_section=is_section,
            embedding=embedding,
        )

    return _create_chunk


@pytest.fixture
def index_factory():
    """Factory for wrapping chunks into an index with a matching page listing."""

    def _create_index(chunks: list[Chunk]) -> Index:
        pages = {
            chunk.page_url: PageSummary(title=chunk.page_title, url=chunk.page_url)
            for chunk in chunks
        }
        return Index(
            metadata=IndexMetadata.now(
                total_pages=len(pages), total_chunks=len(chunks)
            ),
            chunks=tuple(chunks),
            pages=tuple(pages.values()),
        )

    return _create_index


@pytest.fixture
def sample_chunks(chunk_factory):
    """A small knowledge base spanning two pages."""
    return [
        chunk_factory(
            f"{TestConstants.TERPEDIA_SENTENCE} It collects evidence on terpenes "
            "and aroma compounds.",
            chunk_index=0,
        ),
        chunk_factory(
            "The FDA regulates flavoring substances as food additives. Many "
            "terpenes are generally recognized as safe at typical flavor levels.",
            chunk_id="index.html-section-1-0",
            section_heading="FDA Regulations",
        ),
        chunk_factory(
            "Linalool shows low acute toxicity in animal studies. Skin "
            "sensitization can occur after oxidation.",
            page_title=TestConstants.COMPOUND_TITLE,
            page_url=TestConstants.COMPOUND_URL,
            chunk_id="compounds/linalool.html-section-0-0",
            section_heading="Safety and Toxicology",
        ),
    ]


@pytest.fixture
def sample_index(sample_chunks, index_factory):
    return index_factory(sample_chunks)


@pytest.fixture
def retriever_factory():
    """Factory for retrievers over fixed indexes or failing sources."""

    def _create_retriever(*sources, **kwargs) -> Retriever:
        return Retriever(list(sources), KeywordScorer(ScoringWeights()), **kwargs)

    return _create_retriever


@pytest.fixture
def sample_retriever(retriever_factory, sample_index):
    return retriever_factory(StaticSource(sample_index))


@pytest.fixture
def assembler():
    """Answer assembler without a generation client."""
    return AnswerAssembler(max_history_turns=10)


@pytest.fixture
def index_json_path(tmp_path, sample_index) -> Path:
    """Write the sample index as a JSON artifact."""
    path = tmp_path / "rag-index.json"
    write_json(sample_index, path)
    return path


@pytest.fixture
def json_source_factory():
    """Factory for JSON index sources served over a mock transport."""

    def _create_source(body: bytes | str | None, status_code: int = 200):
        routes = {}
        if body is not None:
            content = body.encode("utf-8") if isinstance(body, str) else body
            routes[TestConstants.INDEX_URL] = httpx.Response(
                status_code, content=content
            )
        return JsonIndexSource(
            TestConstants.INDEX_URL, timeout=5.0, transport=json_transport(routes)
        )

    return _create_source


@pytest.fixture
def generation_transport_factory():
    """Factory for generation endpoints answering with fixed responses."""

    def _create_transport(responses: dict[str, httpx.Response]):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            seen.append(url)
            if url not in responses:
                return httpx.Response(404)
            response = responses[url]
            if isinstance(response, Exception):
                raise response
            return response

        transport = httpx.MockTransport(handler)
        transport.seen = seen  # type: ignore[attr-defined]
        return transport

    return _create_transport


def json_response(payload) -> httpx.Response:
    """Build a 200 response carrying a JSON body.

    Returns:
        The response.
    """
    return httpx.Response(200, content=json.dumps(payload).encode("utf-8"))


@pytest.fixture
def constants():
    return TestConstants


@pytest.fixture
def static_source_factory():
    """Factory for index sources that return a fixed index or raise."""
    return StaticSource


@pytest.fixture
def json_response_factory():
    """Factory for 200 responses with a JSON body."""
    return json_response


@pytest.fixture
def chat_response_factory():
    """Factory for mock OpenAI chat completion responses."""
    return create_mock_chat_response


@pytest.fixture
def embeddings_response_factory():
    """Factory for mock OpenAI embeddings responses."""
    return create_mock_openai_response
