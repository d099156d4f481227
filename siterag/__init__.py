"""siterag - retrieval-augmented site assistant."""

from .answers import AnswerAssembler
from .chunking import TextChunker, split_sentences
from .conversation import ChatSession, HistoryStore
from .embeddings import EmbeddingService
from .extraction import ContentExtractor
from .formatting import format_message
from .generation import (
    HttpGenerationClient,
    OpenAIGenerationClient,
    ResponseShape,
    get_generation_client,
    normalize_response,
)
from .models import ChatReply, Chunk, Index, IndexStatus, Message, PageRecord
from .pipeline import IndexBuildPipeline
from .retrieval import Retriever
from .scoring import FullTextScorer, KeywordScorer, SemanticScorer, get_scoring_strategy

__all__ = [
    "AnswerAssembler",
    "ChatReply",
    "ChatSession",
    "Chunk",
    "ContentExtractor",
    "EmbeddingService",
    "FullTextScorer",
    "HistoryStore",
    "HttpGenerationClient",
    "Index",
    "IndexBuildPipeline",
    "IndexStatus",
    "KeywordScorer",
    "Message",
    "OpenAIGenerationClient",
    "PageRecord",
    "ResponseShape",
    "Retriever",
    "SemanticScorer",
    "TextChunker",
    "format_message",
    "get_generation_client",
    "get_scoring_strategy",
    "normalize_response",
    "split_sentences",
]
