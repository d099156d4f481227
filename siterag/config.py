"""Configuration management for the siterag assistant."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)

INDEX_BACKENDS = {"json", "sqlite"}
SCORING_STRATEGIES = {"keyword", "fulltext", "semantic"}
GENERATION_BACKENDS = {"none", "http", "openai"}


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()
    HTTPX_LOG_LEVEL: str = os.getenv("HTTPX_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Site and Index Configuration
    SITE_ROOT: Path = Path(os.getenv("SITE_ROOT", "site"))
    INDEX_BACKEND: str = os.getenv("INDEX_BACKEND", "json").lower()
    INDEX_PATH: str = os.getenv("INDEX_PATH", "rag-index.json")
    SQLITE_INDEX_PATH: str = os.getenv("SQLITE_INDEX_PATH", "rag.sqlite")
    CURRENT_PAGE: str | None = os.getenv("CURRENT_PAGE")
    CURRENT_PAGE_TITLE: str | None = os.getenv("CURRENT_PAGE_TITLE")
    INDEX_FETCH_TIMEOUT: float = float(os.getenv("INDEX_FETCH_TIMEOUT", "10.0"))

    # Chunking Configuration
    PAGE_CHUNK_SIZE: int = int(os.getenv("PAGE_CHUNK_SIZE", "500"))
    SECTION_CHUNK_SIZE: int = int(os.getenv("SECTION_CHUNK_SIZE", "400"))
    MIN_CHUNK_LENGTH: int = int(os.getenv("MIN_CHUNK_LENGTH", "50"))

    # Retrieval Configuration
    SCORING_STRATEGY: str = os.getenv("SCORING_STRATEGY", "keyword").lower()
    TOP_K: int = int(os.getenv("TOP_K", "5"))
    MAX_CONTEXT_CHARS: int = int(os.getenv("MAX_CONTEXT_CHARS", "2000"))
    EXACT_PHRASE_WEIGHT: float = float(os.getenv("EXACT_PHRASE_WEIGHT", "15.0"))
    KEYWORD_WEIGHT: float = float(os.getenv("KEYWORD_WEIGHT", "1.0"))
    HEADING_WEIGHT: float = float(os.getenv("HEADING_WEIGHT", "3.0"))
    TITLE_WEIGHT: float = float(os.getenv("TITLE_WEIGHT", "2.0"))
    POSITION_WEIGHT: float = float(os.getenv("POSITION_WEIGHT", "0.5"))
    SEMANTIC_MIN_SIMILARITY: float = float(
        os.getenv("SEMANTIC_MIN_SIMILARITY", "0.2")
    )
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_BATCH_SIZE: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
    EMBEDDING_TIMEOUT: float = float(os.getenv("EMBEDDING_TIMEOUT", "10.0"))

    # Generation Configuration
    GENERATION_BACKEND: str = os.getenv("GENERATION_BACKEND", "none").lower()
    GENERATION_ENDPOINTS: list[str] = _split_list(
        os.getenv("GENERATION_ENDPOINTS", "")
    )
    GENERATION_TIMEOUT: float = float(os.getenv("GENERATION_TIMEOUT", "15.0"))
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1000"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))

    # Session Configuration
    HISTORY_PATH: Path = Path(os.getenv("HISTORY_PATH", "data/chat_history.json"))
    HISTORY_KEY: str = os.getenv("HISTORY_KEY", "site_chat_history")
    MAX_HISTORY_TURNS: int = int(os.getenv("MAX_HISTORY_TURNS", "10"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "siterag/1.0")

    @classmethod
    def uses_openai(cls) -> bool:
        """Check whether any configured feature talks to OpenAI.

        Returns:
            True if semantic scoring or OpenAI generation is selected.
        """
        return cls.SCORING_STRATEGY == "semantic" or cls.GENERATION_BACKEND == "openai"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If a backend or strategy name is unknown, if the HTTP
                generation backend has no endpoints, or if OPENAI_API_KEY is
                missing while an OpenAI-backed feature is selected.
        """
        if cls.INDEX_BACKEND not in INDEX_BACKENDS:
            msg = f"Unsupported index backend: {cls.INDEX_BACKEND}"
            raise ValueError(msg)
        if cls.SCORING_STRATEGY not in SCORING_STRATEGIES:
            msg = f"Unsupported scoring strategy: {cls.SCORING_STRATEGY}"
            raise ValueError(msg)
        if cls.GENERATION_BACKEND not in GENERATION_BACKENDS:
            msg = f"Unsupported generation backend: {cls.GENERATION_BACKEND}"
            raise ValueError(msg)
        if cls.GENERATION_BACKEND == "http" and not cls.GENERATION_ENDPOINTS:
            msg = "GENERATION_ENDPOINTS is required for the http generation backend."
            raise ValueError(msg)
        if cls.uses_openai() and not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required for semantic scoring or OpenAI "
                "generation. Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Configure third-party library log levels via environment variables
        logging.getLogger("openai").setLevel(
            getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        )
        logging.getLogger("httpx").setLevel(
            getattr(logging, cls.HTTPX_LOG_LEVEL, logging.WARNING)
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound HTTP calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
