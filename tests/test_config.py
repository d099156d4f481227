"""Tests for the Config class."""

import logging
import os
from importlib import reload
from pathlib import Path
from unittest.mock import call, patch

import pytest

from siterag import config as config_module
from siterag.config import Config


@pytest.fixture(autouse=True)
def restore_config_module():
    """Reload the module after each test so env overrides do not leak."""
    yield
    reload(config_module)


def test_get_openai_api_key_from_env():
    """Test OpenAI API key retrieval from environment."""
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        assert Config.get_openai_api_key() == "test-api-key"


def test_get_openai_api_key_empty_when_not_set():
    """Test OpenAI API key returns empty string when not set."""
    with patch.dict(os.environ, {}, clear=True):
        assert not Config.get_openai_api_key()


def test_validate_defaults_need_no_api_key():
    """Keyword scoring without generation works offline."""
    with (
        patch.object(Config, "SCORING_STRATEGY", "keyword"),
        patch.object(Config, "GENERATION_BACKEND", "none"),
        patch.object(Config, "INDEX_BACKEND", "json"),
        patch.object(Config, "get_openai_api_key", return_value=""),
    ):
        Config.validate()


@pytest.mark.parametrize(
    ("attribute", "value"),
    [("SCORING_STRATEGY", "semantic"), ("GENERATION_BACKEND", "openai")],
)
def test_validate_fails_without_api_key_for_openai_features(attribute, value):
    with (
        patch.object(Config, "SCORING_STRATEGY", "keyword"),
        patch.object(Config, "GENERATION_BACKEND", "none"),
        patch.object(Config, attribute, value),
        patch.object(Config, "get_openai_api_key", return_value=""),
        pytest.raises(ValueError, match="OPENAI_API_KEY is required"),
    ):
        Config.validate()


@pytest.mark.parametrize(
    ("attribute", "value", "error_match"),
    [
        ("INDEX_BACKEND", "postgres", "Unsupported index backend"),
        ("SCORING_STRATEGY", "bm42", "Unsupported scoring strategy"),
        ("GENERATION_BACKEND", "carrier-pigeon", "Unsupported generation backend"),
    ],
)
def test_validate_rejects_unknown_names(attribute, value, error_match):
    with (
        patch.object(Config, attribute, value),
        pytest.raises(ValueError, match=error_match),
    ):
        Config.validate()


def test_validate_http_backend_requires_endpoints():
    with (
        patch.object(Config, "SCORING_STRATEGY", "keyword"),
        patch.object(Config, "GENERATION_BACKEND", "http"),
        patch.object(Config, "GENERATION_ENDPOINTS", []),
        pytest.raises(ValueError, match="GENERATION_ENDPOINTS is required"),
    ):
        Config.validate()


@pytest.mark.parametrize(
    ("env_var", "default_value", "test_value", "expected"),
    [
        ("LOG_LEVEL", "INFO", "debug", "DEBUG"),
        ("INDEX_BACKEND", "json", "SQLite", "sqlite"),
        ("INDEX_PATH", "rag-index.json", "https://site.test/rag.json", None),
        ("SCORING_STRATEGY", "keyword", "FullText", "fulltext"),
        ("PAGE_CHUNK_SIZE", 500, "800", 800),
        ("SECTION_CHUNK_SIZE", 400, "300", 300),
        ("MIN_CHUNK_LENGTH", 50, "20", 20),
        ("TOP_K", 5, "3", 3),
        ("MAX_CONTEXT_CHARS", 2000, "1500", 1500),
        ("EXACT_PHRASE_WEIGHT", 15.0, "10", 10.0),
        ("CHAT_MODEL", "gpt-4o-mini", "gpt-4.1-mini", None),
        ("CHAT_MAX_TOKENS", 1000, "500", 500),
        ("CHAT_TEMPERATURE", 0.7, "0.2", 0.2),
        ("GENERATION_TIMEOUT", 15.0, "5", 5.0),
        ("EMBEDDING_TIMEOUT", 10.0, "2.5", 2.5),
        ("MAX_HISTORY_TURNS", 10, "4", 4),
    ],
)
def test_config_loading_from_env(env_var, default_value, test_value, expected):
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == default_value

    with patch.dict(os.environ, {env_var: test_value}):
        reload(config_module)
        expected = test_value if expected is None else expected
        assert getattr(config_module.Config, env_var) == expected


def test_generation_endpoints_split_from_env():
    endpoints = " https://a.test/chat, ,https://b.test/chat "
    with patch.dict(os.environ, {"GENERATION_ENDPOINTS": endpoints}):
        reload(config_module)
        assert config_module.Config.GENERATION_ENDPOINTS == [
            "https://a.test/chat",
            "https://b.test/chat",
        ]


@pytest.mark.parametrize(
    ("env_var", "test_path"),
    [
        ("SITE_ROOT", "/srv/site"),
        ("HISTORY_PATH", "/tmp/history.json"),
    ],
)
def test_path_config_loading(env_var, test_path):
    """Test Path configuration loading from environment variables."""
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        assert isinstance(getattr(config_module.Config, env_var), Path)

    with patch.dict(os.environ, {env_var: test_path}):
        reload(config_module)
        assert getattr(config_module.Config, env_var) == Path(test_path)


@pytest.mark.parametrize(
    ("env_value", "is_dev", "is_prod"),
    [
        ("development", True, False),
        ("DEVELOPMENT", True, False),
        ("production", False, True),
        ("staging", False, False),
    ],
)
def test_environment_detection(env_value, is_dev, is_prod):
    """Test environment detection methods."""
    with patch.object(Config, "ENVIRONMENT", env_value):
        assert Config.is_development() == is_dev
        assert Config.is_production() == is_prod


@pytest.mark.parametrize(
    ("log_level", "openai_level", "expected_level", "expected_openai_level"),
    [
        ("INFO", "WARNING", logging.INFO, logging.WARNING),
        ("DEBUG", "ERROR", logging.DEBUG, logging.ERROR),
        ("INVALID", "INVALID", logging.INFO, logging.WARNING),
    ],
)
def test_setup_logging_levels(
    log_level, openai_level, expected_level, expected_openai_level
):
    """Verify logging setup respects overrides and falls back on invalid values."""
    with (
        patch.object(Config, "LOG_LEVEL", log_level),
        patch.object(Config, "OPENAI_LOG_LEVEL", openai_level),
        patch.object(Config, "HTTPX_LOG_LEVEL", "WARNING"),
        patch("siterag.config.logging.basicConfig") as mock_basic,
        patch("siterag.config.logging.getLogger") as mock_get_logger,
    ):
        mock_logger = mock_get_logger.return_value

        Config.setup_logging()

        mock_basic.assert_called_once_with(
            level=expected_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        assert mock_get_logger.call_args_list == [call("openai"), call("httpx")]
        assert mock_logger.setLevel.call_args_list == [
            call(expected_openai_level),
            call(logging.WARNING),
        ]


def test_get_logger():
    """Test logger creation with specified name."""
    with patch("siterag.config.logging.getLogger") as mock_get_logger:
        result = Config.get_logger("test.module")

        mock_get_logger.assert_called_once_with("test.module")
        assert result == mock_get_logger.return_value


def test_api_headers_include_user_agent():
    with patch.object(Config, "API_USER_AGENT", "siterag-test/2.0"):
        assert Config.get_api_headers() == {"User-Agent": "siterag-test/2.0"}

    with patch.object(Config, "API_USER_AGENT", ""):
        assert Config.get_api_headers() == {}


@pytest.mark.parametrize(
    ("env_var", "invalid_value", "error_match"),
    [
        ("PAGE_CHUNK_SIZE", "not_a_number", "invalid literal for int"),
        ("CHAT_TEMPERATURE", "not_a_float", "could not convert string to float"),
    ],
)
def test_type_conversion_errors(env_var, invalid_value, error_match):
    """Test handling of invalid type conversions."""
    with (
        patch.dict(os.environ, {env_var: invalid_value}),
        pytest.raises(ValueError, match=error_match),
    ):
        reload(config_module)


def test_no_dotenv_loading_when_missing():
    """Test that .env file loading is skipped when file doesn't exist."""
    with (
        patch.object(Path, "exists", return_value=False),
        patch("dotenv.load_dotenv") as mock_load,
    ):
        reload(config_module)

        mock_load.assert_not_called()
