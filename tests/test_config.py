"""
Unit tests for API settings and logging setup.
"""

import logging
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from bookreview_api.config import APIConfig
from utilities.logger import RequestLogger, setup_logging


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the host environment out of these tests."""
    for name in ("JWT_SECRET", "LOG_LEVEL", "LOG_FORMAT", "ACCESS_TOKEN_EXPIRE_MINUTES", "MONGODB_DATABASE"):
        monkeypatch.delenv(name, raising=False)


class TestAPIConfig:
    """Test cases for APIConfig."""

    def test_secret_is_required(self):
        with pytest.raises(ValidationError):
            APIConfig(_env_file=None)

    def test_blank_secret_is_rejected(self):
        with pytest.raises(ValidationError):
            APIConfig(jwt_secret="   ", _env_file=None)

    def test_defaults(self):
        config = APIConfig(jwt_secret="s3cret", _env_file=None)

        assert config.api_title == "Book Review API"
        assert config.mongodb_database == "book_reviews"
        assert config.jwt_algorithm == "HS256"
        assert config.access_token_expire_minutes == 60 * 24 * 7
        assert config.log_level == "INFO"
        assert config.log_format == "json"
        assert config.log_file is None

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "from-env")
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30")
        monkeypatch.setenv("MONGODB_DATABASE", "reviews_test")

        config = APIConfig(_env_file=None)

        assert config.jwt_secret == "from-env"
        assert config.access_token_expire_minutes == 30
        assert config.mongodb_database == "reviews_test"

    def test_log_settings_are_normalised(self):
        config = APIConfig(jwt_secret="s3cret", log_level="debug", log_format="CONSOLE", _env_file=None)
        assert config.log_level == "DEBUG"
        assert config.log_format == "console"

    @pytest.mark.parametrize("field,value", [
        ("log_level", "LOUD"),
        ("log_format", "xml"),
        ("access_token_expire_minutes", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            APIConfig(jwt_secret="s3cret", _env_file=None, **{field: value})


class TestLogging:
    """Test cases for the logging helpers."""

    def test_setup_with_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "api.log"

        root = logging.getLogger()
        handlers = list(root.handlers)

        setup_logging(log_level="INFO", log_format="json", log_file=str(log_file))

        try:
            assert log_file.parent.is_dir()
        finally:
            for handler in root.handlers[:]:
                if handler not in handlers:
                    root.removeHandler(handler)
                    handler.close()

    def test_request_logger_levels(self):
        request_logger = RequestLogger()
        request_logger.logger = MagicMock()

        request_logger.log_request("GET", "/api/books", 200, request_logger.start())
        request_logger.log_request("GET", "/api/books", 503, request_logger.start())

        request_logger.logger.info.assert_called_once()
        request_logger.logger.error.assert_called_once()
        assert request_logger.logger.error.call_args.kwargs["status_code"] == 503

    def test_repeated_setup_keeps_one_file_handler(self, tmp_path):
        log_file = tmp_path / "api.log"
        root = logging.getLogger()
        handlers = list(root.handlers)

        try:
            setup_logging(log_level="INFO", log_format="json", log_file=str(log_file))
            setup_logging(log_level="INFO", log_format="json", log_file=str(log_file))

            file_handlers = [
                handler for handler in root.handlers
                if isinstance(handler, logging.FileHandler)
                and handler.baseFilename == str(log_file.resolve())
            ]
            assert len(file_handlers) == 1
        finally:
            for handler in root.handlers[:]:
                if handler not in handlers:
                    root.removeHandler(handler)
                    handler.close()
