"""Unit tests for connection settings and logging setup."""

import io
import json
import logging

import pytest
import structlog
from pydantic import ValidationError

from watson_core.config.settings import ConnectionSettings
from watson_core.core.logging import LogFormat, get_logger, setup_logging


class TestConnectionSettings:
    """Tests for ConnectionSettings."""

    def test_defaults(self, monkeypatch):
        for name in ("WATSON_MAX_REST_CONNECTIONS", "WATSON_REQUEST_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)

        settings = ConnectionSettings(_env_file=None)

        assert settings.max_rest_connections == 5
        assert settings.request_timeout == 120.0
        assert settings.max_request_bytes == 4 * 1024 * 1024
        assert settings.keep_alive_interval == 20.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("WATSON_MAX_REST_CONNECTIONS", "2")
        monkeypatch.setenv("WATSON_CREDENTIALS_FILE", "/etc/watson/config.json")

        settings = ConnectionSettings(_env_file=None)

        assert settings.max_rest_connections == 2
        assert settings.credentials_file == "/etc/watson/config.json"

    def test_invalid_pool_size(self):
        with pytest.raises(ValidationError):
            ConnectionSettings(max_rest_connections=0, _env_file=None)

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            ConnectionSettings(request_timeout=-1, _env_file=None)


class TestLogging:
    """Tests for structured logging setup."""

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        yield
        structlog.reset_defaults()
        root = logging.getLogger()
        for handler in root.handlers[:]:
            if isinstance(handler, logging.StreamHandler) and isinstance(handler.stream, io.StringIO):
                root.removeHandler(handler)

    def test_json_output(self):
        stream = io.StringIO()
        setup_logging(level="DEBUG", format=LogFormat.JSON, stream=stream)

        get_logger("watson_core.test").info("Request queued", pending=1)

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert lines[0]["event"] == "Logging configured"
        assert lines[0]["format"] == "json"
        assert lines[1]["event"] == "Request queued"
        assert lines[1]["pending"] == 1
        assert lines[1]["level"] == "info"
        assert lines[1]["logger"] == "watson_core.test"

    def test_level_filtering(self):
        stream = io.StringIO()
        setup_logging(level="WARNING", format="json", stream=stream)

        logger = get_logger("watson_core.test")
        logger.info("hidden")
        logger.warning("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()
