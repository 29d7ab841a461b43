"""Tests for logging configuration functionality."""

import json
import logging
from collections.abc import Generator
from io import StringIO

import pytest
import structlog

from services.common.structured_logging import (
    configure_logging,
    get_logger,
    guild_context,
)


@pytest.fixture
def isolated_structlog() -> Generator[None, None, None]:
    """Reset structlog configuration between tests."""
    original_config = structlog.get_config()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
    structlog.configure(**original_config)


def _json_lines(output: StringIO) -> list[dict]:
    return [json.loads(line) for line in output.getvalue().splitlines() if line]


class TestLoggingConfiguration:
    """Test logging configuration functionality."""

    @pytest.mark.unit
    def test_configure_logging_basic(self, isolated_structlog):
        """Test basic logging configuration."""
        captured_output = StringIO()
        configure_logging(
            level="INFO",
            json_logs=True,
            service_name="soundboard",
            stream=captured_output,
        )

        logger = get_logger("test_logger")
        logger.info("player.stopped", guild_id="g1")

        log_data = json.loads(captured_output.getvalue().strip())

        assert log_data["event"] == "player.stopped"
        assert log_data["guild_id"] == "g1"
        assert log_data["service"] == "soundboard"
        assert "timestamp" in log_data
        assert log_data["level"] == "info"

    @pytest.mark.unit
    def test_configure_logging_console_output(self, isolated_structlog):
        """Test console output configuration."""
        captured_output = StringIO()
        configure_logging(
            level="INFO",
            json_logs=False,
            service_name="soundboard",
            stream=captured_output,
        )

        get_logger("test_logger").info("voice.connected", channel_id="ch1")

        log_output = captured_output.getvalue()

        assert "voice.connected" in log_output
        assert "ch1" in log_output
        with pytest.raises(json.JSONDecodeError):
            json.loads(log_output.strip())

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("level", "expected_lines"),
        [("DEBUG", 4), ("INFO", 3), ("WARNING", 2), ("ERROR", 1)],
    )
    def test_configure_logging_log_levels(self, isolated_structlog, level, expected_lines):
        """Test different log levels."""
        captured_output = StringIO()
        configure_logging(level=level, json_logs=True, stream=captured_output)

        logger = get_logger("test_logger")
        logger.debug("debug message")
        logger.info("info message")
        logger.warning("warning message")
        logger.error("error message")

        assert len(_json_lines(captured_output)) == expected_lines

    @pytest.mark.unit
    def test_unknown_level_falls_back_to_info(self, isolated_structlog):
        captured_output = StringIO()
        configure_logging(level="chatty", json_logs=True, stream=captured_output)

        logger = get_logger("test_logger")
        logger.debug("hidden")
        logger.info("shown")

        assert [line["event"] for line in _json_lines(captured_output)] == ["shown"]

    @pytest.mark.unit
    def test_configure_logging_no_service_name(self, isolated_structlog):
        """Test logging without service name."""
        captured_output = StringIO()
        configure_logging(
            level="INFO", json_logs=True, service_name=None, stream=captured_output
        )

        get_logger("test_logger").info("test message")

        log_data = json.loads(captured_output.getvalue().strip())
        assert "service" not in log_data

    @pytest.mark.unit
    def test_configure_logging_stdlib_integration(self, isolated_structlog):
        """Records from plain stdlib loggers go through the same renderer."""
        captured_output = StringIO()
        configure_logging(
            level="INFO",
            json_logs=True,
            service_name="soundboard",
            stream=captured_output,
        )

        logging.getLogger("uvicorn.error").info("stdlib message")

        log_data = json.loads(captured_output.getvalue().strip())
        assert log_data["event"] == "stdlib message"
        assert log_data["service"] == "soundboard"

    @pytest.mark.unit
    def test_discord_loggers_are_quieted(self, isolated_structlog):
        configure_logging(level="DEBUG", json_logs=True, stream=StringIO())

        assert logging.getLogger("discord.http").level == logging.WARNING
        assert logging.getLogger("discord.player").level == logging.WARNING
        assert logging.getLogger("discord.gateway").level == logging.INFO


class TestLoggerHelpers:
    """Test get_logger metadata and guild context binding."""

    @pytest.mark.unit
    def test_get_logger_binds_metadata(self, isolated_structlog):
        captured_output = StringIO()
        configure_logging(level="INFO", json_logs=True, stream=captured_output)

        get_logger("test_logger", guild_id="g7", service_name="soundboard").info(
            "engine.music_started"
        )

        log_data = json.loads(captured_output.getvalue().strip())
        assert log_data["guild_id"] == "g7"
        assert log_data["service"] == "soundboard"

    @pytest.mark.unit
    def test_logger_created_before_configuration_uses_final_config(
        self, isolated_structlog
    ):
        logger = get_logger("early_logger", service_name="soundboard")
        captured_output = StringIO()
        configure_logging(level="INFO", json_logs=True, stream=captured_output)

        logger.info("late.event")

        log_data = json.loads(captured_output.getvalue().strip())
        assert log_data["event"] == "late.event"

    @pytest.mark.unit
    def test_guild_context_binds_and_restores(self, isolated_structlog):
        captured_output = StringIO()
        configure_logging(level="INFO", json_logs=True, stream=captured_output)

        with guild_context("outer") as logger:
            logger.info("first")
            with guild_context("inner") as inner:
                inner.info("second")
            logger.info("third")
        get_logger("test_logger").info("fourth")

        guilds = [line.get("guild_id") for line in _json_lines(captured_output)]
        assert guilds == ["outer", "inner", "outer", None]

    @pytest.mark.unit
    def test_guild_context_without_guild_is_passthrough(self, isolated_structlog):
        captured_output = StringIO()
        configure_logging(level="INFO", json_logs=True, stream=captured_output)

        with guild_context(None) as logger:
            logger.info("no guild")

        assert "guild_id" not in json.loads(captured_output.getvalue().strip())
