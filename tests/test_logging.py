"""Tests for logging configuration"""

import json

from arena_indexer.utils.logging import get_logger, setup_logging


def test_setup_logging_default():
    """Test logging setup with default level"""
    setup_logging()
    logger = get_logger("test")

    assert hasattr(logger, 'info')
    assert hasattr(logger, 'error')


def test_setup_logging_unknown_level_falls_back():
    """Test an unknown level name does not raise"""
    setup_logging(log_level="VERBOSE")
    logger = get_logger()

    assert hasattr(logger, 'info')


def test_logger_can_log_messages():
    """Test that logger can log messages with context"""
    setup_logging(log_level="INFO")
    logger = get_logger("test")

    logger.info("test_message", key="value", number=42)
    logger.warning("warning_message", game_id=7)
    logger.error("error_message", error="test_error")


def test_log_lines_are_json(capsys):
    """Test events are rendered as JSON with level and timestamp"""
    setup_logging(log_level="INFO")
    logger = get_logger("arena_indexer.test")

    logger.info("game_created", game_id=7, creator="0xA")

    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    record = json.loads(lines[-1])
    assert record["event"] == "game_created"
    assert record["game_id"] == 7
    assert record["creator"] == "0xA"
    assert record["level"] == "info"
    assert "timestamp" in record


def test_debug_filtered_at_info_level(capsys):
    """Test debug events are dropped when the level is INFO"""
    setup_logging(log_level="INFO")
    logger = get_logger("arena_indexer.test")

    logger.debug("noisy_event")

    assert "noisy_event" not in capsys.readouterr().out
