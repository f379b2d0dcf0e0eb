import logging
import os
from dblog_tracker.log.logger import setup_logger, cleanup_logger, get_logger


def test_100_logger_initialization(tmp_path):
    """TEST-100: logger writes to the configured file"""
    log_file = tmp_path / "tracker.log"

    logger = setup_logger("test_logger", str(log_file))
    logger.info("Test message")

    # Close handlers so the file can be read
    for handler in logger.handlers:
        handler.close()

    assert os.path.exists(log_file)
    content = log_file.read_text()
    assert "Test message" in content
    assert "test_logger - INFO" in content

    cleanup_logger(logger)


def test_101_console_only_without_file():
    """TEST-101: no file handler when no log file is configured"""
    logger = setup_logger("test_console_logger")

    assert len(logger.handlers) == 1
    assert not isinstance(logger.handlers[0], logging.FileHandler)

    cleanup_logger(logger)


def test_102_setup_replaces_handlers(tmp_path):
    """TEST-102: repeated setup does not accumulate handlers"""
    log_file = tmp_path / "repeat.log"

    setup_logger("test_repeat_logger", str(log_file))
    logger = setup_logger("test_repeat_logger", str(log_file), level=logging.DEBUG)

    assert len(logger.handlers) == 2
    assert logger.level == logging.DEBUG

    cleanup_logger(logger)
    assert logger.handlers == []


def test_103_package_loggers_use_package_handlers():
    """TEST-103: module loggers below the package get no handler of their own"""
    logger = get_logger("dblog_tracker.some.module")
    assert logger.handlers == []

    standalone = get_logger("test_standalone_logger")
    assert len(standalone.handlers) == 1

    cleanup_logger(standalone)
