"""Logging module for DB log tracking."""

from dblog_tracker.log.logger import cleanup_logger, get_logger, setup_logger

__all__ = [
    'setup_logger',
    'cleanup_logger',
    'get_logger',
]
