"""Read access to catalog log tables."""

from dblog_tracker.repository.log_table_repo import LOG_TABLE_COLUMNS, LogTableRepository

__all__ = ['LOG_TABLE_COLUMNS', 'LogTableRepository']
