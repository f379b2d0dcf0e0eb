"""
Log table repository

Reads the per-database log tables kept in the catalog. Writing happens in
TrackedDatabase.sync_log_batch_to_catalog, inside the sync transaction.
"""

from typing import Optional

import pandas as pd

from dblog_tracker.database.driver import DatabaseConnection
from dblog_tracker.log.logger import get_logger
from dblog_tracker.query.template import QueryTemplate, TemplateLoader

LOG_TABLE_COLUMNS = [
    'TransactionID', 'BeginTime', 'EndTime', 'UserName', 'ObjectName',
    'Operation', 'BeginLSN', 'EndLSN', 'RecordedAt',
]


class LogTableRepository:
    """
    Log table repository

    Args:
        catalog: open catalog connection
        template_directory: template root override
    """

    def __init__(self, catalog: DatabaseConnection, template_directory: Optional[str] = None):
        self.logger = get_logger('dblog_tracker.LogTableRepository')
        self.catalog = catalog
        self.templates = TemplateLoader(catalog.dialect.name, template_directory)

    def fetch(self, table_name: str) -> pd.DataFrame:
        """
        All rows of one log table, oldest first.

        Args:
            table_name: log table name (TrackedDatabase.log_table_name)

        Returns:
            DataFrame with LOG_TABLE_COLUMNS; NULL values become NaN/None
        """
        try:
            result = (QueryTemplate.from_resource(self.catalog, self.templates, "read_log_table")
                      .substitute_identifier("tableName", table_name)
                      .execute_select())
        except Exception as e:
            self.logger.error(f"Failed to read log table {table_name}: {e}")
            raise

        columns = list(result.columns) or LOG_TABLE_COLUMNS
        df = pd.DataFrame(result.rows, columns=columns)
        self.logger.debug(f"Read {len(df)} rows from {table_name}")
        return df

    def count(self, table_name: str) -> int:
        """Number of transactions recorded in one log table."""
        return len(self.fetch(table_name))
