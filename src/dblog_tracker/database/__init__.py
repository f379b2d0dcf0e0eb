"""Database connections and tracked databases.

Import TrackedDatabase from dblog_tracker.database.tracked_database.
"""

from dblog_tracker.database.driver import (
    DatabaseConnection,
    Dialect,
    DuckDBDialect,
    MSSQLDialect,
    build_connection_string,
    catalog_dialect,
    catalog_properties,
)

__all__ = [
    'DatabaseConnection', 'Dialect', 'DuckDBDialect', 'MSSQLDialect',
    'build_connection_string', 'catalog_dialect', 'catalog_properties',
]
