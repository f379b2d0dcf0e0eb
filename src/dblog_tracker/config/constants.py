"""
Catalog-related constants for DB log tracking.

Names and sentinels shared by the tracked-database layer and the session so
that none of them are spelled out twice.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TrackingConstants:
    """Constants for tracked databases and their log tables."""

    NEW_DATABASE_ID: int = -1
    """Numeric id of an entry that has never been committed to the catalog"""

    LOG_TABLE_PREFIX: str = "Track_DB_"
    """Log table name = prefix + entry identity"""

    FOREIGN_KEY_TEMPLATE: str = "FK_{table_name}_TrackedDatabaseID_TrackedDatabases_ID"
    """Name of the log table's foreign key to the tracking table"""

    CONNECTION_PREFIX: str = "connection_"
    SYSTEM_CONNECTION: str = "systemConnection"

    NO_VALUE: str = "N/A"
    """Displayed for operational settings the server did not report"""

    NEW_DATABASE_LABEL: str = "new database"


TRACKING_CONSTANTS = TrackingConstants()
