"""
DB Log Tracker Package

Mirrors SQL Server transaction log activity of tracked databases into a
catalog database. New code should import from subpackages directly.
"""

# Keep widely-used modules at root
from dblog_tracker.config import Config, load_config, TRACKING_CONSTANTS
from dblog_tracker.log import setup_logger, get_logger
from dblog_tracker.errors import (
    TrackerError,
    LoadError,
    PrepareError,
    DriverError,
    LogicError
)

from dblog_tracker.models import (
    ConnectionProperties,
    PropertyField,
    LogRecord,
    LogBatch,
    TransactionSummary,
    OperationResult,
    ResultStatus,
    OperationalSetting,
    Position,
    EntrySnapshot
)

from dblog_tracker.database.driver import DatabaseConnection, MSSQLDialect, DuckDBDialect
from dblog_tracker.query.template import QueryTemplate, ResultSet, TemplateLoader
from dblog_tracker.database.tracked_database import TrackedDatabase
from dblog_tracker.repository.log_table_repo import LogTableRepository
from dblog_tracker.session.session import Session

__all__ = [
    # Config & Logger
    'Config', 'load_config', 'TRACKING_CONSTANTS', 'setup_logger', 'get_logger',

    # Errors
    'TrackerError', 'LoadError', 'PrepareError', 'DriverError', 'LogicError',

    # Models
    'ConnectionProperties', 'PropertyField', 'LogRecord', 'LogBatch', 'TransactionSummary',
    'OperationResult', 'ResultStatus', 'OperationalSetting', 'Position', 'EntrySnapshot',

    # Database & Query
    'DatabaseConnection', 'MSSQLDialect', 'DuckDBDialect',
    'QueryTemplate', 'ResultSet', 'TemplateLoader', 'TrackedDatabase',

    # Repository & Session
    'LogTableRepository', 'Session'
]
