"""Models module for DB log tracking."""

from dblog_tracker.models.connection import ConnectionProperties, PropertyField
from dblog_tracker.models.log_batch import LogBatch, LogRecord, TransactionSummary, parse_log_time
from dblog_tracker.models.results import (
    EntrySnapshot,
    OperationalSetting,
    OperationResult,
    Position,
    ResultStatus,
)

__all__ = [
    'ConnectionProperties', 'PropertyField',
    'LogBatch', 'LogRecord', 'TransactionSummary', 'parse_log_time',
    'EntrySnapshot', 'OperationalSetting', 'OperationResult', 'Position', 'ResultStatus',
]
