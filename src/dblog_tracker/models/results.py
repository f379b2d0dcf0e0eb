"""
Result and snapshot models handed to callers outside the core.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from dblog_tracker.errors import TrackerError


class ResultStatus(Enum):
    """Outcome of a session operation"""
    OK = "ok"
    FAILED = "failed"
    ALREADY_TRACKED = "already_tracked"


class OperationalSetting(Enum):
    """Server-reported status of a tracked database, in query column order"""
    LAST_FULL_BACKUP = "LastFullBackup"
    LAST_DIFF_BACKUP = "LastDiffBackup"
    LAST_LOG_BACKUP = "LastLogBackup"
    RECOVERY_MODEL = "RecoveryModel"
    STATE = "State"


class Position(Enum):
    """Navigation targets within the ordered collection of entries"""
    FIRST = "first"
    PREVIOUS = "previous"
    NEXT = "next"
    LAST = "last"


@dataclass(frozen=True)
class OperationResult:
    """
    Aggregate outcome of one session operation.

    Attributes:
        status: OK, FAILED or ALREADY_TRACKED (a recovered condition)
        error: the error that caused a failure, if any
        message: short human-readable summary
    """
    status: ResultStatus
    error: Optional[TrackerError] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status == ResultStatus.OK

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: str = "") -> 'OperationResult':
        return cls(ResultStatus.OK, message=message)

    @classmethod
    def failed(cls, error: TrackerError, message: str = "") -> 'OperationResult':
        return cls(ResultStatus.FAILED, error=error, message=message or str(error))

    @classmethod
    def already_tracked(cls, message: str) -> 'OperationResult':
        return cls(ResultStatus.ALREADY_TRACKED, message=message)


@dataclass(frozen=True)
class EntrySnapshot:
    """Read-only view of one tracked database"""
    identity: UUID
    database_id: Optional[int]
    label: str
    server: str
    port: str
    database_name: str
    user: str
    connected: bool
    log_table_name: str

    @property
    def is_new(self) -> bool:
        return self.database_id is None
