"""
Error taxonomy for DB log tracking.

The query engine raises these; the tracked-database layer records them as
``last_error`` next to a boolean result, and the session hands them to the
caller inside an ``OperationResult``.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for every error raised by dblog_tracker."""


class LoadError(TrackerError):
    """A query template resource is missing, unreadable or empty."""

    def __init__(self, resource_id: str, reason: str):
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"Cannot load query template '{resource_id}': {reason}")


class PrepareError(TrackerError):
    """A statement could not be prepared (bad placeholder, missing binding)."""


class DriverError(TrackerError):
    """Execution failed inside the database driver.

    Attributes:
        driver_message: message reported by the driver, unchanged
        sqlstate: SQLSTATE code when the driver reports one
    """

    def __init__(self, driver_message: str, sqlstate: Optional[str] = None):
        self.driver_message = driver_message
        self.sqlstate = sqlstate
        super().__init__(driver_message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> 'DriverError':
        # pyodbc packs (sqlstate, message) into args
        args = getattr(exc, "args", ())
        if len(args) >= 2 and isinstance(args[0], str) and isinstance(args[1], str):
            return cls(args[1], sqlstate=args[0])
        return cls(str(exc))


class LogicError(TrackerError):
    """A workflow precondition does not hold.

    Raised for duplicate registration, identity/name mismatch, navigation
    past a boundary and operations on a missing or unsuitable entry.
    """
