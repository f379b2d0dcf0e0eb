"""
Session - catalog connection plus the ordered list of tracked databases.

Every mutation of the catalog goes through this class. Operations return an
OperationResult instead of showing anything to the user; presentation code
decides how to report them.
"""

import logging
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple
from uuid import UUID

import pandas as pd

from dblog_tracker.config import Config
from dblog_tracker.config.constants import TRACKING_CONSTANTS
from dblog_tracker.database.driver import (
    DatabaseConnection,
    Dialect,
    MSSQLDialect,
    catalog_dialect,
    catalog_properties,
)
from dblog_tracker.database.tracked_database import TrackedDatabase
from dblog_tracker.errors import DriverError, LogicError, TrackerError
from dblog_tracker.log.logger import get_logger, setup_logger
from dblog_tracker.models.connection import ConnectionProperties, PropertyField
from dblog_tracker.models.log_batch import LogRecord
from dblog_tracker.models.results import (
    EntrySnapshot,
    OperationalSetting,
    OperationResult,
    Position,
)
from dblog_tracker.query.template import QueryTemplate, TemplateLoader
from dblog_tracker.repository.log_table_repo import LOG_TABLE_COLUMNS, LogTableRepository

logger = get_logger(__name__)


def _step_error(entry: TrackedDatabase, fallback: str) -> TrackerError:
    return entry.last_error or DriverError(fallback)


class Session:
    """
    Tracking session over one catalog database.

    Args:
        catalog: catalog connection (opened by ``Session.open`` or the caller)
        config: application settings
        entry_dialect: dialect used to reach tracked databases
    """

    def __init__(self, catalog: DatabaseConnection, config: Optional[Config] = None,
                 entry_dialect: Optional[Dialect] = None):
        self.config = config or Config()
        self.catalog = catalog
        self.entry_dialect = entry_dialect or MSSQLDialect(self.config.odbc_driver)
        self.template_directory = self.config.sql_template_directory or None
        self.templates = TemplateLoader(catalog.dialect.name, self.template_directory)
        self.log_tables = LogTableRepository(catalog, self.template_directory)
        self._entries: List[TrackedDatabase] = []
        self._current: Optional[UUID] = None

    @classmethod
    def open(cls, config: Config) -> 'Session':
        """Start a session: configure logging, connect the catalog, load entries.

        A session whose catalog could not be opened is still returned; check
        ``is_catalog_open`` before using it.
        """
        setup_logger("dblog_tracker", config.log_file or None,
                     getattr(logging, config.log_level, logging.INFO))

        catalog = DatabaseConnection(TRACKING_CONSTANTS.SYSTEM_CONNECTION, catalog_dialect(config))
        session = cls(catalog, config)

        established, error = catalog.connect(catalog_properties(config))
        if not established:
            logger.critical(f"Could not connect to the catalog database: {error}")
            return session

        if config.catalog_create_schema:
            session.ensure_catalog_schema()

        if not session.load_catalog():
            logger.info("No tracked databases loaded")
        return session

    # -- helpers --------------------------------------------------------

    @staticmethod
    def _failure(error: TrackerError, message: str = "") -> OperationResult:
        logger.error(f"{message or 'Operation failed'}: {error}")
        return OperationResult.failed(error, message)

    def _catalog_problem(self) -> Optional[OperationResult]:
        if not self.catalog.is_open:
            return self._failure(LogicError("The catalog database is not connected"))
        return None

    def _index_of_current(self) -> int:
        for index, entry in enumerate(self._entries):
            if entry.identity == self._current:
                return index
        return -1

    def _tracked_current(self, action: str) -> Tuple[Optional[TrackedDatabase], Optional[OperationResult]]:
        """Current entry if it is registered and connected, else a failure result."""
        problem = self._catalog_problem()
        if problem is not None:
            return None, problem
        entry = self.current
        if entry is None:
            return None, self._failure(LogicError("No database is selected"), action)
        if entry.is_new:
            return None, self._failure(LogicError("The database is not tracked yet"), action)
        if not entry.is_connected:
            return None, self._failure(LogicError("The database is not connected"), action)
        entry.last_error = None
        return entry, None

    # -- collection -----------------------------------------------------

    @property
    def is_catalog_open(self) -> bool:
        return self.catalog.is_open

    @property
    def current(self) -> Optional[TrackedDatabase]:
        return self.entry(self._current) if self._current is not None else None

    @property
    def current_identity(self) -> Optional[UUID]:
        return self._current

    @property
    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, identity: UUID) -> Optional[TrackedDatabase]:
        for entry in self._entries:
            if entry.identity == identity:
                return entry
        return None

    def identities(self) -> List[UUID]:
        return [entry.identity for entry in self._entries]

    def is_current_new(self) -> bool:
        entry = self.current
        return entry is not None and entry.is_new

    def add_new(self) -> UUID:
        """Append an unregistered entry and make it current.

        Only one unregistered entry exists at a time and it is always last;
        while one is pending it is selected and returned instead.
        """
        if self._entries and self._entries[-1].is_new:
            pending = self._entries[-1]
            logger.warning(f"Unregistered database {pending.identity} is still pending")
            self._current = pending.identity
            return pending.identity

        entry = TrackedDatabase(
            properties=ConnectionProperties(port=self.config.default_port),
            dialect=self.entry_dialect,
            template_directory=self.template_directory,
        )
        self._entries.append(entry)
        self._current = entry.identity
        logger.info(f"Added new database {entry.identity}")
        return entry.identity

    def remove(self) -> OperationResult:
        """Remove the current entry.

        A tracked entry loses its log table and its tracking record in one
        catalog transaction; the log table goes first (foreign key).
        """
        entry = self.current
        if entry is None:
            return self._failure(LogicError("There is no database to remove"))

        if not entry.is_new:
            problem = self._catalog_problem()
            if problem is not None:
                return problem
            entry.last_error = None
            try:
                with self.catalog.transaction():
                    if not entry.drop_log_table(self.catalog):
                        raise _step_error(entry, "Dropping the log table failed")
                    if not entry.unregister_tracking(self.catalog):
                        raise _step_error(entry, "Removing the tracking record failed")
            except TrackerError as e:
                return self._failure(e, "The selected database could not be removed")

        self._entries.remove(entry)
        entry.close()
        self._current = self._entries[0].identity if self._entries else None
        logger.info(f"Removed database {entry.identity}")
        return OperationResult.ok(f"Database {entry.database_name or entry.identity} removed")

    def navigate(self, position: Position) -> OperationResult:
        """Move the current selection; moving past either end changes nothing."""
        if not self._entries:
            return OperationResult.failed(LogicError("There are no tracked databases"))

        index = self._index_of_current()
        last = len(self._entries) - 1

        if position == Position.FIRST:
            target = 0
        elif position == Position.LAST:
            target = last
        elif position == Position.PREVIOUS:
            if index <= 0:
                return OperationResult.failed(LogicError("Already at the first database"))
            target = index - 1
        elif position == Position.NEXT:
            if index < 0 or index >= last:
                return OperationResult.failed(LogicError("Already at the last database"))
            target = index + 1
        else:
            return OperationResult.failed(LogicError(f"Unknown position: {position}"))

        self._current = self._entries[target].identity
        return OperationResult.ok()

    def select(self, identity: UUID) -> OperationResult:
        if self.entry(identity) is None:
            return OperationResult.failed(LogicError(f"Unknown database {identity}"))
        self._current = identity
        return OperationResult.ok()

    def set_property(self, field: PropertyField, value: str) -> OperationResult:
        """Edit one connection property of the current entry (in memory only)."""
        entry = self.current
        if entry is None:
            return OperationResult.failed(LogicError("No database is selected"))
        entry.properties.set_value(field, value)
        return OperationResult.ok()

    # -- workflows ------------------------------------------------------

    def connect_current(self) -> OperationResult:
        entry = self.current
        if entry is None or not entry.database_name:
            return self._failure(LogicError("No database selected or database name is empty"),
                                 "Could not connect to the database")

        entry.last_error = None
        established, error = entry.connect()
        if not established:
            return self._failure(error or _step_error(entry, "Connection failed"),
                                 "Could not connect to the database")
        return OperationResult.ok(f"Connected to {entry.database_name}")

    def register(self) -> OperationResult:
        """Start tracking the current (unregistered, connected) entry.

        Resolves the numeric id, rejects duplicates, then adds the tracking
        record and creates the log table in one catalog transaction. On any
        failure the entry is unregistered again.
        """
        problem = self._catalog_problem()
        if problem is not None:
            return problem

        entry = self.current
        if entry is None:
            return self._failure(LogicError("No database is selected"), "Registration failed")
        if not entry.is_new:
            return self._failure(LogicError("The database is already registered"), "Registration failed")
        if not entry.is_connected:
            return self._failure(LogicError("The database is not connected"), "Registration failed")

        entry.last_error = None
        if not entry.resolve_database_id():
            entry.reset_database_id()
            return self._failure(_step_error(entry, "Database id lookup failed"), "Registration failed")

        already_tracked = entry.is_already_tracked(self.catalog)
        if entry.last_error is not None:
            entry.reset_database_id()
            return self._failure(entry.last_error, "Registration failed")
        if already_tracked:
            entry.reset_database_id()
            logger.info(f"Database {entry.database_name} is already tracked")
            return OperationResult.already_tracked(f"Database {entry.database_name} is already tracked")

        try:
            with self.catalog.transaction():
                if not entry.register_tracking(self.catalog):
                    raise _step_error(entry, "Adding the tracking record failed")
                if not entry.create_log_table(self.catalog):
                    raise _step_error(entry, "Creating the log table failed")
        except TrackerError as e:
            entry.reset_database_id()
            return self._failure(e, "Configuration could not be saved")

        logger.info(f"Change tracking set up for {entry.database_name} (id {entry.database_id})")
        return OperationResult.ok(f"Change tracking set up for {entry.database_name}")

    def save_configuration(self) -> OperationResult:
        entry, problem = self._tracked_current("Configuration could not be saved")
        if problem is not None:
            return problem
        if not entry.save_configuration(self.catalog):
            return self._failure(_step_error(entry, "Saving failed"), "Configuration could not be saved")
        return OperationResult.ok("Configuration saved")

    def sync(self) -> OperationResult:
        """Pull new log records of the current entry into its log table."""
        entry, problem = self._tracked_current("Log records could not be refreshed")
        if problem is not None:
            return problem

        last_lsn = entry.retrieve_last_lsn()
        if entry.last_error is not None:
            return self._failure(entry.last_error, "Log records could not be refreshed")

        if not entry.fetch_changes_since(last_lsn):
            if entry.last_error is not None:
                return self._failure(entry.last_error, "Log records could not be refreshed")
            return OperationResult.failed(
                LogicError(f"No log records since {last_lsn or 'start of log'}"),
                "No new log records")

        try:
            with self.catalog.transaction():
                if not entry.sync_log_batch_to_catalog(self.catalog):
                    raise _step_error(entry, "Writing the log batch failed")
        except TrackerError as e:
            return self._failure(e, "Log records could not be refreshed")

        return OperationResult.ok(
            f"{len(entry.log_batch)} transactions of {entry.database_name} refreshed")

    def operational_settings(self) -> Optional[Mapping[OperationalSetting, str]]:
        """Server status of the current entry, or None if it cannot be read."""
        entry = self.current
        if entry is None or not entry.is_connected:
            return None
        settings = entry.fetch_operational_settings()
        return MappingProxyType(settings) if settings is not None else None

    def ensure_catalog_schema(self) -> OperationResult:
        """Create the tracking table if the catalog does not have it yet."""
        problem = self._catalog_problem()
        if problem is not None:
            return problem
        try:
            QueryTemplate.from_resource(self.catalog, self.templates, "create_tracking_table").execute_modify()
        except TrackerError as e:
            return self._failure(e, "Tracking table could not be created")
        return OperationResult.ok()

    def load_catalog(self) -> bool:
        """Rebuild the entry list from the catalog, in catalog order.

        Returns:
            False if the catalog cannot be read or lists no databases
        """
        if self._catalog_problem() is not None:
            return False

        try:
            result = QueryTemplate.from_resource(
                self.catalog, self.templates, "list_tracked_databases").execute_select()
        except TrackerError as e:
            logger.warning(f"Could not load tracked databases: {e}")
            return False

        for entry in self._entries:
            entry.close()
        self._entries = []
        self._current = None

        for row in result:
            try:
                identity = UUID(str(row["ID"]))
                database_id = int(row["DatabaseID"])
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unusable catalog row {row}: {e}")
                continue

            properties = ConnectionProperties(
                server=str(row.get("ServerName", "")),
                port=str(row.get("Port", self.config.default_port)),
                database_name=str(row.get("DatabaseName", "")),
                user=str(row.get("UserName", "")),
            )
            self._entries.append(TrackedDatabase(
                identity, database_id, properties,
                dialect=self.entry_dialect,
                template_directory=self.template_directory,
            ))

        if not self._entries:
            return False

        self._current = self._entries[0].identity
        logger.info(f"Loaded {len(self._entries)} tracked databases")
        return True

    # -- read-only views ------------------------------------------------

    def snapshot(self, identity: UUID) -> Optional[EntrySnapshot]:
        entry = self.entry(identity)
        if entry is None:
            return None
        props = entry.properties
        return EntrySnapshot(
            identity=entry.identity,
            database_id=None if entry.is_new else entry.database_id,
            label=(TRACKING_CONSTANTS.NEW_DATABASE_LABEL if entry.is_new
                   else f"databaseID: {entry.database_id}"),
            server=props.server,
            port=props.port,
            database_name=props.database_name,
            user=props.user,
            connected=entry.is_connected,
            log_table_name=entry.log_table_name,
        )

    def current_snapshot(self) -> Optional[EntrySnapshot]:
        return self.snapshot(self._current) if self._current is not None else None

    def log_batch(self) -> Mapping[str, Tuple[LogRecord, ...]]:
        """Last fetched log batch of the current entry."""
        entry = self.current
        if entry is None:
            return MappingProxyType({})
        return entry.log_batch.as_mapping()

    def log_table(self) -> pd.DataFrame:
        """Contents of the current entry's log table."""
        entry = self.current
        if entry is None or entry.is_new or not self.catalog.is_open:
            return pd.DataFrame(columns=LOG_TABLE_COLUMNS)
        try:
            return self.log_tables.fetch(entry.log_table_name)
        except TrackerError:
            return pd.DataFrame(columns=LOG_TABLE_COLUMNS)

    # -- lifetime -------------------------------------------------------

    def close(self) -> None:
        for entry in self._entries:
            entry.close()
        self.catalog.disconnect()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
