"""
Tracked database

One external SQL Server database whose transaction log is mirrored into the
catalog. The entry owns its connection and connection properties; every
catalog-facing step of the tracking lifecycle lives here.

Operations return plain booleans/values. When one fails, the reason is kept
in ``last_error`` for the caller to report.
"""
from typing import Dict, Optional, Tuple
from uuid import UUID, uuid4

from dblog_tracker.config.constants import TRACKING_CONSTANTS
from dblog_tracker.database.driver import DatabaseConnection, Dialect, MSSQLDialect
from dblog_tracker.errors import DriverError, LogicError, TrackerError
from dblog_tracker.log.logger import get_logger
from dblog_tracker.models.connection import ConnectionProperties
from dblog_tracker.models.log_batch import LogBatch, LogRecord
from dblog_tracker.models.results import OperationalSetting
from dblog_tracker.query.template import QueryTemplate, TemplateLoader

logger = get_logger(__name__)


class TrackedDatabase:
    """An external database tracked (or about to be tracked) by the catalog.

    Args:
        identity: stable id; a new one is generated when omitted
        database_id: numeric id on the external server, or NEW_DATABASE_ID
        properties: connection properties, owned by this entry
        dialect: how to reach the external server
        template_directory: template root override
    """

    def __init__(self, identity: Optional[UUID] = None,
                 database_id: int = TRACKING_CONSTANTS.NEW_DATABASE_ID,
                 properties: Optional[ConnectionProperties] = None,
                 dialect: Optional[Dialect] = None,
                 template_directory: Optional[str] = None):
        self._identity = identity or uuid4()
        self.database_id = database_id
        self.properties = properties or ConnectionProperties()
        self.connection = DatabaseConnection(self.connection_name, dialect or MSSQLDialect())
        self.templates = TemplateLoader(self.connection.dialect.name, template_directory)
        self.template_directory = template_directory
        self._catalog_loaders: Dict[str, TemplateLoader] = {}
        self.log_batch = LogBatch()
        self.last_error: Optional[TrackerError] = None

    @property
    def identity(self) -> UUID:
        return self._identity

    @property
    def connection_name(self) -> str:
        return f"{TRACKING_CONSTANTS.CONNECTION_PREFIX}{self._identity}"

    @property
    def database_name(self) -> str:
        return self.properties.database_name

    @property
    def log_table_name(self) -> str:
        return f"{TRACKING_CONSTANTS.LOG_TABLE_PREFIX}{self._identity}"

    @property
    def foreign_key_name(self) -> str:
        return TRACKING_CONSTANTS.FOREIGN_KEY_TEMPLATE.format(table_name=self.log_table_name)

    @property
    def is_new(self) -> bool:
        return self.database_id == TRACKING_CONSTANTS.NEW_DATABASE_ID

    @property
    def is_connected(self) -> bool:
        return self.connection.is_open

    def reset_database_id(self) -> None:
        """Make the entry behave as new again."""
        self.database_id = TRACKING_CONSTANTS.NEW_DATABASE_ID

    def _fail(self, error: TrackerError, action: str) -> bool:
        self.last_error = error
        logger.error(f"[{self.database_name or self.connection_name}] {action} failed: {error}")
        return False

    def _external_query(self, resource_id: str) -> QueryTemplate:
        return QueryTemplate.from_resource(self.connection, self.templates, resource_id)

    def _catalog_query(self, catalog: DatabaseConnection, resource_id: str) -> QueryTemplate:
        loader = self._catalog_loaders.get(catalog.dialect.name)
        if loader is None:
            loader = TemplateLoader(catalog.dialect.name, self.template_directory)
            self._catalog_loaders[catalog.dialect.name] = loader
        return QueryTemplate.from_resource(catalog, loader, resource_id)

    def _bind_properties(self, query: QueryTemplate) -> QueryTemplate:
        return (query
                .bind("serverName", self.properties.server)
                .bind("port", self.properties.port)
                .bind("dbName", self.properties.database_name)
                .bind("userName", self.properties.user))

    # -- connection -----------------------------------------------------

    def connect(self, props: Optional[ConnectionProperties] = None) -> Tuple[bool, Optional[DriverError]]:
        """(Re)connect to the external server.

        Args:
            props: properties to connect with; defaults to the entry's own

        Returns:
            (established, error)
        """
        established, error = self.connection.connect(props or self.properties)
        if error is not None:
            self.last_error = error
        return established, error

    def close(self) -> None:
        self.connection.disconnect()

    # -- identity on the external server --------------------------------

    def verify_identity_matches_name(self) -> bool:
        """Check that the external server still knows our numeric id under our name."""
        try:
            result = (self._external_query("derive_name_from_database_id")
                      .bind("databaseID", self.database_id)
                      .execute_select())
        except TrackerError as e:
            return self._fail(e, "Identity check")

        name = result.scalar()
        if name is None:
            return self._fail(
                LogicError(f"Database id {self.database_id} is unknown to the server"), "Identity check")
        if str(name) != self.database_name:
            return self._fail(
                LogicError(
                    f"Database id {self.database_id} belongs to '{name}', not '{self.database_name}'"),
                "Identity check")
        return True

    def resolve_database_id(self) -> bool:
        """Look up the numeric id of our database name on the external server."""
        try:
            result = (self._external_query("derive_id_from_database_name")
                      .bind("dbName", self.database_name)
                      .execute_select())
        except TrackerError as e:
            return self._fail(e, "Database id lookup")

        database_id = result.scalar()
        if database_id is None:
            return self._fail(
                LogicError(f"Database '{self.database_name}' is unknown to the server"),
                "Database id lookup")

        self.database_id = int(database_id)
        logger.info(f"[{self.database_name}] Resolved database id {self.database_id}")
        return True

    # -- catalog records ------------------------------------------------

    def is_already_tracked(self, catalog: DatabaseConnection) -> bool:
        """True if the catalog already holds a record for (numeric id, name).

        A failed lookup counts as not tracked; ``last_error`` tells them apart.
        """
        try:
            result = (self._catalog_query(catalog, "check_if_db_is_already_tracked")
                      .bind("databaseID", self.database_id)
                      .bind("dbName", self.database_name)
                      .execute_select())
        except TrackerError as e:
            return self._fail(e, "Duplicate check")
        return bool(result.scalar())

    def register_tracking(self, catalog: DatabaseConnection) -> bool:
        try:
            (self._bind_properties(self._catalog_query(catalog, "track_new_database"))
             .bind("id", str(self.identity))
             .bind("databaseID", self.database_id)
             .execute_modify())
        except TrackerError as e:
            return self._fail(e, "Adding tracking record")
        logger.info(f"[{self.database_name}] Tracking record {self.identity} added")
        return True

    def unregister_tracking(self, catalog: DatabaseConnection) -> bool:
        try:
            (self._catalog_query(catalog, "stop_tracking_database")
             .bind("id", str(self.identity))
             .execute_modify())
        except TrackerError as e:
            return self._fail(e, "Removing tracking record")
        logger.info(f"[{self.database_name}] Tracking record {self.identity} removed")
        return True

    def create_log_table(self, catalog: DatabaseConnection) -> bool:
        try:
            (self._catalog_query(catalog, "create_log_table")
             .substitute_identifier("tableName", self.log_table_name)
             .substitute_identifier("foreignKeyName", self.foreign_key_name)
             .execute_modify())
        except TrackerError as e:
            return self._fail(e, "Creating log table")
        logger.info(f"[{self.database_name}] Log table {self.log_table_name} created")
        return True

    def drop_log_table(self, catalog: DatabaseConnection) -> bool:
        """Drop the log table; must run before ``unregister_tracking`` (foreign key)."""
        try:
            (self._catalog_query(catalog, "drop_log_table")
             .substitute_identifier("tableName", self.log_table_name)
             .execute_modify())
        except TrackerError as e:
            return self._fail(e, "Dropping log table")
        logger.info(f"[{self.database_name}] Log table {self.log_table_name} dropped")
        return True

    def save_configuration(self, catalog: DatabaseConnection) -> bool:
        """Write the current connection properties to the tracking record.

        Refused when the external server no longer maps our numeric id to our
        name, so a renamed or re-created database is never saved under a
        stale pairing.
        """
        if not self.verify_identity_matches_name():
            return False
        try:
            query = self._bind_properties(self._catalog_query(catalog, "update_connection_settings"))
            query.bind("id", str(self.identity)).execute_modify()
        except TrackerError as e:
            return self._fail(e, "Saving configuration")
        logger.info(f"[{self.database_name}] Configuration saved")
        return True

    # -- change log -----------------------------------------------------

    def retrieve_last_lsn(self) -> Optional[str]:
        """Log position to extract from, or None if the server recorded none yet."""
        try:
            result = (self._external_query("retrieve_last_lsn")
                      .substitute_identifier("dbName", self.database_name)
                      .bind("dbName", self.database_name)
                      .execute_select())
        except TrackerError as e:
            self._fail(e, "Reading last LSN")
            return None

        lsn = result.scalar()
        return str(lsn) if lsn else None

    def fetch_changes_since(self, from_lsn: Optional[str]) -> bool:
        """Load the transaction log from ``from_lsn`` onward into ``log_batch``.

        Returns:
            False when the query failed or returned no rows
        """
        try:
            result = (self._external_query("retrieve_changes_since_lsn")
                      .substitute_identifier("dbName", self.database_name)
                      .bind("fromLSN", from_lsn)
                      .execute_select())
        except TrackerError as e:
            return self._fail(e, "Reading transaction log")

        if result.is_empty:
            logger.info(f"[{self.database_name}] No log records since {from_lsn or 'start of log'}")
            return False

        batch = LogBatch(LogRecord.from_row(row) for row in result)
        self.log_batch = batch
        logger.info(
            f"[{self.database_name}] Loaded {batch.record_count} log records "
            f"in {len(batch)} transactions"
        )
        return True

    def sync_log_batch_to_catalog(self, catalog: DatabaseConnection) -> bool:
        """Write one summary row per transaction of ``log_batch`` into the log table.

        Stops at the first failing transaction; run it inside a catalog
        transaction so that a batch is stored completely or not at all.
        Transactions already present in the log table are skipped.
        """
        written = 0
        for summary in self.log_batch.summaries():
            try:
                (self._catalog_query(catalog, "update_log_table_with_batch")
                 .substitute_identifier("tableName", self.log_table_name)
                 .bind("id", str(self.identity))
                 .bind("databaseID", self.database_id)
                 .bind("transID", summary.transaction_id)
                 .bind("beginTime", summary.begin_time)
                 .bind("endTime", summary.end_time)
                 .bind("userName", summary.user)
                 .bind("objectName", summary.object_name)
                 .bind("operation", summary.operation)
                 .bind("beginLSN", summary.begin_lsn)
                 .bind("endLSN", summary.end_lsn)
                 .execute_modify())
            except TrackerError as e:
                return self._fail(e, f"Writing transaction {summary.transaction_id}")
            written += 1

        logger.info(f"[{self.database_name}] Wrote {written} transactions to {self.log_table_name}")
        return True

    # -- server status --------------------------------------------------

    def fetch_operational_settings(self) -> Optional[Dict[OperationalSetting, str]]:
        """Backup timestamps, recovery model and state of the external database.

        Returns:
            one value per OperationalSetting (N/A when not reported), or None on failure
        """
        try:
            result = (self._external_query("retrieve_operational_settings")
                      .bind("dbName", self.database_name)
                      .execute_select())
        except TrackerError as e:
            self._fail(e, "Reading operational settings")
            return None

        row = result.first()
        if row is None:
            self._fail(LogicError(f"Database '{self.database_name}' is unknown to the server"),
                       "Reading operational settings")
            return None

        return {
            setting: str(row.get(setting.value, TRACKING_CONSTANTS.NO_VALUE))
            for setting in OperationalSetting
        }

    def __repr__(self) -> str:
        return (f"TrackedDatabase(identity={self.identity}, database_id={self.database_id}, "
                f"name={self.database_name!r})")
