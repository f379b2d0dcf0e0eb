"""
Database driver layer

Dialects know how to reach one kind of server (SQL Server through ODBC,
or a local DuckDB file) and how to run statements and transactions on it.
DatabaseConnection wraps one open driver connection under a stable name.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple

import duckdb

from dblog_tracker.config import Config
from dblog_tracker.errors import DriverError
from dblog_tracker.log.logger import get_logger
from dblog_tracker.models.connection import ConnectionProperties

logger = get_logger(__name__)


def _odbc_value(value: str) -> str:
    """Brace-quote an ODBC attribute value that would break the key=value list."""
    if any(ch in value for ch in ";{}"):
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_string(props: ConnectionProperties, driver: str = "SQL Server") -> str:
    """Flat key/value ODBC descriptor, rebuilt from the properties on every connect."""
    return (
        f"DRIVER={{{driver}}};"
        f"Server={_odbc_value(props.server)};"
        f"Database={_odbc_value(props.database_name)};"
        f"Uid={_odbc_value(props.user)};"
        f"Port={_odbc_value(props.port)};"
        f"Pwd={_odbc_value(props.password)};"
    )


class Dialect:
    """Driver-specific behaviour shared by every connection of one kind."""

    name = ""
    identifier_quotes = ('"', '"')

    def connect(self, props: Optional[ConnectionProperties]):
        raise NotImplementedError

    def describe(self, props: Optional[ConnectionProperties]) -> str:
        """Connection target for log messages; never includes the password."""
        raise NotImplementedError

    def execute(self, raw, sql: str, params: Sequence[Any]):
        raise NotImplementedError

    def begin(self, raw) -> None:
        raise NotImplementedError

    def commit(self, raw) -> None:
        raw.commit()

    def rollback(self, raw) -> None:
        raw.rollback()


class MSSQLDialect(Dialect):
    """SQL Server reached through pyodbc."""

    name = "mssql"
    identifier_quotes = ("[", "]")

    def __init__(self, odbc_driver: str = "SQL Server"):
        self.odbc_driver = odbc_driver

    def connect(self, props: Optional[ConnectionProperties]):
        import pyodbc

        if props is None:
            raise DriverError("SQL Server connections need connection properties")
        return pyodbc.connect(build_connection_string(props, self.odbc_driver), autocommit=True)

    def describe(self, props: Optional[ConnectionProperties]) -> str:
        if props is None:
            return "<no properties>"
        return f"{props.server}:{props.port}/{props.database_name} (user: {props.user})"

    def execute(self, raw, sql: str, params: Sequence[Any]):
        cursor = raw.cursor()
        if params:
            cursor.execute(sql, list(params))
        else:
            cursor.execute(sql)
        return cursor

    def begin(self, raw) -> None:
        # Statements run in autocommit mode outside an explicit transaction
        raw.autocommit = False

    def commit(self, raw) -> None:
        # On failure autocommit stays off until rollback; switching it on would commit
        raw.commit()
        raw.autocommit = True

    def rollback(self, raw) -> None:
        try:
            raw.rollback()
        finally:
            raw.autocommit = True


class DuckDBDialect(Dialect):
    """Catalog kept in a local DuckDB file."""

    name = "duckdb"
    identifier_quotes = ('"', '"')

    def __init__(self, path: str):
        self.path = path

    def connect(self, props: Optional[ConnectionProperties]):
        if self.path != ":memory:":
            # Ensure parent directory exists for DuckDB file
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(self.path)

    def describe(self, props: Optional[ConnectionProperties]) -> str:
        return f"duckdb:{self.path}"

    def execute(self, raw, sql: str, params: Sequence[Any]):
        # DuckDB cursors are separate connections with their own transactions,
        # so statements run on the connection itself
        if params:
            return raw.execute(sql, list(params))
        return raw.execute(sql)

    def begin(self, raw) -> None:
        raw.begin()


def catalog_dialect(config: Config) -> Dialect:
    if config.uses_duckdb_catalog:
        return DuckDBDialect(config.catalog_duckdb_path)
    return MSSQLDialect(config.odbc_driver)


def catalog_properties(config: Config) -> ConnectionProperties:
    return ConnectionProperties(
        server=config.catalog_server,
        port=str(config.catalog_port),
        database_name=config.catalog_database,
        user=config.catalog_user,
        password=config.catalog_password,
    )


class DatabaseConnection:
    """One named driver connection.

    Args:
        name: connection name used in log messages
        dialect: how to reach and talk to the server
    """

    def __init__(self, name: str, dialect: Dialect):
        self.name = name
        self.dialect = dialect
        self.raw = None
        self.in_transaction = False

    @property
    def is_open(self) -> bool:
        return self.raw is not None

    def connect(self, props: Optional[ConnectionProperties] = None) -> Tuple[bool, Optional[DriverError]]:
        """Close any open connection, then open a new one from ``props``.

        Returns:
            (established, error): error carries the driver's message on failure
        """
        self.disconnect()
        target = self.dialect.describe(props)
        logger.info(f"[{self.name}] Connecting to {target}")
        try:
            self.raw = self.dialect.connect(props)
        except Exception as e:
            error = e if isinstance(e, DriverError) else DriverError.from_exception(e)
            logger.error(f"[{self.name}] Connection to {target} failed: {error.driver_message}")
            self.raw = None
            return False, error

        logger.info(f"[{self.name}] Connected to {target}")
        return True, None

    def disconnect(self) -> None:
        if self.raw is not None:
            try:
                self.raw.close()
            except Exception as e:
                logger.warning(f"[{self.name}] Error while closing connection: {e}")
            self.raw = None
        self.in_transaction = False

    def execute(self, sql: str, params: Sequence[Any] = ()):
        """Run one statement and return the driver cursor.

        Raises:
            DriverError: connection closed or the driver rejected the statement
        """
        if self.raw is None:
            raise DriverError(f"Connection '{self.name}' is not open")
        try:
            return self.dialect.execute(self.raw, sql, params)
        except Exception as e:
            raise DriverError.from_exception(e) from e

    def begin(self) -> None:
        if self.raw is None:
            raise DriverError(f"Connection '{self.name}' is not open")
        try:
            self.dialect.begin(self.raw)
        except Exception as e:
            raise DriverError.from_exception(e) from e
        self.in_transaction = True

    def commit(self) -> None:
        """Commit; a failed commit is rolled back before the error is raised."""
        try:
            self.dialect.commit(self.raw)
        except Exception as e:
            error = DriverError.from_exception(e)
            logger.error(f"[{self.name}] Commit failed, rolling back: {error.driver_message}")
            try:
                self.dialect.rollback(self.raw)
            except Exception as rollback_error:
                logger.error(f"[{self.name}] Rollback after failed commit failed: {rollback_error}")
            raise error from e
        finally:
            self.in_transaction = False

    def rollback(self) -> None:
        try:
            self.dialect.rollback(self.raw)
        except Exception as e:
            logger.error(f"[{self.name}] Rollback failed: {e}")
            raise DriverError.from_exception(e) from e
        finally:
            self.in_transaction = False

    @contextmanager
    def transaction(self):
        """Begin; commit on clean exit, roll back if an exception escapes."""
        self.begin()
        try:
            yield self
        except Exception:
            logger.warning(f"[{self.name}] Rolling back transaction")
            self.rollback()
            raise
        else:
            self.commit()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"DatabaseConnection(name={self.name!r}, dialect={self.dialect.name!r}, {state})"
