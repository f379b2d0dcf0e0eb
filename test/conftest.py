import pytest
from unittest.mock import MagicMock

from dblog_tracker.config import Config
from dblog_tracker.database.driver import DatabaseConnection, Dialect, DuckDBDialect
from dblog_tracker.query.template import QueryTemplate, TemplateLoader


class FakeCursor:
    def __init__(self, columns=None, rows=(), rowcount=-1):
        self.description = [(c, None, None, None, None, None, None) for c in columns] if columns else None
        self._rows = list(rows)
        self.rowcount = rowcount

    def fetchall(self):
        return self._rows


class FakeServerDialect(Dialect):
    """Stands in for a SQL Server reached through pyodbc.

    Answers the external-side templates from in-memory state and records every
    statement it was asked to run.
    """

    name = "mssql"
    identifier_quotes = ("[", "]")

    def __init__(self, databases=None, log_rows=None, last_lsn=None):
        self.databases = dict(databases or {"Sales": 7})
        self.log_rows = list(log_rows or [])
        self.last_lsn = last_lsn
        self.refuse_connections = False
        self.statements = []

    def connect(self, props):
        if self.refuse_connections:
            raise RuntimeError("28000", "[28000] Login failed for user")
        return MagicMock()

    def describe(self, props):
        return f"fake:{props.database_name}" if props else "fake"

    def execute(self, raw, sql, params):
        self.statements.append((sql, list(params)))
        if "last_log_backup_lsn" in sql:
            return FakeCursor(["LastLSN"], [(self.last_lsn,)] if self.last_lsn else [])
        if "fn_dblog" in sql:
            columns = ["ObjectName", "Operation", "TransactionName", "TransactionID",
                       "BeginTime", "EndTime", "Description", "UserName", "CurrentLSN"]
            return FakeCursor(columns, [tuple(row.get(c) for c in columns) for row in self.log_rows])
        if "AS DatabaseID" in sql:
            database_id = self.databases.get(params[0])
            return FakeCursor(["DatabaseID"], [(database_id,)] if database_id is not None else [])
        if "AS DatabaseName" in sql:
            names = [name for name, db_id in self.databases.items() if db_id == params[0]]
            return FakeCursor(["DatabaseName"], [(names[0],)] if names else [])
        if "recovery_model_desc" in sql:
            if params[0] not in self.databases:
                return FakeCursor(["LastFullBackup", "LastDiffBackup", "LastLogBackup",
                                   "RecoveryModel", "State"], [])
            return FakeCursor(
                ["LastFullBackup", "LastDiffBackup", "LastLogBackup", "RecoveryModel", "State"],
                [("2024-01-01 02:00:00", None, "2024-01-02 02:00:00", "FULL", "ONLINE")],
            )
        raise RuntimeError("HY000", f"Unexpected statement: {sql[:40]}")

    def begin(self, raw):
        pass


def log_row(transaction_id, operation, lsn, object_name="dbo.Orders", begin=None, end=None, user=""):
    return {
        "ObjectName": object_name,
        "Operation": operation,
        "TransactionName": "INSERT",
        "TransactionID": transaction_id,
        "BeginTime": begin,
        "EndTime": end,
        "Description": "",
        "UserName": user,
        "CurrentLSN": lsn,
    }


SAMPLE_LOG_ROWS = [
    log_row("0000:00001", "LOP_BEGIN_XACT", "00000021:00000010:0001", object_name=None,
            begin="2024/01/02 10:00:00:000", user="sa"),
    log_row("0000:00001", "LOP_INSERT_ROWS", "00000021:00000010:0002"),
    log_row("0000:00002", "LOP_BEGIN_XACT", "00000021:00000010:0003", object_name=None,
            begin="2024/01/02 10:00:05:000", user="app"),
    log_row("0000:00001", "LOP_COMMIT_XACT", "00000021:00000010:0004", object_name=None,
            end="2024/01/02 10:00:01:000"),
    log_row("0000:00002", "LOP_DELETE_ROWS", "00000021:00000010:0005", object_name="dbo.Items"),
    log_row("0000:00002", "LOP_COMMIT_XACT", "00000021:00000010:0006", object_name=None,
            end="2024/01/02 10:00:06:000"),
]


@pytest.fixture
def fake_server():
    return FakeServerDialect(log_rows=SAMPLE_LOG_ROWS)


@pytest.fixture
def duckdb_config():
    return Config(catalog_backend="duckdb", catalog_duckdb_path=":memory:")


@pytest.fixture
def catalog():
    """In-memory DuckDB catalog with the tracking table created."""
    connection = DatabaseConnection("systemConnection", DuckDBDialect(":memory:"))
    established, error = connection.connect()
    assert established, error
    QueryTemplate.from_resource(connection, TemplateLoader("duckdb"), "create_tracking_table").execute_modify()
    yield connection
    connection.disconnect()


@pytest.fixture
def catalog_counts(catalog):
    """Callable returning (tracking records, catalog tables)."""
    def _counts():
        records = catalog.raw.execute("SELECT COUNT(*) FROM TrackedDatabases").fetchone()[0]
        tables = catalog.raw.execute("SELECT COUNT(*) FROM information_schema.tables").fetchone()[0]
        return records, tables
    return _counts
