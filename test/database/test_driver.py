import sys
import pytest
from unittest.mock import MagicMock, patch

from dblog_tracker.config import Config
from dblog_tracker.database.driver import (
    DatabaseConnection,
    DuckDBDialect,
    MSSQLDialect,
    build_connection_string,
    catalog_dialect,
    catalog_properties,
)
from dblog_tracker.errors import DriverError
from dblog_tracker.models import ConnectionProperties


def test_400_connection_string():
    """TEST-400: flat ODBC descriptor built from the properties"""
    props = ConnectionProperties(server=".", port="1433", database_name="Sales", user="sa", password="pw")

    assert build_connection_string(props) == \
        "DRIVER={SQL Server};Server=.;Database=Sales;Uid=sa;Port=1433;Pwd=pw;"


def test_401_connection_string_quotes_special_values():
    """TEST-401: values with ; { } are brace-quoted"""
    props = ConnectionProperties(server="db01", database_name="Sales", user="sa", password="p;w}d")

    descriptor = build_connection_string(props, "ODBC Driver 18 for SQL Server")

    assert descriptor.startswith("DRIVER={ODBC Driver 18 for SQL Server};")
    assert "Pwd={p;w}}d};" in descriptor


def test_402_mssql_connect_uses_pyodbc():
    """TEST-402: SQL Server connections open through pyodbc in autocommit mode"""
    mock_pyodbc = MagicMock()
    with patch.dict(sys.modules, {"pyodbc": mock_pyodbc}):
        conn = DatabaseConnection("connection_x", MSSQLDialect("SQL Server"))
        established, error = conn.connect(ConnectionProperties(server="db01", database_name="Sales"))

    assert established
    assert error is None
    assert conn.is_open
    args, kwargs = mock_pyodbc.connect.call_args
    assert "Database=Sales;" in args[0]
    assert kwargs == {"autocommit": True}


def test_403_failed_connect_reports_driver_message():
    """TEST-403: connection failure returns the driver's message, not an exception"""
    mock_pyodbc = MagicMock()
    mock_pyodbc.connect.side_effect = Exception("28000", "[28000] Login failed for user 'sa'")
    with patch.dict(sys.modules, {"pyodbc": mock_pyodbc}):
        conn = DatabaseConnection("connection_x", MSSQLDialect())
        established, error = conn.connect(ConnectionProperties(database_name="Sales"))

    assert not established
    assert not conn.is_open
    assert isinstance(error, DriverError)
    assert error.sqlstate == "28000"
    assert "Login failed" in error.driver_message


def test_404_reconnect_closes_previous_connection():
    """TEST-404: connect closes any open connection first"""
    mock_pyodbc = MagicMock()
    first, second = MagicMock(), MagicMock()
    mock_pyodbc.connect.side_effect = [first, second]
    with patch.dict(sys.modules, {"pyodbc": mock_pyodbc}):
        conn = DatabaseConnection("connection_x", MSSQLDialect())
        conn.connect(ConnectionProperties(database_name="Sales"))
        conn.connect(ConnectionProperties(database_name="Sales"))

    first.close.assert_called_once()
    assert conn.raw is second


def test_405_execute_on_closed_connection():
    """TEST-405: statements need an open connection"""
    conn = DatabaseConnection("connection_x", MSSQLDialect())

    with pytest.raises(DriverError, match="not open"):
        conn.execute("SELECT 1")


def test_406_mssql_transaction_toggles_autocommit():
    """TEST-406: SQL Server transactions switch autocommit off and back on"""
    conn = DatabaseConnection("connection_x", MSSQLDialect())
    conn.raw = MagicMock()
    conn.raw.autocommit = True

    with conn.transaction():
        assert conn.raw.autocommit is False
        assert conn.in_transaction

    conn.raw.commit.assert_called_once()
    assert conn.raw.autocommit is True
    assert not conn.in_transaction


def test_407_duckdb_transaction_commits():
    """TEST-407: clean exit commits on DuckDB"""
    with DatabaseConnection("systemConnection", DuckDBDialect(":memory:")) as conn:
        conn.connect()
        conn.execute("CREATE TABLE t (a INTEGER)")

        with conn.transaction():
            conn.execute("INSERT INTO t VALUES (?)", [1])

        assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1
    assert not conn.is_open


def test_408_duckdb_transaction_rolls_back():
    """TEST-408: an escaping exception rolls everything back"""
    conn = DatabaseConnection("systemConnection", DuckDBDialect(":memory:"))
    conn.connect()
    conn.execute("CREATE TABLE t (a INTEGER)")

    with pytest.raises(DriverError):
        with conn.transaction():
            conn.execute("INSERT INTO t VALUES (?)", [1])
            conn.execute("INSERT INTO missing_table VALUES (1)")

    assert not conn.in_transaction
    assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
    conn.disconnect()


def test_409_duckdb_file_catalog(tmp_path):
    """TEST-409: parent directories of the DuckDB file are created"""
    path = tmp_path / "nested" / "catalog.duckdb"
    conn = DatabaseConnection("systemConnection", DuckDBDialect(str(path)))

    established, _ = conn.connect()

    assert established
    assert path.parent.exists()
    conn.disconnect()


def test_410_catalog_dialect_from_config():
    """TEST-410: config picks the catalog dialect"""
    assert isinstance(catalog_dialect(Config(catalog_backend="duckdb", catalog_duckdb_path=":memory:")),
                      DuckDBDialect)

    config = Config(catalog_server="cat01", catalog_port=1500, catalog_user="u",
                    catalog_password="p", odbc_driver="ODBC Driver 17 for SQL Server")
    dialect = catalog_dialect(config)
    assert isinstance(dialect, MSSQLDialect)
    assert dialect.odbc_driver == "ODBC Driver 17 for SQL Server"

    props = catalog_properties(config)
    assert (props.server, props.port, props.database_name) == ("cat01", "1500", "DBLogger")


def test_411_failed_mssql_commit_rolls_back_first():
    """TEST-411: a failed commit is rolled back before autocommit comes back on"""
    raw = MagicMock()
    raw.autocommit = True
    raw.commit.side_effect = Exception("40001", "[40001] Transaction was deadlocked")
    events = []
    raw.rollback.side_effect = lambda: events.append(("rollback", raw.autocommit))
    conn = DatabaseConnection("connection_x", MSSQLDialect())
    conn.raw = raw

    with pytest.raises(DriverError) as exc_info:
        with conn.transaction():
            pass

    assert exc_info.value.sqlstate == "40001"
    raw.rollback.assert_called_once()
    assert events == [("rollback", False)]
    assert raw.autocommit is True
    assert not conn.in_transaction
