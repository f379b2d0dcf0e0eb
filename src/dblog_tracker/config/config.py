import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

SUPPORTED_BACKENDS = ("mssql", "duckdb")


def _parse_port(variable: str, default: str) -> int:
    raw = os.getenv(variable, default)
    try:
        port = int(raw)
    except ValueError as e:
        raise ValueError(f"{variable} must be a valid integer: {raw}") from e

    if not (1 <= port <= 65535):
        raise ValueError(f"{variable} must be between 1 and 65535, got: {port}")
    return port


def _parse_bool(raw: Optional[str]) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    catalog_backend: str = "mssql"

    # Catalog (system database) connection
    catalog_server: str = "."
    catalog_port: int = 1433
    catalog_database: str = "DBLogger"
    catalog_user: str = ""
    catalog_password: str = ""

    # Local DuckDB catalog file (catalog_backend == "duckdb")
    catalog_duckdb_path: str = ""
    catalog_create_schema: bool = False

    # Tracked databases
    odbc_driver: str = "SQL Server"
    default_port: str = "1433"

    # Template resources; empty means the templates shipped with the package
    sql_template_directory: str = ""

    log_file: str = ""
    log_level: str = "INFO"

    @property
    def uses_duckdb_catalog(self) -> bool:
        return self.catalog_backend == "duckdb"


def load_config(load_dotenv_file: bool = True) -> Config:
    if load_dotenv_file:
        load_dotenv()

    catalog_backend = os.getenv("CATALOG_BACKEND", "mssql").strip().lower()
    if catalog_backend not in SUPPORTED_BACKENDS:
        raise ValueError(
            f"CATALOG_BACKEND must be one of {', '.join(SUPPORTED_BACKENDS)}, got: {catalog_backend}"
        )

    # Required variables depend on where the catalog lives
    if catalog_backend == "duckdb":
        required_vars = ["CATALOG_DUCKDB_PATH"]
    else:
        required_vars = ["CATALOG_USER", "CATALOG_PASSWORD"]

    missing = [var for var in required_vars if not os.getenv(var)]
    if missing:
        raise ValueError(f"Missing required configuration: {missing[0]}")

    catalog_port = _parse_port("CATALOG_PORT", "1433")
    default_port = str(_parse_port("DEFAULT_PORT", "1433"))

    return Config(
        catalog_backend=catalog_backend,

        catalog_server=os.getenv("CATALOG_SERVER", "."),
        catalog_port=catalog_port,
        catalog_database=os.getenv("CATALOG_DATABASE", "DBLogger"),
        catalog_user=os.getenv("CATALOG_USER", ""),
        catalog_password=os.getenv("CATALOG_PASSWORD", ""),

        catalog_duckdb_path=os.getenv("CATALOG_DUCKDB_PATH", ""),
        catalog_create_schema=_parse_bool(os.getenv("CATALOG_CREATE_SCHEMA")),

        odbc_driver=os.getenv("ODBC_DRIVER", "SQL Server"),
        default_port=default_port,

        sql_template_directory=os.getenv("SQL_TEMPLATE_DIRECTORY", ""),

        log_file=os.getenv("LOG_FILE", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
