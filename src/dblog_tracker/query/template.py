"""
Templated query execution.

Statement text lives in ``.sql`` resources, one per operation and dialect.
A template carries two kinds of placeholders:

- ``:name`` value placeholders, handed to the driver as bound parameters.
  Every literal value goes through these.
- ``${name}`` identifier placeholders, replaced in the text before the
  statement is prepared. Only table/constraint/database names go through
  these, because parameter binding cannot target identifiers. A value with
  any character outside letters, digits and underscore is delimited
  (``[...]`` on SQL Server, ``"..."`` on DuckDB).
"""

import re
import string
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from dblog_tracker.database.driver import DatabaseConnection
from dblog_tracker.errors import DriverError, LoadError, PrepareError
from dblog_tracker.log.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_ROOT = Path(__file__).resolve().parent.parent / "sql"

# Quoted literals, bracketed/quoted identifiers and comments are matched first
# so that a colon inside them is never taken for a placeholder.
_VALUE_PLACEHOLDER = re.compile(
    r"""'(?:[^']|'')*'"""
    r"""|\[[^\]]*\]"""
    r'''|"[^"]*"'''
    r"""|--[^\n]*"""
    r"""|(?<![:\w]):([A-Za-z_]\w*)"""
)

_PLAIN_IDENTIFIER = re.compile(r"\w+")


class _IdentifierTemplate(string.Template):
    # Only the braced ${name} form is a placeholder; a bare $word is left alone
    pattern = r"""
    \$(?:
        (?P<escaped>\$)
      | \{(?P<braced>[_a-z][_a-z0-9]*)\}
      | (?P<named>(?!))
      | (?P<invalid>\{)
    )
    """


class TemplateLoader:
    """Reads statement text for one dialect.

    Args:
        dialect_name: subdirectory of the template root ("mssql", "duckdb")
        directory: template root; defaults to the templates shipped with the package
    """

    def __init__(self, dialect_name: str, directory: Optional[str] = None):
        self.dialect_name = dialect_name
        self.root = Path(directory) if directory else DEFAULT_TEMPLATE_ROOT
        self._cache: Dict[str, str] = {}

    def path_for(self, resource_id: str) -> Path:
        return self.root / self.dialect_name / f"{resource_id}.sql"

    def load(self, resource_id: str) -> str:
        """Return the statement text of ``resource_id``.

        Raises:
            LoadError: resource missing, unreadable or empty
        """
        if resource_id in self._cache:
            return self._cache[resource_id]

        path = self.path_for(resource_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise LoadError(resource_id, f"no template at {path}")
        except OSError as e:
            raise LoadError(resource_id, str(e)) from e

        if not text.strip():
            raise LoadError(resource_id, "template is empty")

        self._cache[resource_id] = text
        return text


Row = Dict[str, Any]


class ResultSet:
    """Fully materialized query result.

    Each row maps column name to value in column order; NULL columns are
    left out of the row, so read columns with ``row.get(name)``.
    """

    def __init__(self, columns: Sequence[str] = (), rows: Sequence[Sequence[Any]] = ()):
        self.columns: Tuple[str, ...] = tuple(columns)
        self.rows: List[Row] = [
            {column: value for column, value in zip(self.columns, row) if value is not None}
            for row in rows
        ]

    def first(self) -> Optional[Row]:
        return self.rows[0] if self.rows else None

    def scalar(self) -> Any:
        """First column of the first row, or None."""
        if not self.rows or not self.columns:
            return None
        return self.rows[0].get(self.columns[0])

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> Row:
        return self.rows[index]


class QueryTemplate:
    """One statement built from a template, executed on one connection.

    Typical use::

        query = QueryTemplate.from_resource(conn, loader, "drop_log_table")
        query.substitute_identifier("tableName", entry.log_table_name)
        query.execute_modify()
    """

    def __init__(self, connection: DatabaseConnection, text: str, resource_id: str = "<inline>"):
        if not text or not text.strip():
            raise LoadError(resource_id, "template is empty")
        self.connection = connection
        self.resource_id = resource_id
        self.text = text
        self._bindings: Dict[str, Any] = {}
        self._identifiers: Dict[str, str] = {}
        self._prepared_sql: Optional[str] = None
        self._parameter_names: List[str] = []

    @classmethod
    def from_resource(cls, connection: DatabaseConnection, loader: TemplateLoader,
                      resource_id: str) -> 'QueryTemplate':
        return cls(connection, loader.load(resource_id), resource_id)

    @staticmethod
    def _normalize(name: str) -> str:
        return name.lstrip(":").strip()

    def bind(self, name: str, value: Any) -> 'QueryTemplate':
        """Bind a literal value to the ``:name`` placeholder."""
        self._bindings[self._normalize(name)] = value
        return self

    def quote_identifier(self, raw_value: str) -> str:
        """Delimit ``raw_value`` unless it consists of letters, digits and underscores."""
        if _PLAIN_IDENTIFIER.fullmatch(raw_value):
            return raw_value
        opening, closing = self.connection.dialect.identifier_quotes
        return opening + raw_value.replace(closing, closing * 2) + closing

    def substitute_identifier(self, name: str, raw_value: str) -> 'QueryTemplate':
        """Substitute an identifier for ``${name}`` when the statement is prepared."""
        self._identifiers[name.strip("${}")] = self.quote_identifier(str(raw_value))
        self._prepared_sql = None
        return self

    def prepare(self) -> str:
        """Convert value placeholders, then apply identifier substitutions.

        Value placeholders are read from the template text only, so nothing
        inside a substituted identifier is ever taken for one.

        Returns:
            statement text as sent to the driver

        Raises:
            PrepareError: unknown identifier placeholder or malformed template
        """
        names: List[str] = []

        def _marker(match):
            if match.group(1) is None:
                return match.group(0)
            names.append(match.group(1))
            return "?"

        marked = _VALUE_PLACEHOLDER.sub(_marker, self.text)

        try:
            text = _IdentifierTemplate(marked).substitute(self._identifiers)
        except KeyError as e:
            raise PrepareError(
                f"Template '{self.resource_id}' needs identifier {e.args[0]!r}, none substituted"
            ) from e
        except ValueError as e:
            raise PrepareError(f"Template '{self.resource_id}' is malformed: {e}") from e

        self._prepared_sql = text
        self._parameter_names = names
        return self._prepared_sql

    def parameters(self) -> List[Any]:
        """Bound values in placeholder order; a repeated name repeats its value."""
        if self._prepared_sql is None:
            self.prepare()
        missing = sorted({n for n in self._parameter_names if n not in self._bindings})
        if missing:
            raise PrepareError(
                f"Template '{self.resource_id}' has no value bound for: {', '.join(missing)}"
            )
        return [self._bindings[name] for name in self._parameter_names]

    def _run(self):
        params = self.parameters()
        logger.debug(f"Executing '{self.resource_id}' on {self.connection.name} ({len(params)} parameters)")
        try:
            return self.connection.execute(self._prepared_sql, params)
        except DriverError as e:
            logger.error(f"Query '{self.resource_id}' failed on {self.connection.name}: {e.driver_message}")
            # SQLSTATE class 42: syntax or access rule violation, nothing ran
            if e.sqlstate and e.sqlstate.startswith("42"):
                raise PrepareError(
                    f"Template '{self.resource_id}' rejected by {self.connection.name}: {e.driver_message}"
                ) from e
            raise

    def execute_select(self) -> ResultSet:
        """Run the statement and materialize every row.

        Zero rows is an empty ResultSet, not an error.

        Raises:
            PrepareError, DriverError
        """
        cursor = self._run()
        try:
            if cursor.description is None:
                return ResultSet()
            columns = [column[0] for column in cursor.description]
            rows = cursor.fetchall()
        except Exception as e:
            raise DriverError.from_exception(e) from e
        return ResultSet(columns, rows)

    def execute_modify(self) -> int:
        """Run an insert/update/delete/DDL statement.

        Returns:
            affected row count as reported by the driver (-1 if unknown)

        Raises:
            PrepareError, DriverError
        """
        cursor = self._run()
        rowcount = getattr(cursor, "rowcount", -1)
        return rowcount if isinstance(rowcount, int) else -1
